"""Server configuration for listsync.

Configuration is read from environment variables, with defaults suitable
for a single-node deployment next to its SQLite database.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

DEFAULT_MAX_CLOCK_SKEW_SECONDS = 300


@dataclass
class ServerConfig:
    """Configuration for the listsync server.

    Attributes:
        db_path: Path to the SQLite database file.
        log_path: Path to the server log file.
        max_clock_skew: How far in the future a client-declared timestamp
            may be before it is clamped to server time. None disables
            clamping.
        host: Interface uvicorn binds to.
        port: Port uvicorn listens on.
    """

    db_path: Path = Path("listsync.db")
    log_path: Path = Path("listsync-server.log")
    max_clock_skew: timedelta | None = timedelta(seconds=DEFAULT_MAX_CLOCK_SKEW_SECONDS)
    host: str = "127.0.0.1"
    port: int = 8000

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Build configuration from LISTSYNC_* environment variables.

        Returns:
            ServerConfig with environment overrides applied.

        Raises:
            ValueError: If a numeric variable cannot be parsed.
        """
        skew_seconds = int(
            os.environ.get("LISTSYNC_MAX_CLOCK_SKEW", str(DEFAULT_MAX_CLOCK_SKEW_SECONDS))
        )
        return cls(
            db_path=Path(os.environ.get("LISTSYNC_DB_PATH", "listsync.db")),
            log_path=Path(os.environ.get("LISTSYNC_LOG_PATH", "listsync-server.log")),
            # Negative values turn clamping off entirely
            max_clock_skew=timedelta(seconds=skew_seconds) if skew_seconds >= 0 else None,
            host=os.environ.get("LISTSYNC_HOST", "127.0.0.1"),
            port=int(os.environ.get("LISTSYNC_PORT", "8000")),
        )
