"""Tests for core configuration classes."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from listsync.core.config import ServerConfig


class TestServerConfig:
    """Tests for ServerConfig class."""

    def test_defaults(self) -> None:
        """Should default to a local database and a five minute skew."""
        config = ServerConfig()
        assert config.db_path == Path("listsync.db")
        assert config.log_path == Path("listsync-server.log")
        assert config.max_clock_skew == timedelta(minutes=5)
        assert config.host == "127.0.0.1"
        assert config.port == 8000

    def test_from_env_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should match the dataclass defaults with no variables set."""
        for name in (
            "LISTSYNC_DB_PATH",
            "LISTSYNC_LOG_PATH",
            "LISTSYNC_MAX_CLOCK_SKEW",
            "LISTSYNC_HOST",
            "LISTSYNC_PORT",
        ):
            monkeypatch.delenv(name, raising=False)
        assert ServerConfig.from_env() == ServerConfig()

    def test_from_env_overrides(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Should read every LISTSYNC_* variable."""
        monkeypatch.setenv("LISTSYNC_DB_PATH", str(tmp_path / "lists.db"))
        monkeypatch.setenv("LISTSYNC_LOG_PATH", str(tmp_path / "server.log"))
        monkeypatch.setenv("LISTSYNC_MAX_CLOCK_SKEW", "60")
        monkeypatch.setenv("LISTSYNC_HOST", "0.0.0.0")
        monkeypatch.setenv("LISTSYNC_PORT", "9000")

        config = ServerConfig.from_env()

        assert config.db_path == tmp_path / "lists.db"
        assert config.log_path == tmp_path / "server.log"
        assert config.max_clock_skew == timedelta(seconds=60)
        assert config.host == "0.0.0.0"
        assert config.port == 9000

    def test_negative_skew_disables_clamping(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should map a negative skew to None."""
        monkeypatch.setenv("LISTSYNC_MAX_CLOCK_SKEW", "-1")
        assert ServerConfig.from_env().max_clock_skew is None

    def test_invalid_port(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should reject a non-numeric port."""
        monkeypatch.setenv("LISTSYNC_PORT", "http")
        with pytest.raises(ValueError):
            ServerConfig.from_env()
