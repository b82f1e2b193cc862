"""Shared CLI options."""

from __future__ import annotations

import os
from pathlib import Path

import click

db_path_option = click.option(
    "--db-path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to database file (default: LISTSYNC_DB_PATH or ./listsync.db).",
)


def resolve_db_path(db_path: str | None) -> Path:
    """Resolve the database path from the option or the environment."""
    return Path(db_path or os.environ.get("LISTSYNC_DB_PATH", "listsync.db"))
