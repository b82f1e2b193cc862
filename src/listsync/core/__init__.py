"""Core module - Shared configuration, enums and timestamp helpers."""

from listsync.core.config import ServerConfig
from listsync.core.timestamps import (
    EPOCH,
    ensure_utc,
    format_timestamp,
    parse_timestamp,
    utcnow,
)
from listsync.core.types import EntityKind, Operation, SyncPhase

__all__ = [
    # Config
    "ServerConfig",
    # Timestamps
    "EPOCH",
    "ensure_utc",
    "format_timestamp",
    "parse_timestamp",
    "utcnow",
    # Types
    "EntityKind",
    "Operation",
    "SyncPhase",
]
