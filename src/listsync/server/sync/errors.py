"""Exceptions raised by the sync engine.

Per-change errors (ChangeError subclasses) are folded into that change's
acknowledgement. Whole-request errors (MissingDevice, StoreUnavailable)
abort the sync call. Conflicts and duplicates are outcomes, not errors:
see ApplyResult.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for sync errors."""


class ChangeError(SyncError):
    """A single change could not be applied."""


class InvalidChange(ChangeError):
    """The change is malformed (missing fields, bad payload, bad timestamp)."""


class UnknownEntityKind(InvalidChange):
    """The change names an entity kind with no store."""

    def __init__(self, entity_kind: str) -> None:
        self.entity_kind = entity_kind
        super().__init__(f"Unknown entity kind: {entity_kind}")


class NotFound(ChangeError):
    """The target of an update does not exist for this account."""

    def __init__(self, entity_kind: str, entity_id: str) -> None:
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        super().__init__(f"{entity_kind.capitalize()} not found: {entity_id}")


class MissingDevice(SyncError):
    """The sync request carries no device identifier."""

    def __init__(self) -> None:
        super().__init__("deviceId is required")


class StoreUnavailable(SyncError):
    """The persistence layer cannot be reached."""
