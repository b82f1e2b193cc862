"""Dataclasses passed between the API layer and the sync engine.

This module provides:
- Change: one client-submitted mutation, as received
- ApplyResult: outcome of applying one change
- Acknowledgement: per-change outcome reported back to the client
- SyncResult: everything a sync call returns
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from listsync.core.types import EntityKind
from listsync.server.models import Category, Entity, Item, Space


@dataclass
class Change:
    """A client-submitted mutation intent.

    Fields are kept raw (any JSON value) so that a malformed change fails on
    its own during application instead of rejecting the batch.

    Attributes:
        decode_error: Set when the submitted entry could not be read as a
            change at all (for instance it was not a JSON object).
    """

    id: Any
    entity_kind: Any
    operation: Any
    data: Any = None
    timestamp: Any = None
    operation_id: Any = None
    decode_error: str | None = None


@dataclass
class ApplyResult:
    """Outcome of one successfully processed change.

    Attributes:
        id: Entity id.
        conflict: The stored version was newer; nothing was written.
        duplicate: The same operation was already applied; nothing was written.
    """

    id: str
    conflict: bool = False
    duplicate: bool = False


@dataclass
class Acknowledgement:
    """Per-change outcome returned to the client.

    id, entity_kind and operation echo what the client sent.
    """

    id: Any
    entity_kind: Any
    operation: Any
    success: bool
    conflict: bool = False
    duplicate: bool = False
    error: str | None = None


@dataclass
class ServerUpdates:
    """Entities the client must merge, grouped by kind."""

    spaces: list[Space] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)
    items: list[Item] = field(default_factory=list)

    @classmethod
    def from_kinds(cls, entities: dict[EntityKind, list[Entity]]) -> ServerUpdates:
        return cls(
            spaces=entities.get(EntityKind.SPACE, []),  # type: ignore[arg-type]
            categories=entities.get(EntityKind.CATEGORY, []),  # type: ignore[arg-type]
            items=entities.get(EntityKind.ITEM, []),  # type: ignore[arg-type]
        )

    @property
    def total(self) -> int:
        return len(self.spaces) + len(self.categories) + len(self.items)


@dataclass
class SyncResult:
    """Result of one sync call.

    Attributes:
        acknowledgements: One entry per submitted change, in order.
        server_updates: Entities updated after the client's checkpoint.
        sync_timestamp: Checkpoint to send as lastSyncTimestamp next time.
    """

    acknowledgements: list[Acknowledgement]
    server_updates: ServerUpdates
    sync_timestamp: datetime


@dataclass
class InitialLoad:
    """Live entity set handed to a fresh device."""

    server_updates: ServerUpdates
    sync_timestamp: datetime
