"""Pydantic schemas for API request/response models.

Field names are camelCase on the wire (``deviceId``, ``lastSyncTimestamp``)
and snake_case in Python.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from listsync.core.timestamps import format_timestamp
from listsync.server.models import Category, Device, Item, Space
from listsync.server.sync.types import Acknowledgement, Change, InitialLoad, SyncResult


class CamelModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# === Sync schemas ===


class ChangeRequest(CamelModel):
    """One change in a sync request.

    Every field accepts any JSON value: a malformed change is rejected in its
    own acknowledgement rather than failing the whole request.
    """

    id: Any = None
    entity_kind: Any = None
    operation: Any = None
    data: Any = None
    timestamp: Any = None
    operation_id: Any = None

    def to_change(self) -> Change:
        return Change(
            id=self.id,
            entity_kind=self.entity_kind,
            operation=self.operation,
            data=self.data,
            timestamp=self.timestamp,
            operation_id=self.operation_id,
        )


class SyncRequest(CamelModel):
    """Request body for POST /api/sync."""

    device_id: str | None = None
    device_name: str | None = None
    last_sync_timestamp: str | None = None
    # Entries are decoded one by one, see change_from_request
    changes: list[Any] = []


class AcknowledgementResponse(CamelModel):
    """Outcome of one submitted change."""

    id: Any
    entity_kind: Any
    operation: Any
    success: bool
    conflict: bool = False
    duplicate: bool = False
    error: str | None = None


# === Entity schemas ===


class EntityResponse(CamelModel):
    """Fields shared by every entity."""

    id: str
    created_at: str
    updated_at: str
    deleted_at: str | None
    last_writer_device: str


class SpaceResponse(EntityResponse):
    """Space data in responses."""

    name: str
    icon: str
    color: str
    is_visible: bool
    order: int


class CategoryResponse(EntityResponse):
    """Category data in responses."""

    space_id: str | None
    name: str
    icon: str
    color: str
    is_visible: bool
    order: int


class ItemResponse(EntityResponse):
    """Item data in responses."""

    space_id: str | None
    category_id: str | None
    title: str
    description: str | None
    notes: str | None
    type: str
    movie_id: str | None
    book_id: str | None
    place_id: str | None
    is_completed: bool
    completed_at: str | None
    priority: str
    order: int
    tags: list[str]
    due_date: str | None


class ServerUpdatesResponse(CamelModel):
    """Entities the client must merge, grouped by kind."""

    spaces: list[SpaceResponse]
    categories: list[CategoryResponse]
    items: list[ItemResponse]


class SyncResponse(CamelModel):
    """Response for POST /api/sync."""

    acknowledgements: list[AcknowledgementResponse]
    server_updates: ServerUpdatesResponse
    sync_timestamp: str


class InitialLoadResponse(CamelModel):
    """Response for GET /api/sync/initial."""

    spaces: list[SpaceResponse]
    categories: list[CategoryResponse]
    items: list[ItemResponse]
    sync_timestamp: str


# === Device schemas ===


class DeviceResponse(CamelModel):
    """Device data in responses."""

    device_id: str
    display_name: str
    created_at: str
    last_sync_at: str


# === Stats schema ===


class StatsResponse(CamelModel):
    """Per-account statistics."""

    space_count: int
    category_count: int
    item_count: int
    deleted_space_count: int
    deleted_category_count: int
    deleted_item_count: int
    completed_item_count: int
    pending_item_count: int
    device_count: int
    operation_count: int


# === Health schema ===


class HealthResponse(BaseModel):
    """Health check response."""

    status: str


# === Converters ===


def change_from_request(raw: Any) -> Change:
    """Decode one entry of SyncRequest.changes.

    Entries that are not JSON objects still become a Change, marked with a
    decode error so that only that change fails.
    """
    if not isinstance(raw, dict):
        return Change(
            id=None,
            entity_kind=None,
            operation=None,
            decode_error="Change must be an object",
        )
    return ChangeRequest.model_validate(raw).to_change()


def _entity_fields(entity: Space | Category | Item) -> dict[str, Any]:
    return {
        "id": entity.id,
        "created_at": format_timestamp(entity.created_at),
        "updated_at": format_timestamp(entity.updated_at),
        "deleted_at": format_timestamp(entity.deleted_at),
        "last_writer_device": entity.last_writer_device,
    }


def space_to_response(space: Space) -> SpaceResponse:
    """Convert Space to response model."""
    return SpaceResponse(
        **_entity_fields(space),
        name=space.name,
        icon=space.icon,
        color=space.color,
        is_visible=space.is_visible,
        order=space.order,
    )


def category_to_response(category: Category) -> CategoryResponse:
    """Convert Category to response model."""
    return CategoryResponse(
        **_entity_fields(category),
        space_id=category.space_id,
        name=category.name,
        icon=category.icon,
        color=category.color,
        is_visible=category.is_visible,
        order=category.order,
    )


def item_to_response(item: Item) -> ItemResponse:
    """Convert Item to response model."""
    return ItemResponse(
        **_entity_fields(item),
        space_id=item.space_id,
        category_id=item.category_id,
        title=item.title,
        description=item.description,
        notes=item.notes,
        type=item.type,
        movie_id=item.movie_id,
        book_id=item.book_id,
        place_id=item.place_id,
        is_completed=item.is_completed,
        completed_at=format_timestamp(item.completed_at),
        priority=item.priority,
        order=item.order,
        tags=list(item.tags or []),
        due_date=format_timestamp(item.due_date),
    )


def acknowledgement_to_response(ack: Acknowledgement) -> AcknowledgementResponse:
    """Convert Acknowledgement to response model."""
    return AcknowledgementResponse(
        id=ack.id,
        entity_kind=ack.entity_kind,
        operation=ack.operation,
        success=ack.success,
        conflict=ack.conflict,
        duplicate=ack.duplicate,
        error=ack.error,
    )


def sync_result_to_response(result: SyncResult) -> SyncResponse:
    """Convert SyncResult to response model."""
    updates = result.server_updates
    return SyncResponse(
        acknowledgements=[acknowledgement_to_response(a) for a in result.acknowledgements],
        server_updates=ServerUpdatesResponse(
            spaces=[space_to_response(s) for s in updates.spaces],
            categories=[category_to_response(c) for c in updates.categories],
            items=[item_to_response(i) for i in updates.items],
        ),
        sync_timestamp=result.sync_timestamp.isoformat(),
    )


def initial_load_to_response(load: InitialLoad) -> InitialLoadResponse:
    """Convert InitialLoad to response model."""
    updates = load.server_updates
    return InitialLoadResponse(
        spaces=[space_to_response(s) for s in updates.spaces],
        categories=[category_to_response(c) for c in updates.categories],
        items=[item_to_response(i) for i in updates.items],
        sync_timestamp=load.sync_timestamp.isoformat(),
    )


def device_to_response(device: Device) -> DeviceResponse:
    """Convert Device to response model."""
    return DeviceResponse(
        device_id=device.device_id,
        display_name=device.display_name,
        created_at=device.created_at.isoformat(),
        last_sync_at=device.last_sync_at.isoformat(),
    )
