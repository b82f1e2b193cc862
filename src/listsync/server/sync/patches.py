"""Typed partial payloads for entity changes.

Each entity kind has a pydantic model whose fields are all optional. The
fields a client actually sent are tracked by pydantic in
``model_fields_set``: an omitted field is left untouched on update, while an
explicit ``null`` clears it. Unknown keys are ignored.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from listsync.core.timestamps import ensure_utc
from listsync.core.types import EntityKind
from listsync.server.sync.errors import InvalidChange


class EntityPatch(BaseModel):
    """Base class for per-kind patches."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    # Columns that may be omitted but never set to null
    non_nullable: ClassVar[frozenset[str]] = frozenset()
    # Columns a create must carry
    required_on_create: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_null_for_required_columns(self) -> EntityPatch:
        for name in sorted(self.model_fields_set & self.non_nullable):
            if getattr(self, name) is None:
                raise ValueError(f"{to_camel(name)} cannot be null")
        return self

    def present_fields(self) -> dict[str, Any]:
        """Fields explicitly sent by the client, keyed by column name."""
        return self.model_dump(include=self.model_fields_set)

    def missing_for_create(self) -> list[str]:
        """Wire names of required fields absent from this patch."""
        return [to_camel(name) for name in sorted(self.required_on_create - self.model_fields_set)]


class SpacePatch(EntityPatch):
    """Patch for a space."""

    non_nullable = frozenset({"name", "icon", "color", "is_visible", "order"})
    required_on_create = frozenset({"name"})

    name: str | None = None
    icon: str | None = None
    color: str | None = None
    is_visible: bool | None = None
    order: int | None = None


class CategoryPatch(EntityPatch):
    """Patch for a category."""

    non_nullable = frozenset({"name", "icon", "color", "is_visible", "order"})
    required_on_create = frozenset({"name"})

    space_id: str | None = None
    name: str | None = None
    icon: str | None = None
    color: str | None = None
    is_visible: bool | None = None
    order: int | None = None


class ItemPatch(EntityPatch):
    """Patch for an item."""

    non_nullable = frozenset(
        {"title", "type", "is_completed", "priority", "order", "tags"}
    )
    required_on_create = frozenset({"title"})

    space_id: str | None = None
    category_id: str | None = None
    title: str | None = None
    description: str | None = None
    notes: str | None = None
    type: Literal["custom", "movie", "book", "place", "other"] | None = None
    movie_id: str | None = None
    book_id: str | None = None
    place_id: str | None = None
    is_completed: bool | None = None
    completed_at: datetime | None = None
    priority: Literal["low", "medium", "high"] | None = None
    order: int | None = None
    tags: list[str] | None = None
    due_date: datetime | None = None

    @field_validator("completed_at", "due_date")
    @classmethod
    def _normalize_dates(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None


PATCH_MODELS: dict[EntityKind, type[EntityPatch]] = {
    EntityKind.SPACE: SpacePatch,
    EntityKind.CATEGORY: CategoryPatch,
    EntityKind.ITEM: ItemPatch,
}


def parse_patch(kind: EntityKind, data: dict[str, Any] | None) -> EntityPatch:
    """Validate a change payload against its kind's patch model.

    Args:
        kind: Entity kind of the change.
        data: Raw payload from the client (may be None).

    Returns:
        Validated patch.

    Raises:
        InvalidChange: If the payload does not match the model.
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise InvalidChange("data must be an object")
    try:
        return PATCH_MODELS[kind].model_validate(data)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'data'}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidChange(f"Invalid {kind.value} data: {errors}") from e
