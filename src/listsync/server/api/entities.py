"""Read-only entity listing routes.

These are for debugging and administration. Clients mutate data through
POST /api/sync only.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from listsync.core.types import EntityKind
from listsync.server.api.deps import get_db, get_owner_id
from listsync.server.database import Database
from listsync.server.models import Entity
from listsync.server.schemas import (
    CategoryResponse,
    ItemResponse,
    SpaceResponse,
    StatsResponse,
    category_to_response,
    item_to_response,
    space_to_response,
)

router = APIRouter(prefix="/api", tags=["entities"])


def _get_or_404(db: Database, kind: EntityKind, owner_id: int, entity_id: str) -> Entity:
    entity = db.find_entity(kind, owner_id, entity_id)
    if entity is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{kind.value.capitalize()} not found: {entity_id}",
        )
    return entity


@router.get("/spaces", response_model=list[SpaceResponse])
def list_spaces(
    db: Database = Depends(get_db),
    owner_id: int = Depends(get_owner_id),
) -> list[SpaceResponse]:
    """List spaces (excluding deleted)."""
    return [space_to_response(s) for s in db.list_entities(EntityKind.SPACE, owner_id)]  # type: ignore[arg-type]


@router.get("/spaces/{space_id}", response_model=SpaceResponse)
def get_space(
    space_id: str,
    db: Database = Depends(get_db),
    owner_id: int = Depends(get_owner_id),
) -> SpaceResponse:
    """Get one space, deleted or not."""
    return space_to_response(_get_or_404(db, EntityKind.SPACE, owner_id, space_id))  # type: ignore[arg-type]


@router.get("/categories", response_model=list[CategoryResponse])
def list_categories(
    db: Database = Depends(get_db),
    owner_id: int = Depends(get_owner_id),
    space_id: str | None = Query(default=None, alias="spaceId"),
) -> list[CategoryResponse]:
    """List categories (excluding deleted), optionally of one space."""
    categories = db.list_entities(EntityKind.CATEGORY, owner_id, space_id=space_id)
    return [category_to_response(c) for c in categories]  # type: ignore[arg-type]


@router.get("/categories/{category_id}", response_model=CategoryResponse)
def get_category(
    category_id: str,
    db: Database = Depends(get_db),
    owner_id: int = Depends(get_owner_id),
) -> CategoryResponse:
    """Get one category, deleted or not."""
    return category_to_response(_get_or_404(db, EntityKind.CATEGORY, owner_id, category_id))  # type: ignore[arg-type]


@router.get("/items", response_model=list[ItemResponse])
def list_items(
    db: Database = Depends(get_db),
    owner_id: int = Depends(get_owner_id),
    space_id: str | None = Query(default=None, alias="spaceId"),
    category_id: str | None = Query(default=None, alias="categoryId"),
) -> list[ItemResponse]:
    """List items (excluding deleted), optionally of one space or category."""
    items = db.list_entities(
        EntityKind.ITEM, owner_id, space_id=space_id, category_id=category_id
    )
    return [item_to_response(i) for i in items]  # type: ignore[arg-type]


@router.get("/items/{item_id}", response_model=ItemResponse)
def get_item(
    item_id: str,
    db: Database = Depends(get_db),
    owner_id: int = Depends(get_owner_id),
) -> ItemResponse:
    """Get one item, deleted or not."""
    return item_to_response(_get_or_404(db, EntityKind.ITEM, owner_id, item_id))  # type: ignore[arg-type]


@router.get("/stats", response_model=StatsResponse)
def get_stats(
    db: Database = Depends(get_db),
    owner_id: int = Depends(get_owner_id),
) -> StatsResponse:
    """Get entity, device and operation counts for the account."""
    return StatsResponse(**db.get_account_stats(owner_id))
