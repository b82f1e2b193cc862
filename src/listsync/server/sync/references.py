"""Parent reference resolution.

Identifiers are minted by clients and stable from creation, so resolving a
reference is an existence and ownership check. A reference to a parent that
is missing, owned by another account or tombstoned is dropped to NULL
(the entity becomes an orphan / "uncategorized") instead of failing the
change: the parent may still arrive later from another device.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from listsync.core.types import EntityKind

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from listsync.server.database import Database

logger = logging.getLogger(__name__)

# Column -> kind of entity it points at
REFERENCE_TARGETS: dict[str, EntityKind] = {
    "space_id": EntityKind.SPACE,
    "category_id": EntityKind.CATEGORY,
}


class ReferenceResolver:
    """Checks parent references against the entity store."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def resolve(
        self,
        session: Session,
        owner_id: int,
        kind: EntityKind,
        entity_id: str,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        """Resolve the parent references present in ``fields``.

        Only references the client sent are checked; absent ones are left
        alone. When an item points at a live category but has no resolvable
        space of its own, it inherits the category's space.

        Args:
            session: Session of the change being applied.
            owner_id: Account owning the change.
            kind: Kind of the entity being written.
            entity_id: Id of the entity being written (for logging).
            fields: Column values from the patch.

        Returns:
            Copy of ``fields`` with unresolved references set to None.
        """
        resolved = dict(fields)
        for column, target_kind in REFERENCE_TARGETS.items():
            parent_id = resolved.get(column)
            if parent_id is None:
                continue
            parent = self._db.get_entity(session, target_kind, owner_id, parent_id)
            if parent is None or parent.deleted_at is not None:
                logger.info(
                    "Dropping %s=%s on %s %s: parent not found",
                    column,
                    parent_id,
                    kind.value,
                    entity_id,
                )
                resolved[column] = None
                continue
            if (
                kind is EntityKind.ITEM
                and column == "category_id"
                and resolved.get("space_id") is None
                and parent.space_id is not None
            ):
                resolved["space_id"] = parent.space_id
        return resolved
