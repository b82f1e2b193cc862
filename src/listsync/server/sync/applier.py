"""Application of a single change against the entity store.

Each change runs validation -> idempotency check -> dispatch -> store write
-> log write. The store write and the log append share one transaction, so a
change is either fully applied and logged or not applied at all. Write
transactions take the database write lock up front, so the idempotency check
and the conditional write of one change never interleave with another
writer's.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic_core import to_jsonable_python

from listsync.core.timestamps import parse_timestamp
from listsync.core.types import EntityKind, Operation
from listsync.server.sync.conflicts import incoming_wins
from listsync.server.sync.errors import InvalidChange, NotFound, UnknownEntityKind
from listsync.server.sync.patches import EntityPatch, parse_patch
from listsync.server.sync.references import ReferenceResolver
from listsync.server.sync.types import ApplyResult, Change

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from listsync.server.database import Database

logger = logging.getLogger(__name__)

MAX_ID_LENGTH = 64

# Wire name -> attribute, for the fields that must be strings when present
_STRING_FIELDS = (
    ("id", "id"),
    ("entityKind", "entity_kind"),
    ("operation", "operation"),
    ("timestamp", "timestamp"),
    ("operationId", "operation_id"),
)


def validate_change(change: Change) -> tuple[EntityKind, Operation, EntityPatch]:
    """Check the structure of a change.

    Args:
        change: Change as received.

    Returns:
        Tuple of (entity kind, operation, validated patch).

    Raises:
        UnknownEntityKind: If entityKind maps to no store.
        InvalidChange: If a required field is missing, a field has the wrong
            type or the payload is invalid.
    """
    if change.decode_error is not None:
        raise InvalidChange(change.decode_error)
    missing = [
        name
        for name, value in (
            ("id", change.id),
            ("entityKind", change.entity_kind),
            ("operation", change.operation),
        )
        if value is None or value == ""
    ]
    if missing:
        raise InvalidChange(f"Missing required field(s): {', '.join(missing)}")
    for name, attr in _STRING_FIELDS:
        value = getattr(change, attr)
        if value is not None and not isinstance(value, str):
            raise InvalidChange(f"{name} must be a string")
    if len(change.id) > MAX_ID_LENGTH:
        raise InvalidChange(f"id longer than {MAX_ID_LENGTH} characters")

    try:
        kind = EntityKind(change.entity_kind)
    except ValueError:
        raise UnknownEntityKind(change.entity_kind) from None
    try:
        operation = Operation(change.operation)
    except ValueError:
        raise InvalidChange(f"Unknown operation: {change.operation}") from None

    # Deletes carry no payload worth validating
    patch = parse_patch(kind, None if operation is Operation.DELETE else change.data)
    if operation is Operation.CREATE:
        missing_fields = patch.missing_for_create()
        if missing_fields:
            raise InvalidChange(
                f"Cannot create {kind.value} without: {', '.join(missing_fields)}"
            )
    return kind, operation, patch


def declared_timestamp(change: Change) -> datetime | None:
    """Parse the timestamp the client declared for a change.

    Raises:
        InvalidChange: If the timestamp is not an ISO 8601 string.
    """
    if change.timestamp is None:
        return None
    try:
        return parse_timestamp(change.timestamp)
    except ValueError:
        raise InvalidChange(f"Invalid timestamp: {change.timestamp}") from None


class ChangeApplier:
    """Applies one change for one account and device."""

    def __init__(self, db: Database, references: ReferenceResolver | None = None) -> None:
        """Initialize the applier.

        Args:
            db: Database holding the entity store and the operation log.
            references: Parent reference resolver (defaults to one on ``db``).
        """
        self._db = db
        self._references = references or ReferenceResolver(db)

    def apply(
        self,
        change: Change,
        owner_id: int,
        device_id: str,
        timestamp: datetime,
    ) -> ApplyResult:
        """Apply a change.

        Args:
            change: Change as received.
            owner_id: Authenticated account.
            device_id: Device that produced the change.
            timestamp: Resolved logical timestamp of the change.

        Returns:
            ApplyResult; conflict and duplicate outcomes are not errors.

        Raises:
            ChangeError: If this change cannot be applied.
            StoreUnavailable: If the database cannot be reached.
        """
        kind, operation, patch = validate_change(change)
        client_timestamp = declared_timestamp(change)
        entity_id = change.id
        with self._db.transaction() as session:
            previous = self._db.find_logged_operation(
                session,
                owner_id,
                operation_id=change.operation_id,
                device_id=device_id,
                entity_id=entity_id,
                operation=operation.value,
                # Server-assigned timestamps are fresh, so only client ones form a key
                client_timestamp=client_timestamp,
            )
            if previous is not None:
                logger.info(
                    "Duplicate %s of %s %s from device %s ignored",
                    operation.value,
                    kind.value,
                    entity_id,
                    device_id,
                )
                return ApplyResult(entity_id, duplicate=True)

            if operation is Operation.CREATE:
                applied = self._create(session, kind, patch, owner_id, entity_id, device_id, timestamp)
            elif operation is Operation.UPDATE:
                applied = self._update(session, kind, patch, owner_id, entity_id, device_id, timestamp)
            else:
                applied = self._delete(session, kind, owner_id, entity_id, device_id, timestamp)

            if applied is None:
                return ApplyResult(entity_id)
            if applied is False:
                return ApplyResult(entity_id, conflict=True)

            self._db.append_operation(
                session,
                owner_id,
                device_id=device_id,
                kind=kind,
                entity_id=entity_id,
                operation=operation.value,
                payload=applied,
                timestamp=timestamp,
                operation_id=change.operation_id,
                client_timestamp=client_timestamp,
            )
            return ApplyResult(entity_id)

    # Dispatch helpers return the logged payload when they wrote, None when
    # there was nothing to do, and False when the change lost a conflict.

    def _create(
        self,
        session: Session,
        kind: EntityKind,
        patch: EntityPatch,
        owner_id: int,
        entity_id: str,
        device_id: str,
        timestamp: datetime,
    ) -> dict[str, Any] | None:
        if self._db.get_entity(session, kind, owner_id, entity_id) is not None:
            logger.debug("%s %s already exists, create treated as applied", kind.value, entity_id)
            return None
        fields = self._references.resolve(session, owner_id, kind, entity_id, patch.present_fields())
        self._db.insert_entity(session, kind, owner_id, entity_id, fields, device_id, timestamp)
        return to_jsonable_python(fields)

    def _update(
        self,
        session: Session,
        kind: EntityKind,
        patch: EntityPatch,
        owner_id: int,
        entity_id: str,
        device_id: str,
        timestamp: datetime,
    ) -> dict[str, Any] | bool:
        current = self._db.get_entity(session, kind, owner_id, entity_id)
        if current is None:
            raise NotFound(kind.value, entity_id)
        if not incoming_wins(current.updated_at, timestamp):
            logger.info(
                "Conflict on %s %s: stored %s is newer than incoming %s",
                kind.value,
                entity_id,
                current.updated_at.isoformat(),
                timestamp.isoformat(),
            )
            return False
        fields = self._references.resolve(session, owner_id, kind, entity_id, patch.present_fields())
        if not self._db.update_entity_if_current(
            session, kind, owner_id, entity_id, fields, device_id, timestamp
        ):
            return False
        return to_jsonable_python(fields)

    def _delete(
        self,
        session: Session,
        kind: EntityKind,
        owner_id: int,
        entity_id: str,
        device_id: str,
        timestamp: datetime,
    ) -> dict[str, Any] | bool | None:
        current = self._db.get_entity(session, kind, owner_id, entity_id)
        if current is None or current.deleted_at is not None:
            return None
        if not incoming_wins(current.updated_at, timestamp):
            logger.info(
                "Conflict on %s %s: delete at %s is older than stored %s",
                kind.value,
                entity_id,
                timestamp.isoformat(),
                current.updated_at.isoformat(),
            )
            return False
        if not self._db.update_entity_if_current(
            session, kind, owner_id, entity_id, {"deleted_at": timestamp}, device_id, timestamp
        ):
            return False
        return {}
