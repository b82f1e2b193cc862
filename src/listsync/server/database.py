"""Server database using SQLAlchemy with SQLite.

This module provides:
- Account and token-based authentication
- Device registry (last sync per device per account)
- Entity store for spaces, categories and items
- Append-only operation log
- Delta and listing queries
"""

from __future__ import annotations

import hashlib
import secrets
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, event, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from listsync.core.types import EntityKind
from listsync.server.models import (
    ENTITY_MODELS,
    Account,
    Base,
    Device,
    Entity,
    Item,
    OperationLog,
    Token,
)
from listsync.server.sync.errors import StoreUnavailable

if TYPE_CHECKING:
    from sqlalchemy import Engine
    from sqlalchemy.engine import Connection

# Display name given to a device the first time it syncs without one
PLACEHOLDER_DEVICE_NAME = "Unknown device"

TOKEN_PREFIX = "ls_"


def hash_token(token: str) -> str:
    """Hash a token using SHA-256.

    Args:
        token: Raw token string.

    Returns:
        Hex-encoded SHA-256 hash.
    """
    return hashlib.sha256(token.encode()).hexdigest()


class Database:
    """SQLAlchemy database for accounts, devices, entities and the operation log.

    Uses SQLite with WAL mode for concurrent readers. Write units
    (one change plus its log entry) run in BEGIN IMMEDIATE transactions so
    concurrent writers serialize instead of failing on a stale snapshot.
    """

    def __init__(self, db_path: Path, busy_timeout: float = 30.0) -> None:
        """Initialize the database.

        Args:
            db_path: Path to the SQLite database file.
            busy_timeout: Seconds a writer waits for the database lock.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Create engine with check_same_thread=False for multi-threaded access
        self._engine: Engine = create_engine(
            f"sqlite:///{self._db_path}",
            connect_args={"check_same_thread": False, "timeout": busy_timeout},
            echo=False,
        )
        event.listen(self._engine, "connect", _on_connect)
        event.listen(self._engine, "begin", _on_begin)
        self._write_engine: Engine = self._engine.execution_options(immediate=True)

        # Create tables if they don't exist
        Base.metadata.create_all(self._engine)

    @property
    def path(self) -> Path:
        """Path of the SQLite file."""
        return self._db_path

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """Create a new database session.

        Raises:
            StoreUnavailable: If SQLite cannot be reached or stays locked.
        """
        try:
            with Session(self._engine) as session:
                yield session
        except OperationalError as e:
            raise StoreUnavailable(str(e.orig) if e.orig else str(e)) from e

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Open a write transaction, committed when the block exits.

        Everything done with the yielded session commits or rolls back as
        one unit.

        Raises:
            StoreUnavailable: If SQLite cannot be reached or stays locked.
        """
        try:
            with Session(self._write_engine, expire_on_commit=False) as session:
                with session.begin():
                    yield session
        except OperationalError as e:
            raise StoreUnavailable(str(e.orig) if e.orig else str(e)) from e

    # === Account operations ===

    def create_account(self, name: str) -> Account:
        """Create a new account.

        Args:
            name: Unique account name.

        Returns:
            Created Account object.

        Raises:
            IntegrityError: If name already exists.
        """
        with self._session() as session:
            account = Account(name=name)
            session.add(account)
            session.commit()
            session.refresh(account)
            session.expunge(account)
            return account

    def get_account_by_name(self, name: str) -> Account | None:
        """Get an account by name."""
        with self._session() as session:
            stmt = select(Account).where(Account.name == name)
            account = session.execute(stmt).scalar_one_or_none()
            if account:
                session.expunge(account)
            return account

    # === Token operations ===

    def create_token(
        self,
        account_id: int,
        expires_in: timedelta | None = None,
    ) -> tuple[str, Token]:
        """Create a new authentication token.

        Args:
            account_id: Account ID.
            expires_in: Optional expiration duration.

        Returns:
            Tuple of (raw_token, Token object).
        """
        raw_token = TOKEN_PREFIX + secrets.token_urlsafe(32)
        token_hash = hash_token(raw_token)
        expires_at = datetime.now(UTC) + expires_in if expires_in else None

        with self._session() as session:
            token = Token(
                account_id=account_id,
                token_hash=token_hash,
                expires_at=expires_at,
            )
            session.add(token)
            session.commit()
            session.refresh(token)
            session.expunge(token)
            return raw_token, token

    def validate_token(self, raw_token: str) -> Token | None:
        """Validate a token.

        Args:
            raw_token: Raw token string.

        Returns:
            Token if valid, None otherwise.
        """
        token_hash = hash_token(raw_token)
        with self._session() as session:
            stmt = select(Token).where(Token.token_hash == token_hash, Token.revoked == False)  # noqa: E712
            token = session.execute(stmt).scalar_one_or_none()

            if token is None:
                return None

            if token.expires_at and token.expires_at < datetime.now(UTC):
                return None

            session.expunge(token)
            return token

    def revoke_token(self, token_id: int) -> None:
        """Revoke a token.

        Args:
            token_id: Token ID to revoke.
        """
        with self._session() as session:
            token = session.get(Token, token_id)
            if token:
                token.revoked = True
                session.commit()

    # === Device operations ===

    def upsert_device(
        self,
        owner_id: int,
        device_id: str,
        seen_at: datetime,
        display_name: str | None = None,
    ) -> Device:
        """Record a sync from a device, registering it on first contact.

        Args:
            owner_id: Account ID.
            device_id: Client-chosen device identifier.
            seen_at: Time of the sync.
            display_name: Optional name; a placeholder is used for new
                devices without one, and existing names are kept.

        Returns:
            The device record after the upsert.
        """
        values: dict[str, Any] = {
            "owner_id": owner_id,
            "device_id": device_id,
            "display_name": display_name or PLACEHOLDER_DEVICE_NAME,
            "created_at": seen_at,
            "last_sync_at": seen_at,
        }
        set_: dict[str, Any] = {"last_sync_at": seen_at}
        if display_name:
            set_["display_name"] = display_name

        stmt = (
            sqlite_insert(Device)
            .values(**values)
            .on_conflict_do_update(index_elements=["owner_id", "device_id"], set_=set_)
        )
        with self.transaction() as session:
            session.execute(stmt)
            device = session.execute(
                select(Device).where(Device.owner_id == owner_id, Device.device_id == device_id)
            ).scalar_one()
            session.expunge(device)
        return device

    def get_device(self, owner_id: int, device_id: str) -> Device | None:
        """Get a device of an account."""
        with self._session() as session:
            device = session.get(Device, (owner_id, device_id))
            if device:
                session.expunge(device)
            return device

    def list_devices(self, owner_id: int) -> list[Device]:
        """List an account's devices, most recently synced first."""
        with self._session() as session:
            stmt = (
                select(Device)
                .where(Device.owner_id == owner_id)
                .order_by(Device.last_sync_at.desc())
            )
            devices = list(session.execute(stmt).scalars().all())
            for device in devices:
                session.expunge(device)
            return devices

    # === Entity store (inside a transaction) ===

    def get_entity(
        self,
        session: Session,
        kind: EntityKind,
        owner_id: int,
        entity_id: str,
    ) -> Entity | None:
        """Load an entity, tombstones included.

        Args:
            session: Open session.
            kind: Entity kind.
            owner_id: Account ID.
            entity_id: Client-minted id.

        Returns:
            The entity if the account has one with this id.
        """
        model = ENTITY_MODELS[kind]
        return session.get(model, {"owner_id": owner_id, "id": entity_id})

    def insert_entity(
        self,
        session: Session,
        kind: EntityKind,
        owner_id: int,
        entity_id: str,
        fields: dict[str, Any],
        device_id: str,
        timestamp: datetime,
    ) -> Entity:
        """Insert a new live entity.

        Args:
            session: Open transaction.
            kind: Entity kind.
            owner_id: Account ID.
            entity_id: Client-minted id.
            fields: Payload column values.
            device_id: Writing device.
            timestamp: Resolved timestamp of the create.

        Returns:
            The new entity.

        Raises:
            IntegrityError: If the account already has this id.
        """
        model = ENTITY_MODELS[kind]
        entity = model(
            **fields,
            owner_id=owner_id,
            id=entity_id,
            created_at=timestamp,
            updated_at=timestamp,
            deleted_at=None,
            last_writer_device=device_id,
        )
        session.add(entity)
        session.flush()
        return entity

    def update_entity_if_current(
        self,
        session: Session,
        kind: EntityKind,
        owner_id: int,
        entity_id: str,
        values: dict[str, Any],
        device_id: str,
        timestamp: datetime,
    ) -> bool:
        """Conditionally write an entity under last-write-wins.

        The row is only written if its stored updated_at is not newer than
        ``timestamp``; the comparison and the write are one statement.

        Args:
            session: Open transaction.
            kind: Entity kind.
            owner_id: Account ID.
            entity_id: Client-minted id.
            values: Column values to set (partial).
            device_id: Writing device.
            timestamp: Resolved timestamp of the change.

        Returns:
            True if the row was written, False if the stored version is newer
            (or the row does not exist).
        """
        model = ENTITY_MODELS[kind]
        stmt = (
            update(model)
            .where(
                model.owner_id == owner_id,
                model.id == entity_id,
                model.updated_at <= timestamp,
            )
            .values(**values, updated_at=timestamp, last_writer_device=device_id)
            .execution_options(synchronize_session=False)
        )
        result = session.execute(stmt)
        return result.rowcount == 1

    # === Operation log ===

    def find_logged_operation(
        self,
        session: Session,
        owner_id: int,
        *,
        operation_id: str | None,
        device_id: str,
        entity_id: str,
        operation: str,
        client_timestamp: datetime | None,
    ) -> OperationLog | None:
        """Find a previous delivery of the same operation.

        Matches on the client operation id when one is given, otherwise on
        the natural key (device, entity, operation, client-declared timestamp).
        Without an operation id or a client timestamp there is nothing to
        match on.
        """
        stmt = select(OperationLog).where(OperationLog.owner_id == owner_id)
        if operation_id is not None:
            stmt = stmt.where(OperationLog.operation_id == operation_id)
        elif client_timestamp is not None:
            stmt = stmt.where(
                OperationLog.device_id == device_id,
                OperationLog.entity_id == entity_id,
                OperationLog.operation == operation,
                OperationLog.client_timestamp == client_timestamp,
            )
        else:
            return None
        return session.execute(stmt.limit(1)).scalar_one_or_none()

    def append_operation(
        self,
        session: Session,
        owner_id: int,
        *,
        device_id: str,
        kind: EntityKind,
        entity_id: str,
        operation: str,
        payload: dict[str, Any],
        timestamp: datetime,
        operation_id: str | None,
        client_timestamp: datetime | None = None,
    ) -> OperationLog:
        """Append an entry to the operation log.

        ``timestamp`` is the resolved time the change was applied at;
        ``client_timestamp`` is the one the client declared, if any.

        Raises:
            IntegrityError: If the operation id was already logged.
        """
        entry = OperationLog(
            owner_id=owner_id,
            device_id=device_id,
            entity_kind=kind.value,
            entity_id=entity_id,
            operation=operation,
            payload=payload,
            timestamp=timestamp,
            client_timestamp=client_timestamp,
            operation_id=operation_id,
        )
        session.add(entry)
        session.flush()
        return entry

    def list_operations(
        self,
        owner_id: int,
        entity_id: str | None = None,
    ) -> list[OperationLog]:
        """List logged operations of an account in append order."""
        with self._session() as session:
            stmt = select(OperationLog).where(OperationLog.owner_id == owner_id)
            if entity_id is not None:
                stmt = stmt.where(OperationLog.entity_id == entity_id)
            stmt = stmt.order_by(OperationLog.id)
            entries = list(session.execute(stmt).scalars().all())
            for entry in entries:
                session.expunge(entry)
            return entries

    # === Queries ===

    def find_entity(self, kind: EntityKind, owner_id: int, entity_id: str) -> Entity | None:
        """Get one entity of an account, tombstones included."""
        with self._session() as session:
            entity = self.get_entity(session, kind, owner_id, entity_id)
            if entity:
                session.expunge(entity)
            return entity

    def list_entities(
        self,
        kind: EntityKind,
        owner_id: int,
        *,
        include_deleted: bool = False,
        updated_after: datetime | None = None,
        space_id: str | None = None,
        category_id: str | None = None,
    ) -> list[Entity]:
        """List entities of one kind for an account.

        Args:
            kind: Entity kind.
            owner_id: Account ID.
            include_deleted: Include tombstones.
            updated_after: Only entities with updated_at strictly later.
            space_id: Only children of this space (categories, items).
            category_id: Only items of this category.

        Returns:
            Entities ordered by updated_at when filtering on it, by order
            otherwise.
        """
        model = ENTITY_MODELS[kind]
        with self._session() as session:
            stmt = select(model).where(model.owner_id == owner_id)
            if not include_deleted:
                stmt = stmt.where(model.deleted_at.is_(None))
            if updated_after is not None:
                stmt = stmt.where(model.updated_at > updated_after)
            if space_id is not None and kind is not EntityKind.SPACE:
                stmt = stmt.where(model.space_id == space_id)
            if category_id is not None and kind is EntityKind.ITEM:
                stmt = stmt.where(model.category_id == category_id)
            if updated_after is not None:
                stmt = stmt.order_by(model.updated_at, model.id)
            else:
                stmt = stmt.order_by(model.order, model.created_at, model.id)
            entities = list(session.execute(stmt).scalars().all())
            for entity in entities:
                session.expunge(entity)
            return entities

    def get_changes_since(self, owner_id: int, since: datetime) -> dict[EntityKind, list[Entity]]:
        """Get every entity mutated after a checkpoint, tombstones included.

        Args:
            owner_id: Account ID.
            since: Checkpoint; only updated_at strictly later is returned.

        Returns:
            Entities per kind, ordered by updated_at.
        """
        return {
            kind: self.list_entities(kind, owner_id, include_deleted=True, updated_after=since)
            for kind in EntityKind
        }

    def get_live_entities(self, owner_id: int) -> dict[EntityKind, list[Entity]]:
        """Get every non-deleted entity of an account."""
        return {kind: self.list_entities(kind, owner_id) for kind in EntityKind}

    # === Statistics operations ===

    def get_account_stats(self, owner_id: int) -> dict[str, int]:
        """Get statistics for an account.

        Returns:
            Dict with live and deleted counts per kind, completed and pending
            live items, device count and operation log size.
        """
        stats: dict[str, int] = {}
        with self._session() as session:
            for kind, model in ENTITY_MODELS.items():
                stmt = (
                    select(model.deleted_at.is_(None), func.count())
                    .where(model.owner_id == owner_id)
                    .group_by(model.deleted_at.is_(None))
                )
                counts = {bool(live): count for live, count in session.execute(stmt).all()}
                stats[f"{kind.value}_count"] = counts.get(True, 0)
                stats[f"deleted_{kind.value}_count"] = counts.get(False, 0)

            completed_stmt = select(func.count()).select_from(Item).where(
                Item.owner_id == owner_id,
                Item.deleted_at.is_(None),
                Item.is_completed.is_(True),
            )
            stats["completed_item_count"] = session.execute(completed_stmt).scalar() or 0
            stats["pending_item_count"] = stats["item_count"] - stats["completed_item_count"]

            device_stmt = select(func.count()).select_from(Device).where(Device.owner_id == owner_id)
            stats["device_count"] = session.execute(device_stmt).scalar() or 0

            log_stmt = (
                select(func.count())
                .select_from(OperationLog)
                .where(OperationLog.owner_id == owner_id)
            )
            stats["operation_count"] = session.execute(log_stmt).scalar() or 0
        return stats


def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
    """Per-connection SQLite setup.

    Disables pysqlite's own transaction handling so BEGIN is emitted by
    _on_begin, then enables WAL and foreign keys.
    """
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _on_begin(conn: Connection) -> None:
    """Emit BEGIN, taking the write lock up front for write transactions."""
    if conn.get_execution_options().get("immediate"):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
    else:
        conn.exec_driver_sql("BEGIN")
