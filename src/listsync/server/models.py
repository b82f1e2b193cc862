"""SQLAlchemy models for the listsync server.

This module defines the database schema using SQLAlchemy ORM:
- Accounts and their bearer tokens
- Devices that sync against an account
- The Space -> Category -> Item hierarchy (soft-deleted, never purged)
- The append-only operation log
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from listsync.core.types import EntityKind


class UTCDateTime(TypeDecorator[datetime]):
    """DateTime stored as naive UTC and loaded back as aware UTC.

    SQLite has no timezone support, so every value is normalized to UTC
    before it is written. Range comparisons in SQL then stay consistent.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None or value.tzinfo is None:
            return value
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None or value.tzinfo is not None:
            return value
        return value.replace(tzinfo=UTC)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


class Account(Base):
    """An account owning devices and entities."""

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    # Relationships
    tokens: Mapped[list[Token]] = relationship(
        "Token", back_populates="account", cascade="all, delete-orphan"
    )


class Token(Base):
    """Represents an authentication token."""

    __tablename__ = "tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Relationships
    account: Mapped[Account] = relationship("Account", back_populates="tokens")

    # Indexes
    __table_args__ = (Index("idx_tokens_hash", "token_hash"),)


class Device(Base):
    """A device syncing against an account."""

    __tablename__ = "devices"

    owner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True
    )
    device_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    last_sync_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class EntityMixin:
    """Columns shared by spaces, categories and items.

    The primary key is (owner_id, id): ids are minted by clients, so two
    accounts may never collide on each other's records.
    """

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_writer_device: Mapped[str] = mapped_column(String(128), nullable=False)

    @declared_attr
    def owner_id(cls) -> Mapped[int]:
        return mapped_column(
            Integer, ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True
        )


class Space(EntityMixin, Base):
    """Top level of the hierarchy."""

    __tablename__ = "spaces"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    icon: Mapped[str] = mapped_column(String(64), default="folder", nullable=False)
    color: Mapped[str] = mapped_column(String(32), default="#6366f1", nullable=False)
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (Index("idx_spaces_owner_updated", "owner_id", "updated_at"),)


class Category(EntityMixin, Base):
    """A list inside a space."""

    __tablename__ = "categories"

    # Soft reference, checked by the reference resolver instead of a foreign key
    space_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    icon: Mapped[str] = mapped_column(String(64), default="list", nullable=False)
    color: Mapped[str] = mapped_column(String(32), default="#8b5cf6", nullable=False)
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        Index("idx_categories_owner_updated", "owner_id", "updated_at"),
        Index("idx_categories_owner_space", "owner_id", "space_id"),
    )


class Item(EntityMixin, Base):
    """An entry in a category, or uncategorized when category_id is NULL."""

    __tablename__ = "items"

    space_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    category_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(16), default="custom", nullable=False)
    movie_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    book_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    place_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    priority: Mapped[str] = mapped_column(String(16), default="medium", nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    due_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index("idx_items_owner_updated", "owner_id", "updated_at"),
        Index("idx_items_owner_parents", "owner_id", "space_id", "category_id"),
    )


class OperationLog(Base):
    """Append-only record of every applied mutation."""

    __tablename__ = "operation_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    device_id: Mapped[str] = mapped_column(String(128), nullable=False)
    entity_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    operation: Mapped[str] = mapped_column(String(16), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    # As declared by the client, before clamping; None when the server assigned it
    client_timestamp: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    operation_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    logged_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    # Indexes
    __table_args__ = (
        # NULL operation ids never collide, so only client-tagged operations are unique
        Index("uq_oplog_operation", "owner_id", "operation_id", unique=True),
        Index(
            "idx_oplog_natural_key",
            "owner_id",
            "device_id",
            "entity_id",
            "operation",
            "client_timestamp",
        ),
        Index("idx_oplog_owner_logged", "owner_id", "logged_at"),
    )


ENTITY_MODELS: dict[EntityKind, type[Space] | type[Category] | type[Item]] = {
    EntityKind.SPACE: Space,
    EntityKind.CATEGORY: Category,
    EntityKind.ITEM: Item,
}

Entity = Space | Category | Item
