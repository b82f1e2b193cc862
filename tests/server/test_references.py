"""Tests for parent reference resolution."""

from datetime import UTC, datetime, timedelta

from listsync.core.types import EntityKind
from listsync.server.database import Database
from listsync.server.models import Account
from listsync.server.sync.references import ReferenceResolver

T0 = datetime(2024, 1, 1, tzinfo=UTC)


def _insert(db: Database, owner_id: int, kind: EntityKind, entity_id: str, **fields) -> None:
    with db.transaction() as session:
        db.insert_entity(session, kind, owner_id, entity_id, fields, "dev-1", T0)


def _resolve(db: Database, owner_id: int, kind: EntityKind, fields: dict) -> dict:
    resolver = ReferenceResolver(db)
    with db.transaction() as session:
        return resolver.resolve(session, owner_id, kind, "new", fields)


class TestReferenceResolver:
    """Tests for ReferenceResolver.resolve."""

    def test_existing_parent_is_kept(self, db: Database, account: Account) -> None:
        """A live, owned parent resolves to itself."""
        _insert(db, account.id, EntityKind.SPACE, "s1", name="Home")
        fields = _resolve(db, account.id, EntityKind.CATEGORY, {"space_id": "s1", "name": "x"})
        assert fields == {"space_id": "s1", "name": "x"}

    def test_missing_parent_is_dropped(self, db: Database, account: Account) -> None:
        """Unknown parents become NULL instead of failing."""
        fields = _resolve(db, account.id, EntityKind.CATEGORY, {"space_id": "ghost", "name": "x"})
        assert fields == {"space_id": None, "name": "x"}

    def test_foreign_parent_is_dropped(
        self, db: Database, account: Account, other_account: Account
    ) -> None:
        """A parent owned by another account does not resolve."""
        _insert(db, other_account.id, EntityKind.SPACE, "s1", name="Theirs")
        fields = _resolve(db, account.id, EntityKind.CATEGORY, {"space_id": "s1"})
        assert fields["space_id"] is None

    def test_deleted_parent_is_dropped(self, db: Database, account: Account) -> None:
        """A tombstoned parent does not resolve."""
        _insert(db, account.id, EntityKind.CATEGORY, "c1", name="Old")
        later = T0 + timedelta(minutes=1)
        with db.transaction() as session:
            db.update_entity_if_current(
                session, EntityKind.CATEGORY, account.id, "c1", {"deleted_at": later}, "dev-1", later
            )
        fields = _resolve(db, account.id, EntityKind.ITEM, {"category_id": "c1"})
        assert fields["category_id"] is None

    def test_absent_references_are_untouched(self, db: Database, account: Account) -> None:
        """Only references present in the patch are checked."""
        fields = _resolve(db, account.id, EntityKind.ITEM, {"title": "Milk"})
        assert fields == {"title": "Milk"}

    def test_item_inherits_category_space(self, db: Database, account: Account) -> None:
        """An item filed under a category lands in that category's space."""
        _insert(db, account.id, EntityKind.SPACE, "s1", name="Home")
        _insert(db, account.id, EntityKind.CATEGORY, "c1", name="Groceries", space_id="s1")
        fields = _resolve(db, account.id, EntityKind.ITEM, {"category_id": "c1", "title": "Milk"})
        assert fields == {"category_id": "c1", "space_id": "s1", "title": "Milk"}

    def test_explicit_item_space_is_kept(self, db: Database, account: Account) -> None:
        """A resolvable space named by the item wins over inheritance."""
        _insert(db, account.id, EntityKind.SPACE, "s1", name="Home")
        _insert(db, account.id, EntityKind.SPACE, "s2", name="Work")
        _insert(db, account.id, EntityKind.CATEGORY, "c1", name="Groceries", space_id="s1")
        fields = _resolve(
            db, account.id, EntityKind.ITEM, {"category_id": "c1", "space_id": "s2"}
        )
        assert fields == {"category_id": "c1", "space_id": "s2"}
