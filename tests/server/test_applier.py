"""Tests for the change applier."""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta

import pytest

from listsync.core.types import EntityKind
from listsync.server.database import Database
from listsync.server.models import Account
from listsync.server.sync import ChangeApplier, InvalidChange, NotFound, UnknownEntityKind
from listsync.server.sync.applier import MAX_ID_LENGTH, validate_change
from listsync.server.sync.types import Change

T0 = datetime(2024, 1, 1, tzinfo=UTC)


def _change(
    operation: str,
    entity_id: str = "s1",
    kind: str = "space",
    data: dict | None = None,
    timestamp: datetime | None = T0,
    operation_id: str | None = None,
) -> Change:
    return Change(
        id=entity_id,
        entity_kind=kind,
        operation=operation,
        data=data,
        timestamp=timestamp.isoformat() if timestamp else None,
        operation_id=operation_id,
    )


@pytest.fixture
def applier(db: Database) -> ChangeApplier:
    return ChangeApplier(db)


class TestValidateChange:
    """Tests for structural validation."""

    def test_missing_fields_are_listed(self) -> None:
        change = Change(id=None, entity_kind="space", operation=None)
        with pytest.raises(InvalidChange, match="id, operation"):
            validate_change(change)

    def test_unknown_kind(self) -> None:
        with pytest.raises(UnknownEntityKind, match="Unknown entity kind: tag"):
            validate_change(_change("create", kind="tag", data={"name": "x"}))

    def test_unknown_operation(self) -> None:
        with pytest.raises(InvalidChange, match="Unknown operation: upsert"):
            validate_change(_change("upsert", data={"name": "x"}))

    def test_overlong_id(self) -> None:
        with pytest.raises(InvalidChange, match="id longer than"):
            validate_change(_change("create", entity_id="x" * (MAX_ID_LENGTH + 1)))

    def test_create_requires_name(self) -> None:
        with pytest.raises(InvalidChange, match="Cannot create space without: name"):
            validate_change(_change("create", data={"icon": "home"}))

    def test_non_string_id(self) -> None:
        change = Change(id=123, entity_kind="space", operation="create", data={"name": "x"})
        with pytest.raises(InvalidChange, match="id must be a string"):
            validate_change(change)

    def test_non_string_kind(self) -> None:
        change = Change(id="s1", entity_kind=["space"], operation="create", data={"name": "x"})
        with pytest.raises(InvalidChange, match="entityKind must be a string"):
            validate_change(change)

    def test_undecodable_entry(self) -> None:
        """An entry that was not an object fails with its decode error."""
        change = Change(id=None, entity_kind=None, operation=None, decode_error="Change must be an object")
        with pytest.raises(InvalidChange, match="Change must be an object"):
            validate_change(change)

    def test_delete_ignores_payload(self) -> None:
        """A delete is valid whatever data it carries."""
        _, _, patch = validate_change(_change("delete", data={"name": None}))
        assert patch.present_fields() == {}


class TestCreate:
    """Tests for create changes."""

    def test_create_inserts_and_logs(
        self, db: Database, account: Account, applier: ChangeApplier
    ) -> None:
        result = applier.apply(_change("create", data={"name": "Home"}), account.id, "phone", T0)

        assert result.conflict is False
        assert result.duplicate is False
        space = db.find_entity(EntityKind.SPACE, account.id, "s1")
        assert space is not None
        assert space.name == "Home"
        assert space.icon == "folder"
        assert space.created_at == T0
        assert space.updated_at == T0
        assert space.last_writer_device == "phone"

        ops = db.list_operations(account.id)
        assert len(ops) == 1
        assert ops[0].operation == "create"
        assert ops[0].payload == {"name": "Home"}

    def test_create_on_existing_is_a_no_op(
        self, db: Database, account: Account, applier: ChangeApplier
    ) -> None:
        """A second create with the same id neither writes nor logs."""
        applier.apply(_change("create", data={"name": "Home"}), account.id, "phone", T0)
        later = T0 + timedelta(minutes=1)
        result = applier.apply(
            _change("create", data={"name": "Other"}, timestamp=later), account.id, "laptop", later
        )

        assert result.conflict is False
        space = db.find_entity(EntityKind.SPACE, account.id, "s1")
        assert space is not None
        assert space.name == "Home"
        assert len(db.list_operations(account.id)) == 1

    def test_same_id_in_other_account_is_independent(
        self, db: Database, account: Account, other_account: Account, applier: ChangeApplier
    ) -> None:
        applier.apply(_change("create", data={"name": "Mine"}), account.id, "phone", T0)
        applier.apply(_change("create", data={"name": "Theirs"}), other_account.id, "phone", T0)

        mine = db.find_entity(EntityKind.SPACE, account.id, "s1")
        theirs = db.find_entity(EntityKind.SPACE, other_account.id, "s1")
        assert mine is not None and mine.name == "Mine"
        assert theirs is not None and theirs.name == "Theirs"

    def test_item_with_missing_category_is_uncategorized(
        self, db: Database, account: Account, applier: ChangeApplier
    ) -> None:
        change = _change("create", "i1", "item", {"title": "Milk", "categoryId": "ghost"})
        applier.apply(change, account.id, "phone", T0)

        item = db.find_entity(EntityKind.ITEM, account.id, "i1")
        assert item is not None
        assert item.category_id is None
        assert item.priority == "medium"
        assert item.tags == []


class TestUpdate:
    """Tests for update changes."""

    def test_newer_update_applies_present_fields_only(
        self, db: Database, account: Account, applier: ChangeApplier
    ) -> None:
        applier.apply(
            _change("create", data={"name": "Home", "color": "#000000"}), account.id, "phone", T0
        )
        later = T0 + timedelta(minutes=1)
        result = applier.apply(
            _change("update", data={"name": "House"}, timestamp=later), account.id, "laptop", later
        )

        assert result.conflict is False
        space = db.find_entity(EntityKind.SPACE, account.id, "s1")
        assert space is not None
        assert space.name == "House"
        assert space.color == "#000000"
        assert space.updated_at == later
        assert space.created_at == T0
        assert space.last_writer_device == "laptop"

    def test_older_update_is_a_conflict(
        self, db: Database, account: Account, applier: ChangeApplier
    ) -> None:
        later = T0 + timedelta(minutes=1)
        applier.apply(_change("create", data={"name": "Home"}, timestamp=later), account.id, "phone", later)
        result = applier.apply(
            _change("update", data={"name": "Stale"}), account.id, "laptop", T0
        )

        assert result.conflict is True
        space = db.find_entity(EntityKind.SPACE, account.id, "s1")
        assert space is not None
        assert space.name == "Home"
        assert len(db.list_operations(account.id)) == 1

    def test_equal_timestamp_update_wins(
        self, db: Database, account: Account, applier: ChangeApplier
    ) -> None:
        applier.apply(_change("create", data={"name": "Home"}), account.id, "phone", T0)
        result = applier.apply(
            _change("update", data={"name": "Tie"}, operation_id="op-2"), account.id, "laptop", T0
        )

        assert result.conflict is False
        space = db.find_entity(EntityKind.SPACE, account.id, "s1")
        assert space is not None
        assert space.name == "Tie"

    def test_update_of_unknown_entity_fails(
        self, account: Account, applier: ChangeApplier
    ) -> None:
        with pytest.raises(NotFound, match="Space not found: s1"):
            applier.apply(_change("update", data={"name": "x"}), account.id, "phone", T0)

    def test_update_of_tombstone_keeps_it_deleted(
        self, db: Database, account: Account, applier: ChangeApplier
    ) -> None:
        applier.apply(_change("create", data={"name": "Home"}), account.id, "phone", T0)
        t1 = T0 + timedelta(minutes=1)
        applier.apply(_change("delete", timestamp=t1), account.id, "phone", t1)
        t2 = T0 + timedelta(minutes=2)
        applier.apply(_change("update", data={"name": "Late"}, timestamp=t2), account.id, "laptop", t2)

        space = db.find_entity(EntityKind.SPACE, account.id, "s1")
        assert space is not None
        assert space.name == "Late"
        assert space.deleted_at == t1


class TestDelete:
    """Tests for delete changes."""

    def test_delete_tombstones(
        self, db: Database, account: Account, applier: ChangeApplier
    ) -> None:
        applier.apply(_change("create", data={"name": "Home"}), account.id, "phone", T0)
        later = T0 + timedelta(minutes=1)
        applier.apply(_change("delete", timestamp=later), account.id, "laptop", later)

        space = db.find_entity(EntityKind.SPACE, account.id, "s1")
        assert space is not None
        assert space.deleted_at == later
        assert space.updated_at == later
        assert db.list_entities(EntityKind.SPACE, account.id) == []
        assert [op.operation for op in db.list_operations(account.id)] == ["create", "delete"]

    def test_delete_of_unknown_entity_succeeds(
        self, db: Database, account: Account, applier: ChangeApplier
    ) -> None:
        result = applier.apply(_change("delete"), account.id, "phone", T0)

        assert result.conflict is False
        assert db.find_entity(EntityKind.SPACE, account.id, "s1") is None
        assert db.list_operations(account.id) == []

    def test_repeated_delete_does_not_move_tombstone(
        self, db: Database, account: Account, applier: ChangeApplier
    ) -> None:
        applier.apply(_change("create", data={"name": "Home"}), account.id, "phone", T0)
        t1 = T0 + timedelta(minutes=1)
        applier.apply(_change("delete", timestamp=t1), account.id, "phone", t1)
        t2 = T0 + timedelta(minutes=2)
        applier.apply(_change("delete", timestamp=t2), account.id, "laptop", t2)

        space = db.find_entity(EntityKind.SPACE, account.id, "s1")
        assert space is not None
        assert space.deleted_at == t1

    def test_older_delete_is_a_conflict(
        self, db: Database, account: Account, applier: ChangeApplier
    ) -> None:
        later = T0 + timedelta(minutes=1)
        applier.apply(_change("create", data={"name": "Home"}, timestamp=later), account.id, "phone", later)
        result = applier.apply(_change("delete"), account.id, "laptop", T0)

        assert result.conflict is True
        space = db.find_entity(EntityKind.SPACE, account.id, "s1")
        assert space is not None
        assert space.deleted_at is None


class TestIdempotency:
    """Tests for duplicate detection."""

    def test_same_operation_id_is_duplicate(
        self, db: Database, account: Account, applier: ChangeApplier
    ) -> None:
        applier.apply(
            _change("create", data={"name": "Home"}, operation_id="op-1"), account.id, "phone", T0
        )
        later = T0 + timedelta(minutes=1)
        result = applier.apply(
            _change("update", data={"name": "Again"}, timestamp=later, operation_id="op-1"),
            account.id,
            "phone",
            later,
        )

        assert result.duplicate is True
        space = db.find_entity(EntityKind.SPACE, account.id, "s1")
        assert space is not None
        assert space.name == "Home"

    def test_redelivered_update_matches_natural_key(
        self, db: Database, account: Account, applier: ChangeApplier
    ) -> None:
        applier.apply(_change("create", data={"name": "Home"}), account.id, "phone", T0)
        later = T0 + timedelta(minutes=1)
        update = _change("update", data={"name": "House"}, timestamp=later)
        applier.apply(update, account.id, "phone", later)
        result = applier.apply(update, account.id, "phone", later)

        assert result.duplicate is True
        assert len(db.list_operations(account.id)) == 2

    def test_same_change_from_other_device_is_not_duplicate(
        self, db: Database, account: Account, applier: ChangeApplier
    ) -> None:
        applier.apply(_change("create", data={"name": "Home"}), account.id, "phone", T0)
        later = T0 + timedelta(minutes=1)
        update = _change("update", data={"name": "House"}, timestamp=later)
        applier.apply(update, account.id, "phone", later)
        result = applier.apply(update, account.id, "laptop", later)

        assert result.duplicate is False
        assert len(db.list_operations(account.id)) == 3

    def test_server_timestamped_changes_are_not_deduplicated(
        self, db: Database, account: Account, applier: ChangeApplier
    ) -> None:
        """Without a client timestamp there is no natural key."""
        applier.apply(_change("create", data={"name": "Home"}), account.id, "phone", T0)
        later = T0 + timedelta(minutes=1)
        update = _change("update", data={"name": "House"}, timestamp=None)
        applier.apply(update, account.id, "phone", later)
        result = applier.apply(update, account.id, "phone", later)

        assert result.duplicate is False


class TestConcurrentWriters:
    """Two servers writing to the same database file at once."""

    def _race(self, db: Database, owner_id: int, changes: list[tuple[Change, datetime]]) -> list:
        """Apply each change from its own thread and Database instance, all at once."""
        barrier = threading.Barrier(len(changes))
        results: list = [None] * len(changes)
        errors: list[Exception] = []

        def run(index: int, change: Change, timestamp: datetime) -> None:
            other = Database(db.path)
            try:
                barrier.wait()
                results[index] = ChangeApplier(other).apply(change, owner_id, f"dev-{index}", timestamp)
            except Exception as e:
                errors.append(e)
            finally:
                other.close()

        threads = [
            threading.Thread(target=run, args=(i, change, ts))
            for i, (change, ts) in enumerate(changes)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)
        assert errors == []
        return results

    def test_same_operation_id_applies_once(
        self, db: Database, account: Account, applier: ChangeApplier
    ) -> None:
        applier.apply(_change("create", data={"name": "Home"}), account.id, "phone", T0)
        later = T0 + timedelta(minutes=1)
        change = _change("update", data={"name": "House"}, timestamp=later, operation_id="op-7")

        results = self._race(db, account.id, [(change, later), (change, later)])

        assert sorted(r.duplicate for r in results) == [False, True]
        updates = [op for op in db.list_operations(account.id) if op.operation == "update"]
        assert len(updates) == 1
        assert updates[0].operation_id == "op-7"

    def test_newest_update_wins(
        self, db: Database, account: Account, applier: ChangeApplier
    ) -> None:
        applier.apply(_change("create", data={"name": "Home"}), account.id, "phone", T0)
        t1 = T0 + timedelta(minutes=1)
        t2 = T0 + timedelta(minutes=2)
        older = _change("update", data={"name": "Older"}, timestamp=t1)
        newer = _change("update", data={"name": "Newer"}, timestamp=t2)

        older_result, newer_result = self._race(db, account.id, [(older, t1), (newer, t2)])

        assert newer_result.conflict is False
        space = db.find_entity(EntityKind.SPACE, account.id, "s1")
        assert space is not None
        assert space.name == "Newer"
        assert space.updated_at == t2
        # The older write is either overwritten or rejected, and logged only if written
        logged = [op.payload["name"] for op in db.list_operations(account.id) if op.operation == "update"]
        if older_result.conflict:
            assert logged == ["Newer"]
        else:
            assert logged == ["Older", "Newer"]
