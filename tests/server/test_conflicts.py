"""Tests for last-write-wins conflict resolution."""

from datetime import UTC, datetime, timedelta, timezone

from listsync.server.sync.conflicts import incoming_wins

T = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


class TestIncomingWins:
    """Tests for incoming_wins."""

    def test_newer_incoming_wins(self) -> None:
        assert incoming_wins(T, T + timedelta(seconds=1)) is True

    def test_older_incoming_loses(self) -> None:
        assert incoming_wins(T, T - timedelta(seconds=1)) is False

    def test_tie_favours_incoming(self) -> None:
        assert incoming_wins(T, T) is True

    def test_compares_across_timezones(self) -> None:
        """Same instant in another offset is a tie, not a loss."""
        paris = timezone(timedelta(hours=1))
        assert incoming_wins(T, T.astimezone(paris)) is True
        assert incoming_wins(T, (T - timedelta(minutes=1)).astimezone(paris)) is False

    def test_naive_values_are_utc(self) -> None:
        """Naive datetimes from SQLite are treated as UTC."""
        assert incoming_wins(T.replace(tzinfo=None), T) is True
