"""Conflict resolution for concurrent writes.

Policy: last-write-wins by logical timestamp, at whole-entity granularity.
An incoming change wins iff its timestamp is greater than or equal to the
stored ``updated_at``; ties go to the incoming write.

The store applies the same rule as the condition of its conditional write
(see Database.update_entity_if_current), so the decision and the write are a
single atomic statement. ``incoming_wins`` is used to explain the outcome
and by callers that hold no transaction.
"""

from __future__ import annotations

from datetime import datetime

from listsync.core.timestamps import ensure_utc


def incoming_wins(stored_updated_at: datetime, incoming_timestamp: datetime) -> bool:
    """Decide whether an incoming change supersedes the stored version.

    Args:
        stored_updated_at: updated_at of the stored entity.
        incoming_timestamp: Resolved timestamp of the incoming change.

    Returns:
        True if the incoming change must be applied.
    """
    return ensure_utc(incoming_timestamp) >= ensure_utc(stored_updated_at)
