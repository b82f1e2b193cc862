"""Sync orchestration.

A SyncOrchestrator owns one sync request end-to-end:

    IDLE -> DEVICE_UPDATE -> APPLYING_CHANGES -> COMPUTING_DELTA -> RESPONDING -> IDLE

Faults while updating the device record or computing the delta abort the
request. Faults while applying changes are contained to the offending change
and reported in its acknowledgement.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from listsync.core.config import DEFAULT_MAX_CLOCK_SKEW_SECONDS
from listsync.core.timestamps import EPOCH, ensure_utc, utcnow
from listsync.core.types import SyncPhase
from listsync.server.sync.applier import ChangeApplier, declared_timestamp
from listsync.server.sync.errors import (
    ChangeError,
    MissingDevice,
    StoreUnavailable,
    SyncError,
)
from listsync.server.sync.types import (
    Acknowledgement,
    Change,
    InitialLoad,
    ServerUpdates,
    SyncResult,
)

if TYPE_CHECKING:
    from listsync.server.database import Database

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Runs sync requests for the accounts of one database."""

    def __init__(
        self,
        db: Database,
        applier: ChangeApplier | None = None,
        max_clock_skew: timedelta | None = timedelta(seconds=DEFAULT_MAX_CLOCK_SKEW_SECONDS),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            db: Database instance.
            applier: Change applier (defaults to one on ``db``).
            max_clock_skew: Tolerance for client timestamps ahead of server
                time; later ones are clamped to server time. None disables
                clamping.
            clock: Source of server time.
        """
        self._db = db
        self._applier = applier or ChangeApplier(db)
        self._max_clock_skew = max_clock_skew
        self._clock = clock
        self.phase = SyncPhase.IDLE

    def _enter(self, phase: SyncPhase) -> None:
        logger.debug("Sync phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase

    def sync(
        self,
        owner_id: int,
        device_id: str | None,
        changes: Sequence[Change],
        last_sync_timestamp: datetime | None = None,
        device_name: str | None = None,
    ) -> SyncResult:
        """Run one sync request.

        Args:
            owner_id: Authenticated account.
            device_id: Calling device (required).
            changes: Changes to apply, in the order the client produced them.
            last_sync_timestamp: Checkpoint from the previous sync; None
                means the epoch, i.e. "send everything".
            device_name: Optional display name for the device record.

        Returns:
            SyncResult with one acknowledgement per change, the delta and
            the next checkpoint.

        Raises:
            MissingDevice: If no device identifier was given.
            StoreUnavailable: If the database cannot be reached.
        """
        if device_id is None or not device_id.strip():
            raise MissingDevice()
        since = ensure_utc(last_sync_timestamp) if last_sync_timestamp else EPOCH

        try:
            self._enter(SyncPhase.DEVICE_UPDATE)
            self._db.upsert_device(owner_id, device_id, self._clock(), device_name)

            self._enter(SyncPhase.APPLYING_CHANGES)
            # Strictly sequential: later changes may depend on earlier ones
            acknowledgements = [
                self._apply_one(change, owner_id, device_id) for change in changes
            ]

            self._enter(SyncPhase.COMPUTING_DELTA)
            sync_timestamp = self._clock()
            updates = ServerUpdates.from_kinds(self._db.get_changes_since(owner_id, since))

            self._enter(SyncPhase.RESPONDING)
            failed = sum(1 for ack in acknowledgements if not ack.success)
            conflicts = sum(1 for ack in acknowledgements if ack.conflict)
            logger.info(
                "Sync account=%s device=%s: %d changes (%d failed, %d conflicts), "
                "%d updates since %s",
                owner_id,
                device_id,
                len(acknowledgements),
                failed,
                conflicts,
                updates.total,
                since.isoformat(),
            )
            return SyncResult(
                acknowledgements=acknowledgements,
                server_updates=updates,
                sync_timestamp=sync_timestamp,
            )
        except SyncError as e:
            logger.error(
                "Sync account=%s device=%s aborted during %s: %s",
                owner_id,
                device_id,
                self.phase.value,
                e,
            )
            raise
        finally:
            self._enter(SyncPhase.IDLE)

    def initial_load(self, owner_id: int) -> InitialLoad:
        """Get the live entity set of an account for a fresh device.

        Tombstones are left out: a new device has nothing to delete.

        Args:
            owner_id: Authenticated account.

        Returns:
            InitialLoad with all non-deleted entities and a checkpoint.
        """
        sync_timestamp = self._clock()
        updates = ServerUpdates.from_kinds(self._db.get_live_entities(owner_id))
        return InitialLoad(server_updates=updates, sync_timestamp=sync_timestamp)

    def resolve_timestamp(self, change: Change) -> datetime:
        """Resolve the logical timestamp of a change.

        Args:
            change: Change as received.

        Returns:
            The client-declared timestamp, or server time if there is none or
            it lies beyond the clock skew tolerance.

        Raises:
            InvalidChange: If the declared timestamp cannot be parsed.
        """
        now = self._clock()
        declared = declared_timestamp(change)
        if declared is None:
            return now
        if self._max_clock_skew is not None and declared > now + self._max_clock_skew:
            logger.warning(
                "Clamping timestamp %s of %s %s to server time %s",
                change.timestamp,
                change.entity_kind,
                change.id,
                now.isoformat(),
            )
            return now
        return declared

    def _apply_one(self, change: Change, owner_id: int, device_id: str) -> Acknowledgement:
        """Apply one change, folding any per-change failure into its acknowledgement."""
        ack = Acknowledgement(
            id=change.id,
            entity_kind=change.entity_kind,
            operation=change.operation,
            success=False,
        )
        try:
            timestamp = self.resolve_timestamp(change)
            result = self._applier.apply(change, owner_id, device_id, timestamp)
        except StoreUnavailable:
            raise
        except ChangeError as e:
            logger.info(
                "Change %s %s %s rejected: %s",
                change.operation,
                change.entity_kind,
                change.id,
                e,
            )
            ack.error = str(e)
            return ack
        except Exception as e:
            logger.exception(
                "Unexpected error applying %s %s %s",
                change.operation,
                change.entity_kind,
                change.id,
            )
            ack.error = f"Internal error: {e}"
            return ack

        ack.success = True
        ack.conflict = result.conflict
        ack.duplicate = result.duplicate
        return ack
