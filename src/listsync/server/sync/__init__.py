"""Delta synchronization engine.

Architecture:
    SyncOrchestrator → ChangeApplier → (ReferenceResolver, conflict check) → Database

Components:
- **SyncOrchestrator**: one sync request end-to-end (device bookkeeping,
  ordered change application, delta computation)
- **ChangeApplier**: validation, idempotency check, create/update/delete
  dispatch, store write and log append in one transaction
- **ReferenceResolver**: existence/ownership check of parent references
- **incoming_wins**: last-write-wins predicate
- **Patches**: typed partial payloads with present/absent tracking
"""

from listsync.server.sync.applier import ChangeApplier, declared_timestamp, validate_change
from listsync.server.sync.conflicts import incoming_wins
from listsync.server.sync.errors import (
    ChangeError,
    InvalidChange,
    MissingDevice,
    NotFound,
    StoreUnavailable,
    SyncError,
    UnknownEntityKind,
)
from listsync.server.sync.orchestrator import SyncOrchestrator
from listsync.server.sync.patches import (
    PATCH_MODELS,
    CategoryPatch,
    EntityPatch,
    ItemPatch,
    SpacePatch,
    parse_patch,
)
from listsync.server.sync.references import ReferenceResolver
from listsync.server.sync.types import (
    Acknowledgement,
    ApplyResult,
    Change,
    InitialLoad,
    ServerUpdates,
    SyncResult,
)

__all__ = [
    # Engine
    "ChangeApplier",
    "ReferenceResolver",
    "SyncOrchestrator",
    "declared_timestamp",
    "incoming_wins",
    "validate_change",
    # Errors
    "ChangeError",
    "InvalidChange",
    "MissingDevice",
    "NotFound",
    "StoreUnavailable",
    "SyncError",
    "UnknownEntityKind",
    # Patches
    "PATCH_MODELS",
    "CategoryPatch",
    "EntityPatch",
    "ItemPatch",
    "SpacePatch",
    "parse_patch",
    # Types
    "Acknowledgement",
    "ApplyResult",
    "Change",
    "InitialLoad",
    "ServerUpdates",
    "SyncResult",
]
