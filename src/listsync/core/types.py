"""Shared types for listsync.

This module defines the enums used by the sync engine, the API layer
and the command line.
"""

from __future__ import annotations

from enum import Enum


class EntityKind(str, Enum):
    """Kind of entity in the Space -> Category -> Item hierarchy."""

    SPACE = "space"
    CATEGORY = "category"
    ITEM = "item"


class Operation(str, Enum):
    """Mutation carried by a change."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SyncPhase(str, Enum):
    """Phase of a sync request.

    A request walks IDLE -> DEVICE_UPDATE -> APPLYING_CHANGES ->
    COMPUTING_DELTA -> RESPONDING and returns to IDLE when it completes.
    """

    IDLE = "idle"
    DEVICE_UPDATE = "device_update"
    APPLYING_CHANGES = "applying_changes"
    COMPUTING_DELTA = "computing_delta"
    RESPONDING = "responding"
