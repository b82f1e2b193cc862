"""Main API router that includes all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from listsync.server.api import devices, entities, health, sync

router = APIRouter()

# Include all API routers
router.include_router(health.router)
router.include_router(sync.router)
router.include_router(devices.router)
router.include_router(entities.router)
