"""Sync API routes.

POST /api/sync applies a batch of client changes and returns everything
updated since the client's last checkpoint. GET /api/sync/initial returns
the live entity set for a fresh device.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from listsync.core.timestamps import parse_timestamp
from listsync.server.api.deps import get_orchestrator, get_owner_id
from listsync.server.schemas import (
    InitialLoadResponse,
    SyncRequest,
    SyncResponse,
    change_from_request,
    initial_load_to_response,
    sync_result_to_response,
)
from listsync.server.sync import MissingDevice, SyncOrchestrator

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.post("", response_model=SyncResponse)
def sync(
    request: SyncRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    owner_id: int = Depends(get_owner_id),
) -> SyncResponse:
    """Apply a batch of changes and return the delta.

    Clients should:
    1. On first sync, omit lastSyncTimestamp (or call /api/sync/initial)
    2. Store the syncTimestamp from the response
    3. Send it back as lastSyncTimestamp on the next sync

    Every submitted change gets an acknowledgement, in order; failed changes
    can be retried on their own.
    """
    last_sync = None
    if request.last_sync_timestamp:
        try:
            last_sync = parse_timestamp(request.last_sync_timestamp)
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid lastSyncTimestamp: {request.last_sync_timestamp}",
            ) from e

    try:
        result = orchestrator.sync(
            owner_id=owner_id,
            device_id=request.device_id,
            changes=[change_from_request(c) for c in request.changes],
            last_sync_timestamp=last_sync,
            device_name=request.device_name,
        )
    except MissingDevice as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return sync_result_to_response(result)


@router.get("/initial", response_model=InitialLoadResponse)
def initial_load(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    owner_id: int = Depends(get_owner_id),
) -> InitialLoadResponse:
    """Get every non-deleted space, category and item of the account."""
    load = orchestrator.initial_load(owner_id)
    return initial_load_to_response(load)
