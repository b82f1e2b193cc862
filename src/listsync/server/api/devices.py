"""Device listing API route."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from listsync.server.api.deps import get_db, get_owner_id
from listsync.server.database import Database
from listsync.server.schemas import DeviceResponse, device_to_response

router = APIRouter(prefix="/api/devices", tags=["devices"])


@router.get("", response_model=list[DeviceResponse])
def list_devices(
    db: Database = Depends(get_db),
    owner_id: int = Depends(get_owner_id),
) -> list[DeviceResponse]:
    """List the account's devices, most recently synced first."""
    return [device_to_response(d) for d in db.list_devices(owner_id)]
