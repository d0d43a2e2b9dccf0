"""Settings API: key/value table; only scan_rate is writable (super admin)."""
from typing import Dict, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from scantrack.database import get_db
from scantrack import crud, schemas
from scantrack.routers.auth import get_identity
from scantrack.visibility import Identity, PermissionDeniedError, ensure_super_admin

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("", response_model=Dict[str, Optional[str]])
async def get_settings(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return await crud.list_settings(db)


@router.put("", response_model=Dict[str, Optional[str]])
async def update_settings(
    data: schemas.SettingsUpdate,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """The new scan_rate applies to every later calculation, including past records."""
    try:
        ensure_super_admin(identity)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    if data.scan_rate is not None:
        await crud.set_setting(db, crud.SCAN_RATE_KEY, str(data.scan_rate))
    return await crud.list_settings(db)
