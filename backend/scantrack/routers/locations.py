"""Locations API: list with active head counts, create/update (super admin), soft or permanent delete."""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from scantrack.database import get_db
from scantrack import crud, schemas
from scantrack.crud import LocationInUseError, LocationNameExistsError
from scantrack.routers.auth import get_identity
from scantrack.visibility import Identity, PermissionDeniedError, ensure_super_admin

router = APIRouter(prefix="/api/locations", tags=["locations"])

RESPONSE_404 = {404: {"description": "Not found", "content": {"application/json": {"example": {"detail": "Location not found"}}}}}
RESPONSE_409 = {409: {"description": "Name taken or dependents block deletion", "content": {"application/json": {"example": {"detail": "Location name already exists"}}}}}


def _require_super_admin(identity: Identity) -> None:
    try:
        ensure_super_admin(identity)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))


def _to_read(loc, counts: dict) -> schemas.LocationRead:
    return schemas.LocationRead(
        id=loc.id,
        name=loc.name,
        address=loc.address,
        client_rate=loc.client_rate if loc.client_rate is not None else 0,
        is_active=loc.is_active,
        created_at=loc.created_at,
        employee_count=counts.get(loc.id, 0),
    )


@router.get("", response_model=List[schemas.LocationRead])
async def list_locations(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """Super admin sees every location; everyone else only their own active one."""
    if identity.is_super_admin:
        locations = await crud.list_locations(db)
    elif identity.location_id is None:
        locations = []
    else:
        locations = await crud.list_locations(db, only_id=identity.location_id, active_only=True)
    counts = await crud.count_active_employees_by_location(db)
    return [_to_read(loc, counts) for loc in locations]


@router.post("", response_model=schemas.LocationRead, status_code=201, responses={**RESPONSE_409})
async def create_location(
    data: schemas.LocationCreate,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    _require_super_admin(identity)
    try:
        loc = await crud.create_location(db, data)
    except LocationNameExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _to_read(loc, {})


@router.put("/{location_id}", response_model=schemas.LocationRead, responses={**RESPONSE_404, **RESPONSE_409})
async def update_location(
    location_id: int,
    data: schemas.LocationUpdate,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    _require_super_admin(identity)
    loc = await crud.get_location(db, location_id)
    if not loc:
        raise HTTPException(status_code=404, detail="Location not found")
    try:
        loc = await crud.update_location(db, loc, data)
    except LocationNameExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    counts = await crud.count_active_employees_by_location(db)
    return _to_read(loc, counts)


@router.delete("/{location_id}", responses={**RESPONSE_404, **RESPONSE_409})
async def delete_location(
    location_id: int,
    permanent: bool = Query(False, description="true: remove the row (only without dependents)"),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """Default is a reversible deactivation. permanent=true is refused while anything references the location."""
    _require_super_admin(identity)
    loc = await crud.get_location(db, location_id)
    if not loc:
        raise HTTPException(status_code=404, detail="Location not found")
    if not permanent:
        await crud.deactivate_location(db, loc)
        return {"message": "Location deactivated"}
    try:
        await crud.delete_location_permanently(db, loc)
    except LocationInUseError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"message": "Location permanently deleted"}
