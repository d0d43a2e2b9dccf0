"""Role catalog API. System roles are read-only; custom roles are plain labels."""
from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from scantrack.database import get_db
from scantrack import crud, schemas
from scantrack.crud import RoleExistsError, RoleInUseError, SystemRoleError
from scantrack.routers.auth import get_identity
from scantrack.visibility import Identity, PermissionDeniedError, ensure_super_admin

router = APIRouter(prefix="/api/roles", tags=["roles"])


def _require_super_admin(identity: Identity) -> None:
    try:
        ensure_super_admin(identity)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))


async def _load(db: AsyncSession, role_pk: int):
    role = await crud.get_role(db, role_pk)
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    return role


@router.get("", response_model=List[schemas.RoleRead])
async def list_roles(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """System roles first, then by display name."""
    return await crud.list_roles(db)


@router.post("", response_model=schemas.RoleRead, status_code=201)
async def create_role(
    data: schemas.RoleCreate,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    _require_super_admin(identity)
    try:
        return await crud.create_role(db, data)
    except RoleExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.put("/{role_pk}", response_model=schemas.RoleRead)
async def update_role(
    role_pk: int,
    data: schemas.RoleUpdate,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    _require_super_admin(identity)
    role = await _load(db, role_pk)
    try:
        return await crud.update_role(db, role, data)
    except SystemRoleError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.delete("/{role_pk}")
async def delete_role(
    role_pk: int,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    _require_super_admin(identity)
    role = await _load(db, role_pk)
    try:
        await crud.delete_role(db, role)
    except SystemRoleError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except RoleInUseError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"message": "Role deleted successfully"}
