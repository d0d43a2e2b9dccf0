"""Employees API. Super admins manage everyone; location managers only their own location and never
privileged roles. Deleting deactivates unless permanent=true and no attendance exists."""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from scantrack.database import get_db
from scantrack import crud, schemas
from scantrack.crud import EmployeeInUseError, UnknownRoleError, UsernameExistsError
from scantrack.routers.auth import get_identity
from scantrack.visibility import (
    Identity,
    PermissionDeniedError,
    ensure_can_assign_role,
    ensure_can_edit_employee,
    ensure_can_manage_employees,
)

router = APIRouter(prefix="/api/employees", tags=["employees"])


def _to_read(emp) -> schemas.EmployeeRead:
    return schemas.EmployeeRead(
        id=emp.id,
        username=emp.username,
        full_name=emp.full_name,
        role=emp.role,
        location_id=emp.location_id,
        location_name=emp.location.name if emp.location else None,
        scanner_id=emp.scanner_id,
        salary_type=emp.salary_type or "per_page",
        custom_rate=emp.custom_rate,
        fixed_salary=emp.fixed_salary,
        daily_target=emp.daily_target,
        is_active=emp.is_active,
        created_at=emp.created_at,
    )


async def _load_editable(db: AsyncSession, identity: Identity, employee_id: int):
    emp = await crud.get_employee(db, employee_id, load_location=True)
    if not emp:
        raise HTTPException(status_code=404, detail="Employee not found")
    try:
        ensure_can_edit_employee(identity, emp.location_id, emp.id, emp.role)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return emp


@router.get("", response_model=List[schemas.EmployeeRead])
async def list_employees(
    location_id: Optional[int] = Query(None),
    role: Optional[str] = Query(None),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """Active employees (super admins excluded). Non super admins only see their own location."""
    if identity.is_super_admin:
        employees = await crud.list_employees(db, location_id=location_id, role=role)
    else:
        employees = await crud.list_employees(
            db, location_id=identity.location_id, role=role, restrict_to_location=True
        )
    return [_to_read(e) for e in employees]


@router.post("", response_model=schemas.EmployeeRead, status_code=201)
async def create_employee(
    data: schemas.EmployeeCreate,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    try:
        ensure_can_manage_employees(identity)
        ensure_can_assign_role(identity, data.role)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    if not identity.is_super_admin:
        # managers always create at their own location
        data = data.model_copy(update={"location_id": identity.location_id})
    try:
        emp = await crud.create_employee(db, data)
    except UsernameExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except UnknownRoleError as e:
        raise HTTPException(status_code=400, detail=str(e))
    emp = await crud.get_employee(db, emp.id, load_location=True)
    return _to_read(emp)


@router.put("/{employee_id}", response_model=schemas.EmployeeRead)
async def update_employee(
    employee_id: int,
    data: schemas.EmployeeUpdate,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    emp = await _load_editable(db, identity, employee_id)
    try:
        ensure_can_assign_role(identity, data.role)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    if not identity.is_super_admin and "location_id" in data.model_fields_set:
        if data.location_id != identity.location_id:
            raise HTTPException(status_code=403, detail="You can only edit employees at your location")
    try:
        emp = await crud.update_employee(db, emp, data)
    except UsernameExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except UnknownRoleError as e:
        raise HTTPException(status_code=400, detail=str(e))
    emp = await crud.get_employee(db, emp.id, load_location=True)
    return _to_read(emp)


@router.delete("/{employee_id}")
async def delete_employee(
    employee_id: int,
    permanent: bool = Query(False),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    emp = await _load_editable(db, identity, employee_id)
    if emp.id == identity.employee_id:
        raise HTTPException(status_code=400, detail="You cannot remove yourself")
    if not permanent:
        await crud.deactivate_employee(db, emp)
        return {"message": "Employee deactivated"}
    try:
        await crud.delete_employee_permanently(db, emp)
    except EmployeeInUseError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"message": "Employee permanently deleted"}
