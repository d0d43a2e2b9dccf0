"""Caller identity. Login and sessions live in the upstream gateway, which forwards the
authenticated employee id in X-Employee-Id; here it is resolved to an active employee."""
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from scantrack.database import get_db
from scantrack import crud
from scantrack.services.compensation import effective_rate
from scantrack.visibility import Identity

router = APIRouter(prefix="/api/auth", tags=["auth"])


async def get_identity(
    x_employee_id: Optional[str] = Header(None, alias="X-Employee-Id"),
    db: AsyncSession = Depends(get_db),
) -> Identity:
    raw = (x_employee_id or "").strip()
    # ASCII digits only; int() would choke on "²" and an oversized id overflows the column
    if not raw or not raw.isascii() or not raw.isdecimal() or len(raw) > 18:
        raise HTTPException(status_code=401, detail="Access denied. No token provided.")
    emp = await crud.get_employee(db, int(raw))
    if not emp or not emp.is_active:
        raise HTTPException(status_code=401, detail="Invalid token.")
    return Identity(employee_id=emp.id, role=emp.role, location_id=emp.location_id)


@router.get("/me")
async def me(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """Profile of the caller plus the piece rate (or fixed salary) that currently applies."""
    emp = await crud.get_employee(db, identity.employee_id, load_location=True)
    mode, rate = effective_rate(emp, await crud.get_scan_rate(db))
    return {
        "id": emp.id,
        "username": emp.username,
        "full_name": emp.full_name,
        "role": emp.role,
        "location_id": emp.location_id,
        "location_name": emp.location.name if emp.location else None,
        "scanner_id": emp.scanner_id,
        "salary_type": mode,
        "custom_rate": emp.custom_rate,
        "fixed_salary": emp.fixed_salary,
        "scan_rate": rate,
    }
