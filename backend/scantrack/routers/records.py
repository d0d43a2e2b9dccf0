"""Attendance ledger API: single and bulk upsert, scoped listing, monthly grid (+ Excel export)."""
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from io import BytesIO
from sqlalchemy.ext.asyncio import AsyncSession

from scantrack.database import get_db
from scantrack import crud, schemas
from scantrack.accounting.grid_export import build_grid_excel
from scantrack.routers.auth import get_identity
from scantrack.services import rollup
from scantrack.services.month_window import resolve_window
from scantrack.visibility import (
    Identity,
    PermissionDeniedError,
    Scope,
    clamp_scope,
    ensure_can_manage_employees,
    ensure_can_record_for,
)

router = APIRouter(prefix="/api/records", tags=["records"])


@router.get("")
async def list_records(
    location_id: Optional[int] = Query(None),
    employee_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """Newest date first, then employee name. An explicit start/end pair wins over year/month."""
    start, end = resolve_window(start_date, end_date, year, month)
    scope = clamp_scope(identity, Scope(start, end, location_id, employee_id))
    return await crud.list_records(db, scope)


@router.post("")
async def record_attendance(
    data: schemas.AttendanceCreate,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """Upsert one (employee, date) cell; repeating the call overwrites the same row."""
    target_id = data.employee_id if data.employee_id is not None else identity.employee_id
    emp = await crud.get_employee(db, target_id)
    if not emp:
        raise HTTPException(status_code=404, detail="Employee not found")
    try:
        ensure_can_record_for(identity, emp.id, emp.location_id)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    record_id = await crud.upsert_attendance(
        db,
        emp.id,
        data.record_date,
        data.status,
        output_count=data.output_count,
        notes=data.notes,
        recorded_by=identity.employee_id,
    )
    return {"message": "Record saved successfully", "id": record_id}


@router.post("/bulk")
async def record_attendance_bulk(
    data: schemas.AttendanceBulkRequest,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """
    Batch entry (typically one date, many employees). Each row is saved on its own:
    unknown employees or failing rows are listed under failed and do not undo the rest.
    A manager's batch touching another location is refused as a whole.
    """
    try:
        ensure_can_manage_employees(identity)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    if not identity.is_super_admin:
        for employee_id in {e.employee_id for e in data.records}:
            emp = await crud.get_employee(db, employee_id)
            if not emp:
                continue
            try:
                ensure_can_record_for(identity, emp.id, emp.location_id)
            except PermissionDeniedError as e:
                raise HTTPException(status_code=403, detail=str(e))
    result = await crud.bulk_upsert_attendance(db, data.records, recorded_by=identity.employee_id)
    return {
        "message": f"{len(result['saved'])} records saved successfully",
        "saved": result["saved"],
        "failed": result["failed"],
    }


def _grid_month(year: Optional[int], month: Optional[int]) -> tuple[int, int]:
    today = date.today()
    return (year or today.year, month or today.month)


@router.get("/monthly")
async def monthly_grid(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    location_id: Optional[int] = Query(None),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """Employees x days of the month with per-employee and per-day totals. Defaults to the current month."""
    y, m = _grid_month(year, month)
    return await rollup.monthly_grid(db, identity, y, m, location_id=location_id)


@router.get("/monthly/export")
async def export_monthly_grid(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    location_id: Optional[int] = Query(None),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    y, m = _grid_month(year, month)
    grid = await rollup.monthly_grid(db, identity, y, m, location_id=location_id)
    content = build_grid_excel(grid)
    filename = f"attendance_{y}{m:02d}.xlsx"
    return StreamingResponse(
        BytesIO(content),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
