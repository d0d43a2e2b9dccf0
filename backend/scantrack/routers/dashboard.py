"""Dashboard API: fleet and per-location financials, personal stats. All reads are clamped to the caller."""
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from scantrack.database import get_db
from scantrack.accounting.financials import LocationNotFoundError, fleet_summary, location_summary
from scantrack.routers.auth import get_identity
from scantrack.services import rollup
from scantrack.services.month_window import resolve_window
from scantrack.visibility import Identity

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/simple")
async def get_fleet_summary(
    location_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """Revenue, labor cost, expenses and profit per active location, plus totals. No window = all time."""
    start, end = resolve_window(start_date, end_date, year, month)
    return await fleet_summary(db, identity, start, end, location_id=location_id)


@router.get("/location/{location_id}")
async def get_location_summary(
    location_id: int,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    start, end = resolve_window(start_date, end_date, year, month)
    try:
        return await location_summary(db, identity, location_id, start, end)
    except LocationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/my-stats")
async def get_my_stats(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """Today's cell, this month and all time for the caller."""
    return await rollup.employee_stats(db, identity)
