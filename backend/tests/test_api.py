"""Caller identity, profile, grid Excel export and app wiring."""
from datetime import date
from decimal import Decimal
from io import BytesIO
import pytest
from fastapi import HTTPException
from openpyxl import load_workbook

from scantrack import crud
from scantrack.accounting.grid_export import SUNDAY_FILL, build_grid_excel
from scantrack.routers.auth import get_identity, me
from scantrack.services.rollup import monthly_grid

from conftest import identity_of


@pytest.mark.asyncio
async def test_identity_requires_header(db, world):
    with pytest.raises(HTTPException) as exc:
        await get_identity(x_employee_id=None, db=db)
    assert exc.value.status_code == 401
    with pytest.raises(HTTPException) as exc:
        await get_identity(x_employee_id="abc", db=db)
    assert exc.value.status_code == 401
    for bad in ("²", "١٢", "9" * 40, "-3"):
        with pytest.raises(HTTPException) as exc:
            await get_identity(x_employee_id=bad, db=db)
        assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_identity_of_inactive_employee_is_refused(db, world):
    bob = world["bob"]
    await crud.deactivate_employee(db, bob)
    with pytest.raises(HTTPException) as exc:
        await get_identity(x_employee_id=str(bob.id), db=db)
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_identity_carries_role_and_location(db, world):
    identity = await get_identity(x_employee_id=f" {world['mgr'].id} ", db=db)
    assert identity.role == "location_manager"
    assert identity.location_id == world["north"].id


@pytest.mark.asyncio
async def test_me_reports_effective_rate(db, world):
    profile = await me(identity=identity_of(world["ann"]), db=db)
    assert profile["location_name"] == "North"
    assert profile["salary_type"] == "per_page"
    assert profile["scan_rate"] == Decimal("0.10")


@pytest.mark.asyncio
async def test_grid_export_layout(db, world):
    await crud.upsert_attendance(db, world["ann"].id, date(2026, 2, 2), "present", output_count=40)
    await crud.upsert_attendance(db, world["bob"].id, date(2026, 2, 2), "absent")
    await db.commit()
    grid = await monthly_grid(db, identity_of(world["admin"]), 2026, 2)
    wb = load_workbook(BytesIO(build_grid_excel(grid)))
    ws = wb.active

    assert ws.title == "2026-02"
    assert ws.cell(row=1, column=1).value == "Attendance 2026-02"
    # 3 lead columns, 28 days, 2 totals
    assert ws.max_column == 33
    # Feb 1 2026 is a Sunday
    assert ws.cell(row=2, column=4).fill.start_color.rgb == SUNDAY_FILL.start_color.rgb
    assert ws.cell(row=2, column=5).fill.fill_type is None
    values = {ws.cell(row=r, column=1).value: r for r in range(3, ws.max_row + 1)}
    assert ws.cell(row=values["Ann"], column=5).value == 40
    assert ws.cell(row=values["Bob"], column=5).value == "A"
    assert ws.cell(row=values["Total"], column=32).value == 40


def test_schedule_time_parsing():
    from scantrack.main import _parse_schedule_time

    assert _parse_schedule_time("02:30") == (2, 30)
    assert _parse_schedule_time("7") == (7, 0)
    assert _parse_schedule_time("25:00") == (0, 0)
    assert _parse_schedule_time("soon") == (0, 0)


def test_routes_registered():
    from scantrack.main import app

    paths = set(app.openapi()["paths"]) | {getattr(r, "path", None) for r in app.routes}
    for p in (
        "/api/records", "/api/records/bulk", "/api/records/monthly", "/api/dashboard/simple",
        "/api/dashboard/location/{location_id}", "/api/dashboard/my-stats", "/api/locations",
        "/api/employees", "/api/expenses/import", "/api/roles", "/api/settings", "/api/backup/restore",
        "/health",
    ):
        assert p in paths
