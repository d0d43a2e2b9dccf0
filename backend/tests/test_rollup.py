"""Rollup engine: order independence, fixed-pay proration, status counting, monthly grid."""
from datetime import date
from decimal import Decimal
import random
import pytest

from scantrack import crud
from scantrack.models import Employee
from scantrack.routers import records as records_router
from scantrack.services.rollup import accumulate, build_monthly_grid, employee_stats, grid_dates, rollup
from scantrack.visibility import Scope

from conftest import identity_of


def _row(emp_id, d, status="present", output=None, **comp):
    row = {
        "employee_id": emp_id,
        "record_date": d,
        "status": status,
        "output_count": output,
        "notes": None,
        "full_name": f"E{emp_id}",
        "user_role": "scanner_operator",
        "location_id": 1,
        "salary_type": "per_page",
        "custom_rate": None,
        "fixed_salary": None,
    }
    row.update(comp)
    return row


def test_totals_do_not_depend_on_row_order():
    rows = []
    for day in range(1, 29):
        rows.append(_row(1, date(2026, 2, day), output=day * 7))
        rows.append(_row(2, date(2026, 2, day), salary_type="fixed", fixed_salary=Decimal("1000")))
        rows.append(_row(3, date(2026, 2, day), output=13, custom_rate=Decimal("0.0333")))
    expected = accumulate(rows, "0.10")
    shuffled = list(rows)
    for seed in range(5):
        random.Random(seed).shuffle(shuffled)
        assert accumulate(shuffled, "0.10") == expected


def test_fixed_salary_prorated_over_present_days():
    rows = [_row(7, date(2026, 4, day), salary_type="fixed", fixed_salary=Decimal("3000")) for day in range(1, 16)]
    result = accumulate(rows, "0.10")
    assert result.total_earnings == Decimal("1500.00")
    assert result.employee(7).days_present == 15
    assert result.total_output == 0


def test_full_month_fixed_salary_is_exact():
    """1/31 per day must still add up to the full salary."""
    rows = [_row(7, date(2026, 1, day), salary_type="fixed", fixed_salary=Decimal("1000")) for day in range(1, 32)]
    assert accumulate(rows).total_earnings == Decimal("1000.00")


def test_window_spanning_months_prorates_each_day_by_its_own_month():
    rows = [
        _row(7, date(2026, 1, 31), salary_type="fixed", fixed_salary=Decimal("3100")),
        _row(7, date(2026, 2, 1), salary_type="fixed", fixed_salary=Decimal("2800")),
    ]
    assert accumulate(rows).total_earnings == Decimal("200.00")


def test_non_present_rows_only_count_status():
    rows = [
        _row(1, date(2026, 2, 2), output=50),
        _row(1, date(2026, 2, 3), status="absent", output=999),
        _row(1, date(2026, 2, 4), status="holiday"),
    ]
    result = accumulate(rows, "0.10")
    emp = result.employee(1)
    assert emp.total_output == 50
    assert emp.total_earnings == Decimal("5.00")
    assert emp.days_present == 1
    assert emp.status_counts == {"absent": 1, "holiday": 1, "present": 1}
    assert [d.record_date for d in result.per_date] == [date(2026, 2, 2), date(2026, 2, 3), date(2026, 2, 4)]
    assert result.per_date[1].status_counts == {"absent": 1}


def test_empty_rollup_is_zero():
    result = accumulate([], "0.10")
    assert result.total_output == 0
    assert result.total_earnings == Decimal("0.00")
    assert result.per_employee == []


@pytest.mark.asyncio
async def test_february_mixed_location(db, world):
    """A piece-rate at 0.10 with 200 pages, B fixed 6000 present all 28 days."""
    north = world["north"]
    b = Employee(username="b_fixed", full_name="B Fixed", role="file_handler", location_id=north.id,
                 salary_type="fixed", fixed_salary=Decimal("6000"))
    db.add(b)
    await db.flush()
    ann = world["ann"]
    await crud.upsert_attendance(db, ann.id, date(2026, 2, 10), "present", output_count=200)
    for day in range(1, 29):
        await crud.upsert_attendance(db, b.id, date(2026, 2, day), "present", output_count=0)
    await db.commit()

    result = await rollup(db, Scope(date(2026, 2, 1), date(2026, 2, 28), location_id=north.id))
    assert result.employee(ann.id).total_earnings == Decimal("20.00")
    assert result.employee(b.id).total_earnings == Decimal("6000.00")
    assert result.total_earnings == Decimal("6020.00")
    assert result.total_output == 200


@pytest.mark.asyncio
async def test_rate_change_applies_to_past_records(db, world):
    ann = world["ann"]
    await crud.upsert_attendance(db, ann.id, date(2026, 1, 5), "present", output_count=100)
    await db.commit()
    scope = Scope(employee_id=ann.id)
    assert (await rollup(db, scope)).total_earnings == Decimal("10.00")
    await crud.set_setting(db, crud.SCAN_RATE_KEY, "0.20")
    await db.commit()
    assert (await rollup(db, scope)).total_earnings == Decimal("20.00")


def test_grid_dates_flag_sundays():
    dates = grid_dates(2026, 2)
    assert len(dates) == 28
    assert dates[0] == {"date": "2026-02-01", "day": 1, "day_name": "Sun", "is_sunday": True}
    assert [d["day"] for d in dates if d["is_sunday"]] == [1, 8, 15, 22]


class _Emp:
    def __init__(self, id, full_name, role, **kw):
        self.id = id
        self.full_name = full_name
        self.role = role
        self.scanner_id = kw.get("scanner_id")
        self.location_id = 1
        self.location = None
        self.salary_type = kw.get("salary_type", "per_page")
        self.custom_rate = kw.get("custom_rate")
        self.fixed_salary = kw.get("fixed_salary")
        self.daily_target = None


def test_grid_groups_by_role_order():
    employees = [
        _Emp(1, "Zed", "location_manager"),
        _Emp(2, "Amy", "file_handler"),
        _Emp(3, "Cal", "scanner_operator"),
        _Emp(4, "Ben", "scanner_operator"),
        _Emp(5, "Dee", "auditor"),
    ]
    rows = [
        _row(3, date(2026, 2, 2), output=40),
        _row(4, date(2026, 2, 2), output=60),
        _row(4, date(2026, 2, 3), status="absent"),
        _row(99, date(2026, 2, 2), output=1000),
    ]
    grid = build_monthly_grid(employees, rows, 2026, 2, "0.10")

    assert [g["role"] for g in grid["groups"]] == ["scanner_operator", "file_handler", "location_manager", "auditor"]
    assert [r["full_name"] for r in grid["groups"][0]["rows"]] == ["Ben", "Cal"]
    ben = grid["groups"][0]["rows"][0]
    assert ben["daily"]["2026-02-02"] == {"status": "present", "output_count": 60, "notes": None}
    assert ben["daily"]["2026-02-03"]["status"] == "absent"
    assert ben["daily"]["2026-02-04"] is None
    assert ben["total_output"] == 60
    assert ben["total_earnings"] == Decimal("6.00")
    assert grid["footer"]["per_date"]["2026-02-02"] == 100
    assert grid["footer"]["total_output"] == 100
    assert grid["footer"]["total_earnings"] == Decimal("10.00")
    assert grid["days_in_month"] == 28


@pytest.mark.asyncio
async def test_monthly_grid_endpoint_clamps_manager(db, world):
    await crud.upsert_attendance(db, world["ann"].id, date(2026, 2, 2), "present", output_count=10)
    await crud.upsert_attendance(db, world["sam"].id, date(2026, 2, 2), "present", output_count=10)
    await db.commit()
    grid = await records_router.monthly_grid(
        year=2026, month=2, location_id=world["south"].id, identity=identity_of(world["mgr"]), db=db,
    )
    names = [r["full_name"] for r in grid["rows"]]
    assert "Sam" not in names
    assert "Super Admin" not in names
    assert {"Ann", "Bob", "Mona Manager"} <= set(names)
    assert grid["location_id"] == world["north"].id
    assert grid["footer"]["total_output"] == 10


@pytest.mark.asyncio
async def test_employee_stats_today_month_all_time(db, world):
    ann = world["ann"]
    await crud.upsert_attendance(db, ann.id, date(2026, 1, 20), "present", output_count=100)
    await crud.upsert_attendance(db, ann.id, date(2026, 2, 2), "present", output_count=50)
    await crud.upsert_attendance(db, ann.id, date(2026, 2, 3), "absent")
    await crud.upsert_attendance(db, world["bob"].id, date(2026, 2, 2), "present", output_count=500)
    await db.commit()

    stats = await employee_stats(db, identity_of(ann), today=date(2026, 2, 3))
    assert stats["today"]["status"] == "absent"
    assert stats["today"]["output_count"] == 0
    assert stats["this_month"] == {"total_output": 50, "earnings": Decimal("5.00"), "days_present": 1}
    assert stats["all_time"] == {"total_output": 150, "earnings": Decimal("15.00"), "days_present": 2}

    stats = await employee_stats(db, identity_of(ann), today=date(2026, 2, 4))
    assert stats["today"]["status"] == "not_entered"
