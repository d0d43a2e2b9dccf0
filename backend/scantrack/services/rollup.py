"""
Rollup engine: folds attendance ledger rows into output and earnings totals.

accumulate() is pure and takes the rows fetched by crud.fetch_ledger_rows() (each row carries the
employee's compensation fields) plus the default piece rate. Sums use an exact decimal context, so
totals do not depend on row order; money is rounded to cents only when results are emitted.

Only present rows add output and earnings. Every row, present or not, marks its day as accounted
for in the status counts, so "absent" stays distinguishable from "not entered".
"""
from collections import defaultdict
from dataclasses import dataclass, field, asdict, replace
from datetime import date
from decimal import Decimal, Context, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from scantrack import crud
from scantrack.services.compensation import daily_contribution, effective_rate, ZERO
from scantrack.services.month_window import (
    days_in_month, first_day_of_month, last_day_of_month, iter_month_days,
)
from scantrack.visibility import Identity, Scope, clamp_scope

CENTS = Decimal("0.01")
# wide enough that adding per-day fractions never rounds
EXACT = Context(prec=60)

PRESENT = "present"
ROLE_ORDER = ("scanner_operator", "file_handler", "location_manager")


def to_money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass
class EmployeeTotals:
    employee_id: int
    full_name: Optional[str] = None
    role: Optional[str] = None
    location_id: Optional[int] = None
    total_output: int = 0
    total_earnings: Decimal = ZERO
    days_present: int = 0
    status_counts: Dict[str, int] = field(default_factory=dict)


@dataclass
class DateTotals:
    record_date: date
    total_output: int = 0
    total_earnings: Decimal = ZERO
    status_counts: Dict[str, int] = field(default_factory=dict)


@dataclass
class RollupResult:
    total_output: int = 0
    total_earnings: Decimal = ZERO
    per_employee: List[EmployeeTotals] = field(default_factory=list)
    per_date: List[DateTotals] = field(default_factory=list)

    def employee(self, employee_id: int) -> Optional[EmployeeTotals]:
        for e in self.per_employee:
            if e.employee_id == employee_id:
                return e
        return None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def accumulate(rows: Iterable[Mapping[str, Any]], default_rate: Any = None) -> RollupResult:
    emp_out: Dict[int, int] = defaultdict(int)
    emp_pay: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    emp_days: Dict[int, int] = defaultdict(int)
    emp_status: Dict[int, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
    emp_info: Dict[int, Mapping[str, Any]] = {}
    day_out: Dict[date, int] = defaultdict(int)
    day_pay: Dict[date, Decimal] = defaultdict(lambda: ZERO)
    day_status: Dict[date, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
    total_out = 0
    total_pay = ZERO

    for row in rows:
        emp_id = row["employee_id"]
        d = row["record_date"]
        status = row.get("status") or PRESENT
        emp_info.setdefault(emp_id, row)
        emp_status[emp_id][status] += 1
        day_status[d][status] += 1
        if status != PRESENT:
            continue
        output = int(row.get("output_count") or 0)
        pay = daily_contribution(row, d, output, True, default_rate=default_rate)
        emp_out[emp_id] += output
        emp_days[emp_id] += 1
        emp_pay[emp_id] = EXACT.add(emp_pay[emp_id], pay)
        day_out[d] += output
        day_pay[d] = EXACT.add(day_pay[d], pay)
        total_out += output
        total_pay = EXACT.add(total_pay, pay)

    per_employee = [
        EmployeeTotals(
            employee_id=emp_id,
            full_name=info.get("full_name"),
            role=info.get("user_role") or info.get("role"),
            location_id=info.get("location_id"),
            total_output=emp_out[emp_id],
            total_earnings=to_money(emp_pay[emp_id]),
            days_present=emp_days[emp_id],
            status_counts=dict(sorted(emp_status[emp_id].items())),
        )
        for emp_id, info in emp_info.items()
    ]
    per_employee.sort(key=lambda e: ((e.full_name or ""), e.employee_id))
    per_date = [
        DateTotals(
            record_date=d,
            total_output=day_out[d],
            total_earnings=to_money(day_pay[d]),
            status_counts=dict(sorted(counts.items())),
        )
        for d, counts in sorted(day_status.items())
    ]
    return RollupResult(
        total_output=total_out,
        total_earnings=to_money(total_pay),
        per_employee=per_employee,
        per_date=per_date,
    )


async def rollup(db: AsyncSession, scope: Scope, default_rate: Any = None) -> RollupResult:
    """Rollup over an already clamped scope. The default rate is re-read unless given."""
    if default_rate is None:
        default_rate = await crud.get_scan_rate(db)
    rows = await crud.fetch_ledger_rows(db, scope)
    return accumulate(rows, default_rate)


# ---------- monthly grid ----------
def _role_sort_key(role: Optional[str]):
    if role in ROLE_ORDER:
        return (0, ROLE_ORDER.index(role), "")
    return (1, 0, role or "")


def grid_dates(year: int, month: int) -> List[Dict[str, Any]]:
    """Column headers. Sundays are flagged for rendering only."""
    return [
        {
            "date": d.isoformat(),
            "day": d.day,
            "day_name": d.strftime("%a"),
            "is_sunday": d.weekday() == 6,
        }
        for d in iter_month_days(year, month)
    ]


def build_monthly_grid(
    employees: Iterable[Any],
    rows: Iterable[Mapping[str, Any]],
    year: int,
    month: int,
    default_rate: Any = None,
) -> Dict[str, Any]:
    """
    One row per employee (grouped by role), one cell per calendar day.
    A cell is None when nothing was recorded, else {status, output_count, notes}.
    Rows of employees not in `employees` are ignored.
    """
    employees = list(employees)
    wanted = {e.id for e in employees}
    rows = [r for r in rows if r["employee_id"] in wanted]
    dates = grid_dates(year, month)

    cells: Dict[int, Dict[str, Dict[str, Any]]] = defaultdict(dict)
    for r in rows:
        cells[r["employee_id"]][r["record_date"].isoformat()] = {
            "status": r["status"],
            "output_count": r["output_count"],
            "notes": r["notes"],
        }
    totals = accumulate(rows, default_rate)

    grid_rows = []
    for emp in sorted(employees, key=lambda e: (_role_sort_key(e.role), e.full_name or "", e.id)):
        t = totals.employee(emp.id)
        mode, rate = effective_rate(emp, default_rate)
        grid_rows.append({
            "employee_id": emp.id,
            "full_name": emp.full_name,
            "role": emp.role,
            "scanner_id": emp.scanner_id,
            "location_id": emp.location_id,
            "location_name": emp.location.name if emp.location else None,
            "salary_type": mode,
            "rate": rate,
            "daily_target": emp.daily_target,
            "daily": {c["date"]: cells[emp.id].get(c["date"]) for c in dates},
            "total_output": t.total_output if t else 0,
            "total_earnings": t.total_earnings if t else to_money(ZERO),
            "days_present": t.days_present if t else 0,
        })

    groups: List[Dict[str, Any]] = []
    for r in grid_rows:
        if not groups or groups[-1]["role"] != r["role"]:
            groups.append({"role": r["role"], "rows": []})
        groups[-1]["rows"].append(r)

    per_day = {d.record_date.isoformat(): d.total_output for d in totals.per_date}
    return {
        "year": year,
        "month": month,
        "days_in_month": days_in_month(year, month),
        "dates": dates,
        "groups": groups,
        "rows": grid_rows,
        "footer": {
            "per_date": {c["date"]: per_day.get(c["date"], 0) for c in dates},
            "total_output": totals.total_output,
            "total_earnings": totals.total_earnings,
        },
        "scan_rate": default_rate,
    }


async def monthly_grid(
    db: AsyncSession,
    identity: Identity,
    year: int,
    month: int,
    location_id: Optional[int] = None,
) -> Dict[str, Any]:
    requested = Scope(
        start_date=first_day_of_month(year, month),
        end_date=last_day_of_month(year, month),
        location_id=location_id,
    )
    scope = clamp_scope(identity, requested)
    default_rate = await crud.get_scan_rate(db)
    employees = await crud.list_grid_employees(db, scope)
    rows = await crud.fetch_ledger_rows(db, scope)
    grid = build_monthly_grid(employees, rows, year, month, default_rate)
    grid["location_id"] = scope.location_id
    return grid


# ---------- self-service stats ----------
async def employee_stats(db: AsyncSession, identity: Identity, today: Optional[date] = None) -> Dict[str, Any]:
    """today / this month / all time for the caller only."""
    today = today or date.today()
    default_rate = await crud.get_scan_rate(db)
    emp = await crud.get_employee(db, identity.employee_id, load_location=True)
    self_scope = clamp_scope(identity, Scope(employee_id=identity.employee_id))

    record = await crud.get_attendance(db, identity.employee_id, today)
    month = await rollup(db, replace(
        self_scope,
        start_date=first_day_of_month(today.year, today.month),
        end_date=last_day_of_month(today.year, today.month),
    ), default_rate)
    all_time = await rollup(db, self_scope, default_rate)

    mode, rate = effective_rate(emp, default_rate) if emp else ("per_page", ZERO)
    return {
        "employee": {
            "id": identity.employee_id,
            "full_name": emp.full_name if emp else None,
            "role": emp.role if emp else identity.role,
            "location_name": emp.location.name if emp and emp.location else None,
            "scanner_id": emp.scanner_id if emp else None,
            "salary_type": mode,
            "rate": rate,
        },
        "today": {
            "date": today.isoformat(),
            "output_count": (record.output_count or 0) if record else 0,
            "status": record.status if record else "not_entered",
            "notes": (record.notes or "") if record else "",
        },
        "this_month": {
            "total_output": month.total_output,
            "earnings": month.total_earnings,
            "days_present": _days_present(month),
        },
        "all_time": {
            "total_output": all_time.total_output,
            "earnings": all_time.total_earnings,
            "days_present": _days_present(all_time),
        },
    }


def _days_present(result: RollupResult) -> int:
    return sum(e.days_present for e in result.per_employee)
