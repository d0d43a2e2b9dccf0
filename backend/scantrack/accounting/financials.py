"""
Location financials: revenue, labor cost, expenses and profit for a date window.

  revenue       = total_output * location.client_rate  (0 when unset)
  employee_cost = rollup earnings of the location's employees
  expenses      = sum of expenses dated inside the window
  profit        = revenue - employee_cost - expenses   (may be negative)

Scopes are clamped before any query. A scope narrowed to a single employee shows that
employee's output and cost only; location expenses are not exposed to it.
"""
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from scantrack import crud
from scantrack.models import Location
from scantrack.services.compensation import to_decimal, ZERO
from scantrack.services.rollup import RollupResult, accumulate, to_money
from scantrack.visibility import Identity, Scope, clamp_scope, is_self_scoped

SUMMARY_FIELDS = ("total_output", "employee_cost", "expenses", "revenue", "profit")


class LocationNotFoundError(ValueError):
    pass


def summarize(total_output: int, employee_cost: Decimal, client_rate: Any, expenses: Decimal) -> Dict[str, Any]:
    rate = to_decimal(client_rate) or ZERO
    revenue = to_money(Decimal(total_output) * rate)
    cost = to_money(employee_cost)
    spent = to_money(expenses)
    return {
        "total_output": total_output,
        "employee_cost": cost,
        "expenses": spent,
        "revenue": revenue,
        "profit": revenue - cost - spent,
    }


def _location_dict(loc: Location) -> Dict[str, Any]:
    return {
        "id": loc.id,
        "name": loc.name,
        "address": loc.address,
        "client_rate": loc.client_rate if loc.client_rate is not None else ZERO,
        "is_active": loc.is_active,
    }


def _employee_rows(result: RollupResult, roster: List[Any]) -> List[Dict[str, Any]]:
    """Active roster first (zeros when idle), plus anyone else who has rows in the window."""
    out = []
    seen = set()
    for emp in sorted(roster, key=lambda e: (e.full_name or "", e.id)):
        t = result.employee(emp.id)
        out.append({
            "id": emp.id,
            "full_name": emp.full_name,
            "role": emp.role,
            "total_output": t.total_output if t else 0,
            "earnings": t.total_earnings if t else to_money(ZERO),
            "days_present": t.days_present if t else 0,
        })
        seen.add(emp.id)
    for t in result.per_employee:
        if t.employee_id in seen:
            continue
        out.append({
            "id": t.employee_id,
            "full_name": t.full_name,
            "role": t.role,
            "total_output": t.total_output,
            "earnings": t.total_earnings,
            "days_present": t.days_present,
        })
    return out


async def location_summary(
    db: AsyncSession,
    identity: Identity,
    location_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Dict[str, Any]:
    scope = clamp_scope(identity, Scope(start_date=start_date, end_date=end_date, location_id=location_id))
    if scope.location_id is None:
        raise LocationNotFoundError("Location not found")
    loc = await crud.get_location(db, scope.location_id)
    if not loc:
        raise LocationNotFoundError("Location not found")

    default_rate = await crud.get_scan_rate(db)
    result = accumulate(await crud.fetch_ledger_rows(db, scope), default_rate)
    roster = await crud.list_grid_employees(db, scope)
    if is_self_scoped(scope):
        expenses = ZERO
    else:
        expenses = await crud.sum_expenses(db, loc.id, scope.start_date, scope.end_date)

    return {
        "location": _location_dict(loc),
        "window": {"start_date": scope.start_date, "end_date": scope.end_date},
        "employees": _employee_rows(result, roster),
        "summary": summarize(result.total_output, result.total_earnings, loc.client_rate, expenses),
    }


async def fleet_summary(
    db: AsyncSession,
    identity: Identity,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    location_id: Optional[int] = None,
) -> Dict[str, Any]:
    """Every active location in scope, idle ones with zeros, plus a totals row."""
    scope = clamp_scope(identity, Scope(start_date=start_date, end_date=end_date, location_id=location_id))
    self_only = is_self_scoped(scope)
    if self_only and scope.location_id is None:
        locations: List[Location] = []
    else:
        locations = await crud.list_locations(db, only_id=scope.location_id, active_only=True)

    default_rate = await crud.get_scan_rate(db)
    rows_by_location: Dict[Optional[int], List[Dict[str, Any]]] = defaultdict(list)
    for row in await crud.fetch_ledger_rows(db, scope):
        rows_by_location[row["location_id"]].append(row)
    expenses_by_location = {} if self_only else await crud.sum_expenses_by_location(
        db, scope.start_date, scope.end_date
    )

    per_location = []
    totals = {f: ZERO for f in SUMMARY_FIELDS}
    totals["total_output"] = 0
    for loc in locations:
        result = accumulate(rows_by_location.get(loc.id, []), default_rate)
        summary = summarize(
            result.total_output,
            result.total_earnings,
            loc.client_rate,
            expenses_by_location.get(loc.id, ZERO),
        )
        per_location.append({
            "location_id": loc.id,
            "location_name": loc.name,
            "client_rate": loc.client_rate if loc.client_rate is not None else ZERO,
            **summary,
        })
        for f in SUMMARY_FIELDS:
            totals[f] = totals[f] + summary[f]

    return {
        "window": {"start_date": scope.start_date, "end_date": scope.end_date},
        "locations": per_location,
        "totals": totals,
    }
