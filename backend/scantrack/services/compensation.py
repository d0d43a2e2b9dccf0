"""
Compensation resolver: which pay rule applies to an employee and what one day is worth.

Two policies:
- PieceRate: output_count * rate, rate = the employee's custom_rate, else the global scan_rate
- FixedMonthly: fixed_salary / calendar days of the record's own month, for each present day

The global default rate is passed in on every call (read from the settings table by the
caller per request) and never cached here. Missing configuration resolves to zero; nothing
in this module raises on bad or absent values.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Tuple, Union

from scantrack.services.month_window import days_in_month_of

PIECE_RATE = "per_page"
FIXED_MONTHLY = "fixed"
ZERO = Decimal("0")


@dataclass(frozen=True)
class PieceRate:
    rate: Optional[Decimal] = None


@dataclass(frozen=True)
class FixedMonthly:
    amount: Decimal = ZERO


CompensationPolicy = Union[PieceRate, FixedMonthly]


def to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None


def _field(employee: Any, name: str) -> Any:
    # ORM Employee or a row mapping from the rollup query
    if isinstance(employee, Mapping):
        return employee.get(name)
    return getattr(employee, name, None)


def policy_for(employee: Any) -> CompensationPolicy:
    if (_field(employee, "salary_type") or PIECE_RATE) == FIXED_MONTHLY:
        return FixedMonthly(amount=to_decimal(_field(employee, "fixed_salary")) or ZERO)
    return PieceRate(rate=to_decimal(_field(employee, "custom_rate")))


def effective_rate(employee: Any, default_rate: Any = None) -> Tuple[str, Decimal]:
    """(mode, rate_or_salary). A per-page employee without override gets the default; no default -> 0."""
    policy = policy_for(employee)
    if isinstance(policy, FixedMonthly):
        return FIXED_MONTHLY, policy.amount
    if policy.rate is not None:
        return PIECE_RATE, policy.rate
    return PIECE_RATE, to_decimal(default_rate) or ZERO


def daily_contribution(
    employee: Any,
    record_date: date,
    output_count: Optional[int],
    was_present: bool,
    default_rate: Any = None,
    days_in_record_month: Optional[int] = None,
) -> Decimal:
    """Earnings one ledger row adds. Not present -> 0. Fixed pay is prorated by the record's month."""
    if not was_present:
        return ZERO
    mode, value = effective_rate(employee, default_rate)
    if mode == FIXED_MONTHLY:
        days = days_in_record_month or days_in_month_of(record_date)
        return value / days
    return Decimal(output_count or 0) * value
