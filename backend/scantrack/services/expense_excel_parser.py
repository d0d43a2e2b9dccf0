"""Parse an expense workbook (first sheet, two header rows).

Columns (0-based):
  A=0 date (Excel date cell, or text DD-MM-YYYY / YYYY-MM-DD)
  B=1 amount
  C=2 location name (matched case-insensitively; unknown -> unassigned)
  D=3 description
  E=4 paid by
  F=5 paid from
Rows with an empty date or amount, a non-positive amount or an unreadable date are skipped.
"""
from io import BytesIO
import re
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import List, Dict, Any, Optional

logger = logging.getLogger(__name__)

HEADER_ROWS = 2
COL_DATE = 0
COL_AMOUNT = 1
COL_LOCATION = 2
COL_DESCRIPTION = 3
COL_PAID_BY = 4
COL_PAID_FROM = 5

EXCEL_EPOCH = date(1899, 12, 30)
DMY_PATTERN = re.compile(r"^(\d{1,2})[-/](\d{1,2})[-/](\d{4})$")


def _normalize_number_str(raw: Any) -> str:
    """Strip thousands separators, spaces and currency marks."""
    if raw is None:
        return ""
    s = str(raw).strip()
    for remove in (",", " ", "₹", "Rs.", "Rs", "INR", "$"):
        s = s.replace(remove, "")
    return s.strip()


def _parse_amount(raw: Any) -> Optional[Decimal]:
    if raw is None:
        return None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        if isinstance(raw, float) and raw != raw:
            return None
        return Decimal(str(raw))
    s = re.sub(r"[^\d.\-]", "", _normalize_number_str(raw))
    if not s:
        return None
    try:
        return Decimal(s)
    except (InvalidOperation, ValueError):
        return None


def _parse_date(raw: Any) -> Optional[date]:
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        # Excel serial day number
        try:
            return EXCEL_EPOCH + timedelta(days=int(raw))
        except (OverflowError, ValueError):
            return None
    s = str(raw).strip()
    m = DMY_PATTERN.match(s)
    try:
        if m:
            return date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
        return date.fromisoformat(s)
    except ValueError:
        return None


def _text(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    s = str(raw).strip()
    return s or None


def parse_expense_excel(content: bytes, location_ids: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
    """
    location_ids maps lower-cased location names to ids.
    Returns rows (dicts ready for ExpenseCreate) and skipped (row number + reason).
    """
    from openpyxl import load_workbook

    location_ids = location_ids or {}
    result: Dict[str, Any] = {"rows": [], "skipped": []}
    wb = load_workbook(BytesIO(content), read_only=True, data_only=True)
    ws = wb.active
    if not ws:
        result["skipped"].append({"row": 0, "reason": "Workbook has no sheet"})
        return result

    for row_idx, row in enumerate(ws.iter_rows(values_only=True)):
        excel_row = row_idx + 1
        if row_idx < HEADER_ROWS:
            continue

        def cell(i: int) -> Any:
            return row[i] if row is not None and i < len(row) else None

        if cell(COL_DATE) in (None, "") or cell(COL_AMOUNT) in (None, ""):
            result["skipped"].append({"row": excel_row, "reason": "empty"})
            continue
        amount = _parse_amount(cell(COL_AMOUNT))
        if amount is None or amount <= 0:
            result["skipped"].append({"row": excel_row, "reason": "amount"})
            continue
        expense_date = _parse_date(cell(COL_DATE))
        if expense_date is None:
            logger.debug("expense import row %s: bad date %r", excel_row, cell(COL_DATE))
            result["skipped"].append({"row": excel_row, "reason": "date"})
            continue
        location_name = _text(cell(COL_LOCATION))
        location_id = location_ids.get(location_name.lower()) if location_name else None

        result["rows"].append({
            "location_id": location_id,
            "expense_date": expense_date,
            "amount": amount,
            "description": _text(cell(COL_DESCRIPTION)),
            "paid_by": _text(cell(COL_PAID_BY)),
            "paid_from": _text(cell(COL_PAID_FROM)),
        })
    wb.close()
    return result
