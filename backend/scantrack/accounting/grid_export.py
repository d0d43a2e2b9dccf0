"""Monthly attendance grid as Excel (same rows, totals and Sunday shading as the API grid)."""
import io
from typing import Dict, Any, List

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, Border, Side, PatternFill

LEAD_HEADERS = ["Employee", "Role", "Scanner"]
TAIL_HEADERS = ["Total output", "Earnings"]
SUNDAY_FILL = PatternFill(start_color="FDE2E2", end_color="FDE2E2", fill_type="solid")
GROUP_FILL = PatternFill(start_color="E8EEF7", end_color="E8EEF7", fill_type="solid")

# cell text for non-present days
STATUS_LABELS = {
    "absent": "A",
    "file_close": "FC",
    "holiday": "H",
}


def _cell_text(cell: Any) -> Any:
    if cell is None:
        return None
    status = cell.get("status")
    if status == "present":
        return cell.get("output_count") or 0
    return STATUS_LABELS.get(status, status)


def _write_headers(ws, row_idx: int, dates: List[Dict[str, Any]]) -> None:
    thin = Side(style="thin")
    header_font = Font(bold=True)
    header_alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
    headers = LEAD_HEADERS + [f"{d['day']}\n{d['day_name']}" for d in dates] + TAIL_HEADERS
    for col, h in enumerate(headers, start=1):
        cell = ws.cell(row=row_idx, column=col, value=h)
        cell.font = header_font
        cell.alignment = header_alignment
        cell.border = Border(top=thin, bottom=thin, left=thin, right=thin)
    for i, d in enumerate(dates):
        if d["is_sunday"]:
            ws.cell(row=row_idx, column=len(LEAD_HEADERS) + 1 + i).fill = SUNDAY_FILL


def _write_employee_row(ws, row_idx: int, row: Dict[str, Any], dates: List[Dict[str, Any]]) -> None:
    for col, key in enumerate(("full_name", "role", "scanner_id"), 1):
        # user-entered text, never a formula
        ws.cell(row=row_idx, column=col, value=str(row.get(key) or "")).data_type = "s"
    for i, d in enumerate(dates):
        c = ws.cell(row=row_idx, column=len(LEAD_HEADERS) + 1 + i, value=_cell_text(row["daily"].get(d["date"])))
        if d["is_sunday"]:
            c.fill = SUNDAY_FILL
    tail = len(LEAD_HEADERS) + len(dates) + 1
    ws.cell(row=row_idx, column=tail, value=row.get("total_output") or 0)
    ws.cell(row=row_idx, column=tail + 1, value=float(row.get("total_earnings") or 0))


def _apply_default_width(ws, n_dates: int) -> None:
    ws.column_dimensions["A"].width = 22
    ws.column_dimensions["B"].width = 16
    ws.column_dimensions["C"].width = 10
    for col in range(len(LEAD_HEADERS) + 1, len(LEAD_HEADERS) + n_dates + 1):
        ws.column_dimensions[ws.cell(row=1, column=col).column_letter].width = 6
    for col in range(len(LEAD_HEADERS) + n_dates + 1, len(LEAD_HEADERS) + n_dates + len(TAIL_HEADERS) + 1):
        ws.column_dimensions[ws.cell(row=1, column=col).column_letter].width = 14


def build_grid_excel(grid: Dict[str, Any]) -> bytes:
    """
    grid is the dict produced by rollup.build_monthly_grid.
    Row 1 title, row 2 headers, then one block per role group, then the footer totals.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = f"{grid['year']}-{grid['month']:02d}"
    dates = grid["dates"]

    ws.cell(row=1, column=1, value=f"Attendance {grid['year']}-{grid['month']:02d}").font = Font(bold=True)
    _write_headers(ws, 2, dates)
    row_idx = 3
    for group in grid["groups"]:
        label = ws.cell(row=row_idx, column=1, value=f"{group['role']} ({len(group['rows'])})")
        label.font = Font(bold=True)
        label.fill = GROUP_FILL
        row_idx += 1
        for row in group["rows"]:
            _write_employee_row(ws, row_idx, row, dates)
            row_idx += 1

    footer = grid["footer"]
    ws.cell(row=row_idx, column=1, value="Total").font = Font(bold=True)
    for i, d in enumerate(dates):
        ws.cell(row=row_idx, column=len(LEAD_HEADERS) + 1 + i, value=footer["per_date"].get(d["date"], 0))
    tail = len(LEAD_HEADERS) + len(dates) + 1
    ws.cell(row=row_idx, column=tail, value=footer["total_output"]).font = Font(bold=True)
    ws.cell(row=row_idx, column=tail + 1, value=float(footer["total_earnings"])).font = Font(bold=True)
    _apply_default_width(ws, len(dates))

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf.getvalue()
