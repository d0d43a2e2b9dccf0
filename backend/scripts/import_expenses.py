"""Import an expense workbook from the command line (same parser as POST /api/expenses/import).
Run from backend/: python scripts/import_expenses.py path/to/expenses.xlsx [--dry-run]"""
import argparse
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from scantrack import crud, schemas
from scantrack.database import AsyncSessionLocal, init_db
from scantrack.services.expense_excel_parser import parse_expense_excel


async def run(path: Path, dry_run: bool) -> int:
    if not path.is_file():
        print(f"File not found: {path}")
        return 1
    await init_db()
    async with AsyncSessionLocal() as db:
        location_ids = {loc.name.lower(): loc.id for loc in await crud.list_locations(db)}
        parsed = parse_expense_excel(path.read_bytes(), location_ids)
        for skip in parsed["skipped"]:
            print(f"row {skip['row']}: skipped ({skip['reason']})")
        if dry_run:
            print(f"{len(parsed['rows'])} rows would be imported")
            return 0
        for row in parsed["rows"]:
            await crud.create_expense(db, schemas.ExpenseCreate(**row))
        await db.commit()
    print(f"Imported {len(parsed['rows'])} expenses, skipped {len(parsed['skipped'])}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Import expenses from an .xlsx workbook")
    parser.add_argument("workbook", type=Path)
    parser.add_argument("--dry-run", action="store_true", help="parse and report only")
    args = parser.parse_args()
    return asyncio.run(run(args.workbook, args.dry_run))


if __name__ == "__main__":
    sys.exit(main())
