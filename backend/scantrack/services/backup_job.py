"""Whole-store backup: one Excel sheet per table, written to backup_dir, keeping the latest N files.
A file lock keeps concurrent workers from running the scheduled job twice."""
import re
import time
import logging
from datetime import date, datetime
from pathlib import Path
from io import BytesIO
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.ext.asyncio import AsyncSession
from openpyxl import Workbook, load_workbook

from scantrack.config import settings, BASE_DIR
from scantrack import crud

logger = logging.getLogger(__name__)

# only file names this module produces (path traversal guard)
BACKUP_FILENAME_PATTERN = re.compile(r"^scantrack_backup_\d{8}_\d{6}\.xlsx$")
LOCK_FILENAME = ".scantrack_backup.lock"


class BackupFormatError(ValueError):
    pass


def _cell_value(v) -> Optional[str]:
    """Every stored value goes into the sheet as text; None stays an empty cell."""
    if v is None:
        return None
    if isinstance(v, (date, datetime)):
        return v.isoformat()
    if isinstance(v, bool):
        return "1" if v else "0"
    return str(v)


def _write_text(ws, row: int, column: int, text: Optional[str]) -> None:
    cell = ws.cell(row=row, column=column, value=text)
    if text is not None:
        # text starting with "=" must stay text, not become a formula
        cell.data_type = "s"


def _from_cell(column, raw: Any) -> Any:
    """Sheet text back to the column's Python type. Text columns come back verbatim; empty -> None."""
    if raw is None:
        return None
    t = column.type
    if isinstance(t, (String, Text)):
        return raw if isinstance(raw, str) else str(raw)
    s = str(raw).strip()
    if not s:
        return None
    if isinstance(t, Boolean):
        return s.lower() in ("1", "true", "yes")
    try:
        if isinstance(t, DateTime):
            return raw if isinstance(raw, datetime) else datetime.fromisoformat(s)
        if isinstance(t, Date):
            if isinstance(raw, datetime):
                return raw.date()
            return raw if isinstance(raw, date) else date.fromisoformat(s[:10])
    except ValueError as e:
        raise BackupFormatError(f"{column.table.name}.{column.name}: bad date {s!r}") from e
    if isinstance(t, Numeric):
        try:
            return Decimal(s)
        except InvalidOperation as e:
            raise BackupFormatError(f"{column.table.name}.{column.name}: bad number {s!r}") from e
    if isinstance(t, Integer):
        try:
            return int(Decimal(s))
        except InvalidOperation as e:
            raise BackupFormatError(f"{column.table.name}.{column.name}: bad integer {s!r}") from e
    return s


async def collect_store(db: AsyncSession) -> Dict[str, List[Dict[str, Any]]]:
    return {model.__tablename__: await crud.dump_table(db, model) for model in crud.SNAPSHOT_MODELS}


def build_store_backup_buffer(tables: Dict[str, List[Dict[str, Any]]]) -> tuple[BytesIO, str]:
    """Every table as a sheet, header row = column names. Returns (BytesIO, filename)."""
    wb = Workbook()
    wb.remove(wb.active)
    for model in crud.SNAPSHOT_MODELS:
        columns = [c.name for c in model.__table__.columns]
        ws = wb.create_sheet(model.__tablename__)
        for col, name in enumerate(columns, 1):
            _write_text(ws, 1, col, name)
        for r, row in enumerate(tables.get(model.__tablename__) or [], 2):
            for c, name in enumerate(columns, 1):
                _write_text(ws, r, c, _cell_value(row.get(name)))
    buf = BytesIO()
    wb.save(buf)
    buf.seek(0)
    filename = f"scantrack_backup_{datetime.now().strftime('%Y%m%d_%H%M%S')}.xlsx"
    return buf, filename


def parse_store_backup(content: bytes) -> Dict[str, List[Dict[str, Any]]]:
    """Read a workbook produced by build_store_backup_buffer; every table sheet must be present."""
    try:
        wb = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise BackupFormatError("Not a readable xlsx workbook") from e
    tables: Dict[str, List[Dict[str, Any]]] = {}
    try:
        for model in crud.SNAPSHOT_MODELS:
            name = model.__tablename__
            if name not in wb.sheetnames:
                raise BackupFormatError(f"Missing sheet: {name}")
            columns = {c.name: c for c in model.__table__.columns}
            rows = list(wb[name].iter_rows(values_only=True))
            if not rows:
                tables[name] = []
                continue
            header = [str(h).strip() if h is not None else "" for h in rows[0]]
            unknown = [h for h in header if h and h not in columns]
            if unknown:
                raise BackupFormatError(f"{name}: unknown columns {', '.join(unknown)}")
            out = []
            for raw_row in rows[1:]:
                if raw_row is None or all(v in (None, "") for v in raw_row):
                    continue
                out.append({
                    h: _from_cell(columns[h], raw_row[i] if i < len(raw_row) else None)
                    for i, h in enumerate(header) if h
                })
            tables[name] = out
    finally:
        wb.close()
    return tables


def _get_backup_dir() -> Path:
    """Absolute, or relative to the backend root."""
    configured = settings.backup_dir
    return configured if configured.is_absolute() else BASE_DIR / configured


def _backups_newest_first(backup_dir: Path) -> List[Path]:
    return sorted(backup_dir.glob("scantrack_backup_*.xlsx"), key=lambda p: p.stat().st_mtime, reverse=True)


def _prune_old_backups(backup_dir: Path, keep: int) -> None:
    for stale in _backups_newest_first(backup_dir)[keep:]:
        try:
            stale.unlink()
        except OSError:
            logger.warning("could not prune backup %s", stale.name)


def _acquire_backup_lock(backup_dir: Path, timeout_seconds: int = 600) -> bool:
    """One writer at a time; a lock file older than timeout_seconds is taken over."""
    lock = backup_dir / LOCK_FILENAME
    for attempt in range(2):
        try:
            lock.touch(exist_ok=False)
            return True
        except FileExistsError:
            if attempt:
                return False
            try:
                if time.time() - lock.stat().st_mtime <= timeout_seconds:
                    return False
                lock.unlink()
            except OSError:
                return False
    return False


def _release_backup_lock(backup_dir: Path) -> None:
    try:
        (backup_dir / LOCK_FILENAME).unlink(missing_ok=True)
    except OSError:
        logger.warning("could not remove backup lock in %s", backup_dir)


async def write_backup(db: AsyncSession) -> str:
    backup_dir = _get_backup_dir()
    backup_dir.mkdir(parents=True, exist_ok=True)
    buf, filename = build_store_backup_buffer(await collect_store(db))
    (backup_dir / filename).write_bytes(buf.getvalue())
    _prune_old_backups(backup_dir, settings.backup_retention_count)
    return filename


async def run_scheduled_backup() -> Optional[str]:
    """One scheduled run. Returns the written file name, or None when another worker holds the lock."""
    from scantrack.database import AsyncSessionLocal
    backup_dir = _get_backup_dir()
    backup_dir.mkdir(parents=True, exist_ok=True)

    if not _acquire_backup_lock(backup_dir):
        logger.info("backup skipped: lock held")
        return None

    try:
        async with AsyncSessionLocal() as db:
            filename = await write_backup(db)
        logger.info("backup written: %s", filename)
        return filename
    finally:
        _release_backup_lock(backup_dir)


async def restore_store(db: AsyncSession, content: bytes) -> Dict[str, int]:
    """Replace every table with the workbook's rows; the caller's transaction makes it all-or-nothing."""
    tables = parse_store_backup(content)
    return await crud.replace_all_tables(db, tables)


def list_backup_files() -> List[Dict[str, Any]]:
    """Backups in backup_dir, newest first."""
    backup_dir = _get_backup_dir()
    if not backup_dir.is_dir():
        return []
    out = []
    for p in _backups_newest_first(backup_dir):
        st = p.stat()
        out.append({
            "filename": p.name,
            "created_at": datetime.fromtimestamp(st.st_mtime).isoformat(),
            "size": st.st_size,
        })
    return out


def get_backup_path(filename: str) -> Optional[Path]:
    """Only names this module writes resolve; anything else (including traversal attempts) is None."""
    if not filename or not BACKUP_FILENAME_PATTERN.fullmatch(filename):
        return None
    path = _get_backup_dir() / filename
    return path if path.is_file() else None
