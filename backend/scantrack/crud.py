"""CRUD operations: locations, employees, attendance ledger, expenses, roles, settings.
Attendance writes go through the store's insert-or-update on (employee_id, record_date)."""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any, Iterable

from sqlalchemy import select, func, delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from scantrack.models import Location, Employee, AttendanceRecord, Expense, Setting, Role
from scantrack.schemas import (
    LocationCreate, LocationUpdate, EmployeeCreate, EmployeeUpdate,
    ExpenseCreate, ExpenseUpdate, RoleCreate, RoleUpdate,
)
from scantrack.services import document_store
from scantrack.services.compensation import to_decimal
from scantrack.visibility import Scope, SUPER_ADMIN

logger = logging.getLogger(__name__)

SCAN_RATE_KEY = "scan_rate"


class AlreadyExistsError(ValueError):
    """Unique field already taken."""
    pass


class LocationNameExistsError(AlreadyExistsError):
    pass


class UsernameExistsError(AlreadyExistsError):
    pass


class RoleExistsError(AlreadyExistsError):
    pass


class LocationInUseError(ValueError):
    """Permanent delete blocked by dependents; kind is employees / expenses / records."""

    def __init__(self, kind: str, count: int, message: str):
        super().__init__(message)
        self.kind = kind
        self.count = count


class EmployeeInUseError(ValueError):
    def __init__(self, count: int):
        super().__init__(f"Cannot delete: {count} daily record(s) exist for this employee. Deactivate instead.")
        self.count = count


class RoleInUseError(ValueError):
    def __init__(self, count: int):
        super().__init__(f"Cannot delete role. {count} users are using this role.")
        self.count = count


class SystemRoleError(ValueError):
    pass


class UnknownRoleError(ValueError):
    pass


# ---------- settings ----------
async def get_setting(db: AsyncSession, key: str) -> Optional[str]:
    r = await db.execute(select(Setting.value).where(Setting.key == key))
    return r.scalar_one_or_none()


async def set_setting(db: AsyncSession, key: str, value: str) -> Setting:
    row = await db.get(Setting, key)
    if row:
        row.value = value
        row.updated_at = datetime.utcnow()
    else:
        row = Setting(key=key, value=value)
        db.add(row)
    await db.flush()
    return row


async def list_settings(db: AsyncSession) -> Dict[str, Optional[str]]:
    r = await db.execute(select(Setting).order_by(Setting.key))
    return {s.key: s.value for s in r.scalars().all()}


async def get_scan_rate(db: AsyncSession) -> Decimal:
    """Global default piece rate, read from the settings table on every call. Unset -> 0."""
    return to_decimal(await get_setting(db, SCAN_RATE_KEY)) or Decimal("0")


# ---------- roles ----------
async def list_roles(db: AsyncSession) -> List[Role]:
    r = await db.execute(select(Role).order_by(Role.is_system.desc(), Role.display_name))
    return list(r.scalars().all())


async def get_role(db: AsyncSession, role_pk: int) -> Optional[Role]:
    return await db.get(Role, role_pk)


async def role_exists(db: AsyncSession, role_id: str) -> bool:
    r = await db.execute(select(Role.id).where(Role.role_id == role_id))
    return r.scalar_one_or_none() is not None


async def create_role(db: AsyncSession, data: RoleCreate, is_system: bool = False) -> Role:
    if await role_exists(db, data.role_id):
        raise RoleExistsError("Role ID already exists")
    role = Role(
        role_id=data.role_id,
        display_name=data.display_name.strip(),
        description=data.description or "",
        is_system=is_system,
    )
    db.add(role)
    await db.flush()
    await db.refresh(role)
    return role


async def update_role(db: AsyncSession, role: Role, data: RoleUpdate) -> Role:
    if role.is_system:
        raise SystemRoleError("Cannot modify system roles")
    for k, v in data.model_dump(exclude_unset=True).items():
        if v is not None:
            setattr(role, k, v)
    await db.flush()
    await db.refresh(role)
    return role


async def delete_role(db: AsyncSession, role: Role) -> None:
    if role.is_system:
        raise SystemRoleError("Cannot delete system roles")
    r = await db.execute(select(func.count(Employee.id)).where(Employee.role == role.role_id))
    count = r.scalar_one()
    if count:
        raise RoleInUseError(count)
    await db.delete(role)
    await db.flush()


# ---------- locations ----------
async def get_location(db: AsyncSession, location_id: int) -> Optional[Location]:
    return await db.get(Location, location_id)


async def get_location_by_name(db: AsyncSession, name: str) -> Optional[Location]:
    if not name or not str(name).strip():
        return None
    r = await db.execute(select(Location).where(func.lower(Location.name) == name.strip().lower()).limit(1))
    return r.scalars().first()


async def list_locations(
    db: AsyncSession,
    only_id: Optional[int] = None,
    active_only: bool = False,
) -> List[Location]:
    q = select(Location).order_by(Location.name)
    if only_id is not None:
        q = q.where(Location.id == only_id)
    if active_only:
        q = q.where(Location.is_active == True)  # noqa: E712
    r = await db.execute(q)
    return list(r.scalars().all())


async def count_active_employees_by_location(db: AsyncSession) -> Dict[int, int]:
    r = await db.execute(
        select(Employee.location_id, func.count(Employee.id))
        .where(Employee.is_active == True, Employee.role != SUPER_ADMIN)  # noqa: E712
        .where(Employee.location_id.is_not(None))
        .group_by(Employee.location_id)
    )
    return {loc_id: n for loc_id, n in r.all()}


async def create_location(db: AsyncSession, data: LocationCreate) -> Location:
    if await get_location_by_name(db, data.name):
        raise LocationNameExistsError("Location name already exists")
    loc = Location(name=data.name, address=data.address or "", client_rate=data.client_rate or Decimal("0"))
    db.add(loc)
    try:
        await db.flush()
    except IntegrityError as e:
        raise LocationNameExistsError("Location name already exists") from e
    await db.refresh(loc)
    return loc


async def update_location(db: AsyncSession, loc: Location, data: LocationUpdate) -> Location:
    update_data = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    new_name = update_data.get("name")
    if new_name:
        new_name = new_name.strip()
        other = await get_location_by_name(db, new_name)
        if other and other.id != loc.id:
            raise LocationNameExistsError("Location name already exists")
        update_data["name"] = new_name
    for k, v in update_data.items():
        setattr(loc, k, v)
    await db.flush()
    await db.refresh(loc)
    return loc


async def deactivate_location(db: AsyncSession, loc: Location) -> Location:
    """Soft delete; always allowed."""
    loc.is_active = False
    await db.flush()
    await db.refresh(loc)
    logger.info("location %s deactivated", loc.id)
    return loc


async def location_dependents(db: AsyncSession, location_id: int) -> Dict[str, int]:
    """Counts blocking permanent deletion: employees (any state), expenses, attendance via employees."""
    employees = (await db.execute(
        select(func.count(Employee.id)).where(Employee.location_id == location_id)
    )).scalar_one()
    expenses = (await db.execute(
        select(func.count(Expense.id)).where(Expense.location_id == location_id)
    )).scalar_one()
    records = (await db.execute(
        select(func.count(AttendanceRecord.id))
        .join(Employee, AttendanceRecord.employee_id == Employee.id)
        .where(Employee.location_id == location_id)
    )).scalar_one()
    return {"employees": employees, "expenses": expenses, "records": records}


# checked in this order; attendance history is the strongest reason to keep a location
_LOCATION_BLOCKERS = (
    ("records", "Cannot delete: {n} daily record(s) exist for employees at this location. Deactivate it instead."),
    ("employees", "Cannot delete: {n} employee(s) are assigned to this location. Please reassign them first."),
    ("expenses", "Cannot delete: {n} expense(s) are recorded for this location. Please delete or reassign them first."),
)


async def delete_location_permanently(db: AsyncSession, loc: Location) -> None:
    deps = await location_dependents(db, loc.id)
    for kind, message in _LOCATION_BLOCKERS:
        n = deps[kind]
        if n:
            raise LocationInUseError(kind, n, message.format(n=n))
    await db.delete(loc)
    await db.flush()
    logger.info("location %s permanently deleted", loc.id)


# ---------- employees ----------
async def get_employee(db: AsyncSession, employee_id: int, load_location: bool = False) -> Optional[Employee]:
    q = select(Employee).where(Employee.id == employee_id)
    if load_location:
        q = q.options(selectinload(Employee.location)).execution_options(populate_existing=True)
    r = await db.execute(q)
    return r.scalar_one_or_none()


async def get_employee_by_username(db: AsyncSession, username: str) -> Optional[Employee]:
    r = await db.execute(select(Employee).where(Employee.username == username.strip()).limit(1))
    return r.scalars().first()


async def list_employees(
    db: AsyncSession,
    location_id: Optional[int] = None,
    role: Optional[str] = None,
    restrict_to_location: bool = False,
) -> List[Employee]:
    """Active non-super-admin employees by name. restrict_to_location applies location_id even when None."""
    q = (
        select(Employee)
        .options(selectinload(Employee.location))
        .where(Employee.role != SUPER_ADMIN, Employee.is_active == True)  # noqa: E712
        .order_by(Employee.full_name)
    )
    if restrict_to_location:
        q = q.where(Employee.location_id == location_id) if location_id is not None else q.where(Employee.location_id.is_(None))
    elif location_id is not None:
        q = q.where(Employee.location_id == location_id)
    if role:
        q = q.where(Employee.role == role)
    r = await db.execute(q)
    return list(r.scalars().all())


def _apply_compensation(emp: Employee, data) -> None:
    """Compensation is replaced wholesale: unsent fields are cleared, not kept."""
    salary_type = data.salary_type or "per_page"
    emp.salary_type = salary_type
    emp.custom_rate = data.custom_rate if salary_type == "per_page" else None
    emp.fixed_salary = data.fixed_salary if salary_type == "fixed" else None


async def create_employee(db: AsyncSession, data: EmployeeCreate) -> Employee:
    if not await role_exists(db, data.role):
        raise UnknownRoleError(f"Unknown role: {data.role}")
    if await get_employee_by_username(db, data.username):
        raise UsernameExistsError("Username already exists")
    emp = Employee(
        username=data.username,
        full_name=data.full_name,
        role=data.role,
        location_id=data.location_id,
        scanner_id=data.scanner_id,
        daily_target=data.daily_target,
    )
    _apply_compensation(emp, data)
    db.add(emp)
    try:
        await db.flush()
    except IntegrityError as e:
        raise UsernameExistsError("Username already exists") from e
    await db.refresh(emp)
    return emp


async def update_employee(db: AsyncSession, emp: Employee, data: EmployeeUpdate) -> Employee:
    update_data = data.model_dump(exclude_unset=True)
    for k in ("salary_type", "custom_rate", "fixed_salary"):
        update_data.pop(k, None)
    if update_data.get("role") is not None and not await role_exists(db, update_data["role"]):
        raise UnknownRoleError(f"Unknown role: {update_data['role']}")
    if update_data.get("username"):
        other = await get_employee_by_username(db, update_data["username"])
        if other and other.id != emp.id:
            raise UsernameExistsError("Username already exists")
    for k, v in update_data.items():
        if v is None and k != "location_id":
            continue
        setattr(emp, k, v)
    if data.touches_compensation():
        _apply_compensation(emp, data)
    try:
        await db.flush()
    except IntegrityError as e:
        raise UsernameExistsError("Username already exists") from e
    await db.refresh(emp)
    return emp


async def deactivate_employee(db: AsyncSession, emp: Employee) -> Employee:
    emp.is_active = False
    await db.flush()
    await db.refresh(emp)
    return emp


async def delete_employee_permanently(db: AsyncSession, emp: Employee) -> None:
    r = await db.execute(select(func.count(AttendanceRecord.id)).where(AttendanceRecord.employee_id == emp.id))
    count = r.scalar_one()
    if count:
        raise EmployeeInUseError(count)
    await db.execute(
        update(AttendanceRecord).where(AttendanceRecord.entered_by == emp.id).values(entered_by=None)
    )
    await db.delete(emp)
    await db.flush()


# ---------- attendance ledger ----------
def _upsert_statement(db: AsyncSession, values: Dict[str, Any]):
    """INSERT ... ON CONFLICT (employee_id, record_date) DO UPDATE for the bound dialect."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as dialect_insert
    else:
        from sqlalchemy.dialects.sqlite import insert as dialect_insert
    stmt = dialect_insert(AttendanceRecord).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=["employee_id", "record_date"],
        set_={
            "status": stmt.excluded.status,
            "output_count": stmt.excluded.output_count,
            "notes": stmt.excluded.notes,
            "entered_by": stmt.excluded.entered_by,
            "updated_at": stmt.excluded.updated_at,
        },
    ).returning(AttendanceRecord.id)


async def upsert_attendance(
    db: AsyncSession,
    employee_id: int,
    record_date: date,
    status: str,
    output_count: Optional[int] = None,
    notes: Optional[str] = None,
    recorded_by: Optional[int] = None,
) -> int:
    """Write one ledger cell; a second call for the same (employee, date) overwrites. Returns the record id."""
    now = datetime.utcnow()
    values = {
        "employee_id": employee_id,
        "record_date": record_date,
        "status": status,
        # output is only meaningful on present days
        "output_count": output_count if status == "present" else None,
        "notes": notes,
        "entered_by": recorded_by,
        "created_at": now,
        "updated_at": now,
    }
    r = await db.execute(_upsert_statement(db, values))
    return r.scalar_one()


async def bulk_upsert_attendance(
    db: AsyncSession,
    entries: Iterable[Any],
    recorded_by: Optional[int] = None,
) -> Dict[str, List[Dict[str, Any]]]:
    """Each entry is its own savepoint; a failing row is reported and does not roll back the others."""
    entries = list(entries)
    ids = {e.employee_id for e in entries}
    r = await db.execute(select(Employee.id).where(Employee.id.in_(ids))) if ids else None
    known = set(r.scalars().all()) if r is not None else set()
    saved: List[Dict[str, Any]] = []
    failed: List[Dict[str, Any]] = []
    for e in entries:
        key = {"employee_id": e.employee_id, "record_date": e.record_date.isoformat()}
        if e.employee_id not in known:
            failed.append({**key, "error": "Employee not found"})
            continue
        try:
            async with db.begin_nested():
                record_id = await upsert_attendance(
                    db, e.employee_id, e.record_date, e.status,
                    output_count=e.output_count, notes=e.notes, recorded_by=recorded_by,
                )
            saved.append({**key, "id": record_id})
        except SQLAlchemyError as exc:
            logger.warning("attendance upsert failed for employee %s on %s: %s", e.employee_id, e.record_date, exc)
            failed.append({**key, "error": "Could not save record"})
    return {"saved": saved, "failed": failed}


async def get_attendance(db: AsyncSession, employee_id: int, record_date: date) -> Optional[AttendanceRecord]:
    r = await db.execute(
        select(AttendanceRecord).where(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.record_date == record_date,
        )
    )
    return r.scalar_one_or_none()


def _scoped_ledger_query(scope: Scope):
    q = (
        select(
            AttendanceRecord.id,
            AttendanceRecord.employee_id,
            AttendanceRecord.record_date,
            AttendanceRecord.status,
            AttendanceRecord.output_count,
            AttendanceRecord.notes,
            AttendanceRecord.entered_by,
            AttendanceRecord.created_at,
            AttendanceRecord.updated_at,
            Employee.full_name,
            Employee.scanner_id,
            Employee.role.label("user_role"),
            Employee.location_id,
            Employee.salary_type,
            Employee.custom_rate,
            Employee.fixed_salary,
            Location.name.label("location_name"),
        )
        .join(Employee, AttendanceRecord.employee_id == Employee.id)
        .outerjoin(Location, Employee.location_id == Location.id)
    )
    if scope.location_id is not None:
        q = q.where(Employee.location_id == scope.location_id)
    if scope.employee_id is not None:
        q = q.where(AttendanceRecord.employee_id == scope.employee_id)
    if scope.start_date is not None:
        q = q.where(AttendanceRecord.record_date >= scope.start_date)
    if scope.end_date is not None:
        q = q.where(AttendanceRecord.record_date <= scope.end_date)
    return q


async def list_records(db: AsyncSession, scope: Scope) -> List[Dict[str, Any]]:
    """Ledger rows in the (already clamped) scope, newest date first then employee name."""
    q = _scoped_ledger_query(scope).order_by(AttendanceRecord.record_date.desc(), Employee.full_name)
    r = await db.execute(q)
    return [dict(row) for row in r.mappings().all()]


async def fetch_ledger_rows(db: AsyncSession, scope: Scope) -> List[Dict[str, Any]]:
    """One pass over the ledger for rollups; each row carries the employee's compensation fields."""
    r = await db.execute(_scoped_ledger_query(scope))
    return [dict(row) for row in r.mappings().all()]


async def list_grid_employees(db: AsyncSession, scope: Scope) -> List[Employee]:
    """Active non-super-admin employees for the monthly grid, narrowed like the ledger rows."""
    q = (
        select(Employee)
        .options(selectinload(Employee.location))
        .where(Employee.is_active == True, Employee.role != SUPER_ADMIN)  # noqa: E712
        .order_by(Employee.role, Employee.full_name)
    )
    if scope.location_id is not None:
        q = q.where(Employee.location_id == scope.location_id)
    if scope.employee_id is not None:
        q = q.where(Employee.id == scope.employee_id)
    r = await db.execute(q)
    return list(r.scalars().all())


# ---------- expenses ----------
async def get_expense(db: AsyncSession, expense_id: int) -> Optional[Expense]:
    q = (
        select(Expense)
        .options(selectinload(Expense.location))
        .where(Expense.id == expense_id)
        .execution_options(populate_existing=True)
    )
    r = await db.execute(q)
    return r.scalar_one_or_none()


async def list_expenses(
    db: AsyncSession,
    location_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[Expense]:
    q = select(Expense).options(selectinload(Expense.location)).order_by(Expense.expense_date.desc(), Expense.id.desc())
    if location_id is not None:
        q = q.where(Expense.location_id == location_id)
    if start_date is not None and end_date is not None:
        q = q.where(Expense.expense_date >= start_date, Expense.expense_date <= end_date)
    r = await db.execute(q)
    return list(r.scalars().all())


async def create_expense(db: AsyncSession, data: ExpenseCreate) -> Expense:
    exp = Expense(**data.model_dump())
    db.add(exp)
    await db.flush()
    await db.refresh(exp)
    return exp


async def update_expense(db: AsyncSession, exp: Expense, data: ExpenseUpdate) -> Expense:
    for k, v in data.model_dump().items():
        setattr(exp, k, v)
    await db.flush()
    await db.refresh(exp)
    return exp


async def clear_expense_document(db: AsyncSession, exp: Expense) -> Expense:
    if exp.document_url:
        document_store.delete_document(exp.document_url)
        exp.document_url = None
        await db.flush()
        await db.refresh(exp)
    return exp


async def delete_expense(db: AsyncSession, exp: Expense) -> None:
    """Removes the row and its attached document; a missing document file is not an error."""
    if exp.document_url:
        document_store.delete_document(exp.document_url)
    await db.delete(exp)
    await db.flush()


async def sum_expenses(
    db: AsyncSession,
    location_id: Optional[int],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Decimal:
    """Total by expense date for one location (None = the unassigned bucket)."""
    q = select(func.coalesce(func.sum(Expense.amount), 0))
    q = q.where(Expense.location_id == location_id) if location_id is not None else q.where(Expense.location_id.is_(None))
    if start_date is not None:
        q = q.where(Expense.expense_date >= start_date)
    if end_date is not None:
        q = q.where(Expense.expense_date <= end_date)
    r = await db.execute(q)
    return to_decimal(r.scalar_one()) or Decimal("0")


async def sum_expenses_by_location(
    db: AsyncSession,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Dict[Optional[int], Decimal]:
    q = select(Expense.location_id, func.coalesce(func.sum(Expense.amount), 0)).group_by(Expense.location_id)
    if start_date is not None:
        q = q.where(Expense.expense_date >= start_date)
    if end_date is not None:
        q = q.where(Expense.expense_date <= end_date)
    r = await db.execute(q)
    return {loc_id: to_decimal(total) or Decimal("0") for loc_id, total in r.all()}


# ---------- whole-store snapshot ----------
SNAPSHOT_MODELS = (Location, Role, Setting, Employee, AttendanceRecord, Expense)


async def dump_table(db: AsyncSession, model) -> List[Dict[str, Any]]:
    cols = [c.name for c in model.__table__.columns]
    r = await db.execute(select(model))
    return [{c: getattr(obj, c) for c in cols} for obj in r.scalars().all()]


async def replace_all_tables(db: AsyncSession, tables: Dict[str, List[Dict[str, Any]]]) -> Dict[str, int]:
    """Delete every row of every table, then insert the snapshot rows (parents first)."""
    for model in reversed(SNAPSHOT_MODELS):
        await db.execute(delete(model))
    # restored rows reuse primary keys of objects this session may still hold
    db.expunge_all()
    counts: Dict[str, int] = {}
    for model in SNAPSHOT_MODELS:
        rows = tables.get(model.__tablename__) or []
        for row in rows:
            db.add(model(**row))
        await db.flush()
        counts[model.__tablename__] = len(rows)
    return counts
