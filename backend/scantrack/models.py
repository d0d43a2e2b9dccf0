"""Database models: locations, employees, daily attendance, expenses, settings, roles.
employee id is permanent (never key on names); attendance is unique per (employee_id, record_date)."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from sqlalchemy import String, Date, Text, Numeric, ForeignKey, DateTime, Boolean, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from scantrack.database import Base

ATTENDANCE_STATUSES = ("present", "absent", "file_close", "holiday")
SALARY_TYPES = ("per_page", "fixed")


class Location(Base):
    """Physical scanning location billed to a client per output unit."""
    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, index=True, comment="unique location name")
    address: Mapped[Optional[str]] = mapped_column(String(500), comment="address")
    client_rate: Mapped[Decimal] = mapped_column(Numeric(10, 4), default=0, comment="billed to the client per output unit")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    employees: Mapped[List["Employee"]] = relationship("Employee", back_populates="location")
    expenses: Mapped[List["Expense"]] = relationship("Expense", back_populates="location")


class Employee(Base):
    """Employee and login identity. Compensation is stored inline:
    salary_type=per_page uses custom_rate (or the global scan_rate), salary_type=fixed uses fixed_salary."""
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    full_name: Mapped[str] = mapped_column(String(100))
    role: Mapped[str] = mapped_column(String(50), index=True, comment="roles.role_id")
    location_id: Mapped[Optional[int]] = mapped_column(ForeignKey("locations.id"), index=True, comment="null for admin/unassigned")
    scanner_id: Mapped[Optional[str]] = mapped_column(String(50), comment="scanner machine label")
    salary_type: Mapped[str] = mapped_column(String(20), default="per_page", comment="per_page / fixed")
    custom_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 4), comment="per_page override of scan_rate")
    fixed_salary: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), comment="fixed monthly amount")
    daily_target: Mapped[Optional[int]] = mapped_column(Integer, comment="daily output target (display only)")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    location: Mapped[Optional["Location"]] = relationship("Location", back_populates="employees")
    records: Mapped[List["AttendanceRecord"]] = relationship(
        "AttendanceRecord", back_populates="employee", foreign_keys="AttendanceRecord.employee_id"
    )


class AttendanceRecord(Base):
    """One row per employee per calendar day. output_count only means something when status=present."""
    __tablename__ = "attendance_records"
    __table_args__ = (UniqueConstraint("employee_id", "record_date", name="uq_attendance_employee_date"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id"), index=True)
    record_date: Mapped[date] = mapped_column(Date, index=True)
    status: Mapped[str] = mapped_column(String(20), default="present", comment="present / absent / file_close / holiday")
    output_count: Mapped[Optional[int]] = mapped_column(Integer, comment="pages scanned; null counts as 0")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    entered_by: Mapped[Optional[int]] = mapped_column(ForeignKey("employees.id"), comment="who last wrote the row")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    employee: Mapped["Employee"] = relationship("Employee", back_populates="records", foreign_keys=[employee_id])


class Expense(Base):
    """Miscellaneous location expense; location_id null is the unassigned/admin bucket."""
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    location_id: Mapped[Optional[int]] = mapped_column(ForeignKey("locations.id"), index=True)
    expense_date: Mapped[date] = mapped_column(Date, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    description: Mapped[Optional[str]] = mapped_column(Text)
    paid_by: Mapped[Optional[str]] = mapped_column(String(100), comment="who was paid")
    paid_from: Mapped[Optional[str]] = mapped_column(String(100), comment="account the money came from")
    document_url: Mapped[Optional[str]] = mapped_column(String(500), comment="document store reference")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    location: Mapped[Optional["Location"]] = relationship("Location", back_populates="expenses")


class Setting(Base):
    """Key/value settings (scan_rate ...)."""
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[Optional[str]] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Role(Base):
    """Role catalog. System roles are seeded and cannot be edited or deleted."""
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    role_id: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    display_name: Mapped[str] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(String(500))
    is_system: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
