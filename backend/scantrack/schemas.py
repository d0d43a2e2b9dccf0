"""API request/response structures (Pydantic). Boundary validation lives here; the engine assumes clean input."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
import re
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from scantrack.models import ATTENDANCE_STATUSES, SALARY_TYPES

ROLE_ID_PATTERN = re.compile(r"^[a-z_]+$")


def _strip_or_none(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


# ---------- locations ----------
class LocationBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="unique location name")
    address: Optional[str] = None
    client_rate: Decimal = Field(Decimal("0"), ge=0, description="billed to the client per output unit")

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Location name is required")
        return v


class LocationCreate(LocationBase):
    pass


class LocationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    address: Optional[str] = None
    client_rate: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None


class LocationRead(LocationBase):
    id: int
    is_active: bool
    created_at: datetime
    employee_count: int = 0
    model_config = ConfigDict(from_attributes=True)


# ---------- employees ----------
class CompensationFields(BaseModel):
    salary_type: Optional[str] = Field(None, description="per_page / fixed")
    custom_rate: Optional[Decimal] = Field(None, ge=0, description="per_page override of scan_rate")
    fixed_salary: Optional[Decimal] = Field(None, ge=0, description="fixed monthly amount")

    @field_validator("salary_type")
    @classmethod
    def check_salary_type(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().lower()
        if v not in SALARY_TYPES:
            raise ValueError("salary_type must be per_page or fixed")
        return v

    @model_validator(mode="after")
    def fixed_needs_amount(self):
        if self.salary_type == "fixed" and self.fixed_salary is None:
            raise ValueError("fixed_salary is required when salary_type is fixed")
        return self

    def touches_compensation(self) -> bool:
        return bool({"salary_type", "custom_rate", "fixed_salary"} & self.model_fields_set)


class EmployeeCreate(CompensationFields):
    username: str = Field(..., min_length=1, max_length=50)
    full_name: str = Field(..., min_length=1, max_length=100)
    role: str = Field(..., min_length=1, max_length=50, description="roles.role_id")
    location_id: Optional[int] = None
    scanner_id: Optional[str] = None
    daily_target: Optional[int] = Field(None, ge=0)

    @field_validator("username", "full_name", "role")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("All fields are required")
        return v

    @field_validator("scanner_id", mode="before")
    @classmethod
    def strip_scanner(cls, v):
        return _strip_or_none(v)


class EmployeeUpdate(CompensationFields):
    username: Optional[str] = Field(None, min_length=1, max_length=50)
    full_name: Optional[str] = Field(None, min_length=1, max_length=100)
    role: Optional[str] = None
    location_id: Optional[int] = None
    scanner_id: Optional[str] = None
    daily_target: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class EmployeeRead(BaseModel):
    id: int
    username: str
    full_name: str
    role: str
    location_id: Optional[int] = None
    location_name: Optional[str] = None
    scanner_id: Optional[str] = None
    salary_type: str
    custom_rate: Optional[Decimal] = None
    fixed_salary: Optional[Decimal] = None
    daily_target: Optional[int] = None
    is_active: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ---------- attendance ----------
class AttendanceFields(BaseModel):
    record_date: date
    status: str = Field("present", description="present / absent / file_close / holiday")
    output_count: Optional[int] = Field(None, ge=0, description="pages scanned; only kept when present")
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def check_status(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v not in ATTENDANCE_STATUSES:
            raise ValueError(f"status must be one of {', '.join(ATTENDANCE_STATUSES)}")
        return v

    @field_validator("notes", mode="before")
    @classmethod
    def strip_notes(cls, v):
        return _strip_or_none(v)


class AttendanceCreate(AttendanceFields):
    employee_id: Optional[int] = Field(None, description="defaults to the caller")


class AttendanceBulkEntry(AttendanceFields):
    employee_id: int


class AttendanceBulkRequest(BaseModel):
    records: List[AttendanceBulkEntry]


class AttendanceRead(BaseModel):
    id: int
    employee_id: int
    record_date: date
    status: str
    output_count: Optional[int] = None
    notes: Optional[str] = None
    entered_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    full_name: Optional[str] = None
    scanner_id: Optional[str] = None
    user_role: Optional[str] = None
    location_id: Optional[int] = None
    location_name: Optional[str] = None


# ---------- expenses ----------
class ExpenseBase(BaseModel):
    location_id: Optional[int] = Field(None, description="null = unassigned/admin bucket")
    expense_date: date
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = None
    paid_by: Optional[str] = None
    paid_from: Optional[str] = None
    document_url: Optional[str] = None

    @field_validator("description", "paid_by", "paid_from", "document_url", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip_or_none(v)


class ExpenseCreate(ExpenseBase):
    pass


class ExpenseUpdate(ExpenseBase):
    pass


class ExpenseRead(ExpenseBase):
    id: int
    location_name: Optional[str] = None
    created_at: datetime


# ---------- roles ----------
class RoleCreate(BaseModel):
    role_id: str = Field(..., min_length=1, max_length=50)
    display_name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None

    @field_validator("role_id")
    @classmethod
    def check_role_id(cls, v: str) -> str:
        v = v.strip()
        if not ROLE_ID_PATTERN.match(v):
            raise ValueError("Role ID must be lowercase letters and underscores only")
        return v


class RoleUpdate(BaseModel):
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None


class RoleRead(BaseModel):
    id: int
    role_id: str
    display_name: str
    description: Optional[str] = None
    is_system: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ---------- settings ----------
class SettingsUpdate(BaseModel):
    scan_rate: Optional[Decimal] = Field(None, ge=0, description="global default piece rate")
