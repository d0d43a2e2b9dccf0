"""
Visibility scoping and write permissions.

Every read path builds a Scope from the request and passes it through clamp_scope() before
touching storage. Reads never fail on scope: a request outside the caller's reach is narrowed
to what the caller may see. Writes are different and raise PermissionDeniedError.

Only the fixed privilege kinds below carry scoping. Any other role in the catalog
(scanner_operator, file_handler, or a custom label) gets self-only visibility.
"""
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from typing import Optional


class RoleKind(str, Enum):
    SUPER_ADMIN = "super_admin"
    LOCATION_MANAGER = "location_manager"
    OPERATOR = "operator"
    CUSTOM = "custom"


SUPER_ADMIN = "super_admin"
LOCATION_MANAGER = "location_manager"
OPERATOR_ROLES = ("scanner_operator", "file_handler")
PRIVILEGED_ROLES = (SUPER_ADMIN, LOCATION_MANAGER)


def role_kind(role_id: Optional[str]) -> RoleKind:
    key = (role_id or "").strip()
    if key == SUPER_ADMIN:
        return RoleKind.SUPER_ADMIN
    if key == LOCATION_MANAGER:
        return RoleKind.LOCATION_MANAGER
    if key in OPERATOR_ROLES:
        return RoleKind.OPERATOR
    return RoleKind.CUSTOM


class PermissionDeniedError(PermissionError):
    """Write attempted outside the caller's privilege."""
    pass


@dataclass(frozen=True)
class Identity:
    employee_id: int
    role: str
    location_id: Optional[int] = None

    @property
    def kind(self) -> RoleKind:
        return role_kind(self.role)

    @property
    def is_super_admin(self) -> bool:
        return self.kind is RoleKind.SUPER_ADMIN


@dataclass(frozen=True)
class Scope:
    """Inclusive date window plus optional location / employee filters. None means unbounded."""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    location_id: Optional[int] = None
    employee_id: Optional[int] = None

    def contains(self, d: date) -> bool:
        if self.start_date is not None and d < self.start_date:
            return False
        if self.end_date is not None and d > self.end_date:
            return False
        return True


def clamp_scope(identity: Identity, requested: Scope) -> Scope:
    kind = identity.kind
    if kind is RoleKind.SUPER_ADMIN:
        return requested
    if kind is RoleKind.LOCATION_MANAGER and identity.location_id is not None:
        return replace(requested, location_id=identity.location_id)
    # operators, custom roles and managers without a location: self only
    return replace(requested, location_id=identity.location_id, employee_id=identity.employee_id)


def is_self_scoped(scope: Scope) -> bool:
    """A scope narrowed to one employee; location-wide figures (expenses) stay hidden."""
    return scope.employee_id is not None


# ---------- write permissions ----------
def ensure_can_manage_employees(identity: Identity) -> None:
    if identity.kind not in (RoleKind.SUPER_ADMIN, RoleKind.LOCATION_MANAGER):
        raise PermissionDeniedError("Insufficient permissions")


def ensure_super_admin(identity: Identity) -> None:
    if not identity.is_super_admin:
        raise PermissionDeniedError("Insufficient permissions")


def ensure_can_edit_employee(
    identity: Identity,
    employee_location_id: Optional[int],
    employee_id: Optional[int] = None,
    employee_role: Optional[str] = None,
) -> None:
    """Managers may only touch non-privileged employees bound to their own location (or themselves)."""
    ensure_can_manage_employees(identity)
    if identity.is_super_admin:
        return
    if identity.location_id is None or employee_location_id != identity.location_id:
        raise PermissionDeniedError("You can only edit employees at your location")
    if employee_id != identity.employee_id and role_kind(employee_role) in (
        RoleKind.SUPER_ADMIN, RoleKind.LOCATION_MANAGER,
    ):
        raise PermissionDeniedError("You cannot modify this employee")


def ensure_can_assign_role(identity: Identity, role_id: Optional[str]) -> None:
    if role_id is None or identity.is_super_admin:
        return
    if role_id == SUPER_ADMIN:
        raise PermissionDeniedError("Cannot create super admin")
    if role_id in PRIVILEGED_ROLES:
        raise PermissionDeniedError("You cannot assign this role")


def ensure_can_record_for(identity: Identity, employee_id: int, employee_location_id: Optional[int]) -> None:
    """Attendance writes: operators and custom roles record for themselves only."""
    kind = identity.kind
    if kind is RoleKind.SUPER_ADMIN:
        return
    if kind is RoleKind.LOCATION_MANAGER and identity.location_id is not None:
        if employee_location_id != identity.location_id:
            raise PermissionDeniedError("You can only record attendance for employees at your location")
        return
    if employee_id != identity.employee_id:
        raise PermissionDeniedError("You can only record your own attendance")
