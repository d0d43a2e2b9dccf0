"""Scope clamping and write permissions, plus the endpoints that depend on them."""
from datetime import date
from decimal import Decimal
import pytest
from fastapi import HTTPException

from scantrack import crud, schemas
from scantrack.models import Employee
from scantrack.routers import dashboard as dashboard_router
from scantrack.routers import employees as employees_router
from scantrack.routers import locations as locations_router
from scantrack.visibility import (
    Identity,
    PermissionDeniedError,
    RoleKind,
    Scope,
    clamp_scope,
    ensure_can_assign_role,
    ensure_can_edit_employee,
    ensure_can_record_for,
    is_self_scoped,
    role_kind,
)

from conftest import identity_of

REQUESTED = Scope(date(2026, 2, 1), date(2026, 2, 28), location_id=2, employee_id=9)


def test_role_kinds():
    assert role_kind("super_admin") is RoleKind.SUPER_ADMIN
    assert role_kind("location_manager") is RoleKind.LOCATION_MANAGER
    assert role_kind("file_handler") is RoleKind.OPERATOR
    assert role_kind("auditor") is RoleKind.CUSTOM
    assert role_kind(None) is RoleKind.CUSTOM


def test_super_admin_scope_is_untouched():
    assert clamp_scope(Identity(1, "super_admin"), REQUESTED) == REQUESTED


def test_manager_is_pinned_to_own_location():
    scope = clamp_scope(Identity(5, "location_manager", location_id=1), REQUESTED)
    assert scope.location_id == 1
    assert scope.employee_id == 9
    assert scope.start_date == date(2026, 2, 1)
    assert not is_self_scoped(clamp_scope(Identity(5, "location_manager", 1), Scope()))


def test_operator_and_custom_role_are_self_only():
    for role in ("scanner_operator", "file_handler", "auditor"):
        scope = clamp_scope(Identity(7, role, location_id=1), REQUESTED)
        assert (scope.location_id, scope.employee_id) == (1, 7)
        assert scope.end_date == date(2026, 2, 28)
        assert is_self_scoped(scope)


def test_manager_without_location_is_self_only():
    scope = clamp_scope(Identity(5, "location_manager"), Scope(location_id=3))
    assert (scope.location_id, scope.employee_id) == (None, 5)


def test_clamp_is_idempotent():
    for identity in (Identity(1, "super_admin"), Identity(5, "location_manager", 1), Identity(7, "scanner_operator", 1)):
        once = clamp_scope(identity, REQUESTED)
        assert clamp_scope(identity, once) == once


def test_manager_cannot_assign_privileged_roles():
    mgr = Identity(5, "location_manager", 1)
    with pytest.raises(PermissionDeniedError, match="Cannot create super admin"):
        ensure_can_assign_role(mgr, "super_admin")
    with pytest.raises(PermissionDeniedError):
        ensure_can_assign_role(mgr, "location_manager")
    ensure_can_assign_role(mgr, "scanner_operator")
    ensure_can_assign_role(Identity(1, "super_admin"), "super_admin")


def test_edit_and_record_guards():
    mgr = Identity(5, "location_manager", 1)
    ensure_can_edit_employee(mgr, 1)
    with pytest.raises(PermissionDeniedError):
        ensure_can_edit_employee(mgr, 2)
    with pytest.raises(PermissionDeniedError):
        ensure_can_edit_employee(Identity(7, "scanner_operator", 1), 1)
    ensure_can_record_for(Identity(7, "scanner_operator", 1), 7, 1)
    with pytest.raises(PermissionDeniedError):
        ensure_can_record_for(Identity(7, "scanner_operator", 1), 8, 1)


def test_manager_cannot_edit_privileged_peers():
    mgr = Identity(5, "location_manager", 1)
    with pytest.raises(PermissionDeniedError, match="cannot modify"):
        ensure_can_edit_employee(mgr, 1, 6, "location_manager")
    with pytest.raises(PermissionDeniedError, match="cannot modify"):
        ensure_can_edit_employee(mgr, 1, 1, "super_admin")
    ensure_can_edit_employee(mgr, 1, 5, "location_manager")
    ensure_can_edit_employee(mgr, 1, 7, "file_handler")
    ensure_can_edit_employee(Identity(1, "super_admin"), 1, 6, "location_manager")


@pytest.mark.asyncio
async def test_manager_asking_for_other_location_gets_own(db, world):
    await crud.upsert_attendance(db, world["ann"].id, date(2026, 2, 10), "present", output_count=200)
    await crud.upsert_attendance(db, world["sam"].id, date(2026, 2, 10), "present", output_count=100)
    await db.commit()

    res = await dashboard_router.get_fleet_summary(
        location_id=world["south"].id, start_date=None, end_date=None, year=2026, month=2,
        identity=identity_of(world["mgr"]), db=db,
    )
    assert [row["location_id"] for row in res["locations"]] == [world["north"].id]
    assert res["totals"]["total_output"] == 200


@pytest.mark.asyncio
async def test_operator_dashboard_shows_own_contribution(db, world):
    await crud.upsert_attendance(db, world["ann"].id, date(2026, 2, 10), "present", output_count=200)
    await crud.upsert_attendance(db, world["bob"].id, date(2026, 2, 10), "present", output_count=300)
    await crud.create_expense(db, schemas.ExpenseCreate(
        location_id=world["north"].id, expense_date=date(2026, 2, 12), amount=Decimal("30"),
    ))
    await db.commit()
    res = await dashboard_router.get_fleet_summary(
        location_id=None, start_date=None, end_date=None, year=None, month=None,
        identity=identity_of(world["ann"]), db=db,
    )
    (row,) = res["locations"]
    assert row["total_output"] == 200
    assert row["expenses"] == Decimal("0.00")


@pytest.mark.asyncio
async def test_location_list_is_scoped(db, world):
    rows = await locations_router.list_locations(identity=identity_of(world["admin"]), db=db)
    assert {r.name for r in rows} == {"North", "South"}
    north = next(r for r in rows if r.name == "North")
    assert north.employee_count == 3

    rows = await locations_router.list_locations(identity=identity_of(world["ann"]), db=db)
    assert [r.name for r in rows] == ["North"]


@pytest.mark.asyncio
async def test_employee_list_is_scoped(db, world):
    rows = await employees_router.list_employees(location_id=None, role=None, identity=identity_of(world["mgr"]), db=db)
    assert [r.full_name for r in rows] == ["Ann", "Bob", "Mona Manager"]

    rows = await employees_router.list_employees(location_id=None, role=None, identity=identity_of(world["admin"]), db=db)
    assert "Super Admin" not in [r.full_name for r in rows]
    assert len(rows) == 4


@pytest.mark.asyncio
async def test_manager_creates_at_own_location_only(db, world):
    mgr = identity_of(world["mgr"])
    data = schemas.EmployeeCreate(
        username="newbie", full_name="New Bie", role="scanner_operator", location_id=world["south"].id,
    )
    created = await employees_router.create_employee(data=data, identity=mgr, db=db)
    assert created.location_id == world["north"].id
    assert created.location_name == "North"

    with pytest.raises(HTTPException) as exc:
        await employees_router.create_employee(
            data=schemas.EmployeeCreate(username="boss", full_name="Boss", role="super_admin"),
            identity=mgr, db=db,
        )
    assert exc.value.status_code == 403

    with pytest.raises(HTTPException) as exc:
        await employees_router.create_employee(
            data=schemas.EmployeeCreate(username="ann", full_name="Dup", role="scanner_operator"),
            identity=mgr, db=db,
        )
    assert exc.value.status_code == 409


@pytest.mark.asyncio
async def test_manager_cannot_edit_other_location(db, world):
    with pytest.raises(HTTPException) as exc:
        await employees_router.update_employee(
            employee_id=world["sam"].id, data=schemas.EmployeeUpdate(full_name="X"),
            identity=identity_of(world["mgr"]), db=db,
        )
    assert exc.value.status_code == 403

    with pytest.raises(HTTPException) as exc:
        await employees_router.update_employee(
            employee_id=world["ann"].id, data=schemas.EmployeeUpdate(location_id=world["south"].id),
            identity=identity_of(world["mgr"]), db=db,
        )
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_manager_cannot_touch_admin_or_peer_at_own_location(db, world):
    peer = Employee(username="mgr2", full_name="Second Manager", role="location_manager", location_id=world["north"].id)
    boss = Employee(username="boss", full_name="Local Admin", role="super_admin", location_id=world["north"].id)
    db.add_all([peer, boss])
    await db.commit()
    mgr = identity_of(world["mgr"])

    for target in (peer, boss):
        with pytest.raises(HTTPException) as exc:
            await employees_router.update_employee(
                employee_id=target.id, data=schemas.EmployeeUpdate(full_name="Renamed"), identity=mgr, db=db,
            )
        assert exc.value.status_code == 403
        with pytest.raises(HTTPException) as exc:
            await employees_router.delete_employee(employee_id=target.id, permanent=False, identity=mgr, db=db)
        assert exc.value.status_code == 403
        assert (await crud.get_employee(db, target.id)).is_active is True

    updated = await employees_router.update_employee(
        employee_id=world["ann"].id, data=schemas.EmployeeUpdate(full_name="Ann B"), identity=mgr, db=db,
    )
    assert updated.full_name == "Ann B"


@pytest.mark.asyncio
async def test_compensation_replaced_wholesale(db, world):
    admin = identity_of(world["admin"])
    ann = world["ann"]
    await employees_router.update_employee(
        employee_id=ann.id, data=schemas.EmployeeUpdate(custom_rate=Decimal("0.3")), identity=admin, db=db,
    )
    updated = await employees_router.update_employee(
        employee_id=ann.id, data=schemas.EmployeeUpdate(salary_type="fixed", fixed_salary=Decimal("3000")),
        identity=admin, db=db,
    )
    assert updated.salary_type == "fixed"
    assert updated.fixed_salary == Decimal("3000")
    assert updated.custom_rate is None


def test_fixed_salary_required_for_fixed_type():
    with pytest.raises(ValueError):
        schemas.EmployeeUpdate(salary_type="fixed")


@pytest.mark.asyncio
async def test_employee_delete_guarded_by_attendance(db, world):
    admin = identity_of(world["admin"])
    bob = world["bob"]
    await crud.upsert_attendance(db, bob.id, date(2026, 2, 1), "present", output_count=1)
    await db.commit()
    with pytest.raises(HTTPException) as exc:
        await employees_router.delete_employee(employee_id=bob.id, permanent=True, identity=admin, db=db)
    assert exc.value.status_code == 409
    assert "1 daily record" in exc.value.detail

    res = await employees_router.delete_employee(employee_id=bob.id, permanent=False, identity=admin, db=db)
    assert res == {"message": "Employee deactivated"}

    res = await employees_router.delete_employee(employee_id=world["sam"].id, permanent=True, identity=admin, db=db)
    assert res == {"message": "Employee permanently deleted"}
    assert await crud.get_employee(db, world["sam"].id) is None

    with pytest.raises(HTTPException) as exc:
        await employees_router.delete_employee(employee_id=world["admin"].id, permanent=False, identity=admin, db=db)
    assert exc.value.status_code == 400
