"""Location and role catalog: unique names, deactivation, guarded permanent deletes, system role protection."""
from datetime import date
from decimal import Decimal
import pytest
from fastapi import HTTPException
from sqlalchemy import select

from scantrack import crud, schemas
from scantrack.models import Employee, Role
from scantrack.routers import locations as locations_router
from scantrack.routers import roles as roles_router
from scantrack.routers import settings as settings_router
from scantrack.services.seed import seed_defaults

from conftest import identity_of


@pytest.mark.asyncio
async def test_duplicate_location_name_is_conflict(db, world):
    admin = identity_of(world["admin"])
    with pytest.raises(HTTPException) as exc:
        await locations_router.create_location(data=schemas.LocationCreate(name=" north "), identity=admin, db=db)
    assert exc.value.status_code == 409

    created = await locations_router.create_location(
        data=schemas.LocationCreate(name="East", client_rate=Decimal("0.45")), identity=admin, db=db,
    )
    assert created.name == "East"
    assert created.employee_count == 0

    with pytest.raises(HTTPException) as exc:
        await locations_router.update_location(
            location_id=created.id, data=schemas.LocationUpdate(name="South"), identity=admin, db=db,
        )
    assert exc.value.status_code == 409


@pytest.mark.asyncio
async def test_only_super_admin_manages_locations(db, world):
    with pytest.raises(HTTPException) as exc:
        await locations_router.create_location(
            data=schemas.LocationCreate(name="West"), identity=identity_of(world["mgr"]), db=db,
        )
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_permanent_delete_reports_dependents(db, world):
    admin = identity_of(world["admin"])
    north = world["north"]
    with pytest.raises(HTTPException) as exc:
        await locations_router.delete_location(location_id=north.id, permanent=True, identity=admin, db=db)
    assert exc.value.status_code == 409
    assert exc.value.detail.startswith("Cannot delete: 3 employee(s)")


@pytest.mark.asyncio
async def test_attendance_history_blocks_permanent_delete_first(db, world):
    admin = identity_of(world["admin"])
    north = world["north"]
    await crud.upsert_attendance(db, world["ann"].id, date(2026, 2, 2), "present", output_count=10)
    await crud.upsert_attendance(db, world["bob"].id, date(2026, 2, 2), "absent")
    await db.commit()
    with pytest.raises(HTTPException) as exc:
        await locations_router.delete_location(location_id=north.id, permanent=True, identity=admin, db=db)
    assert exc.value.status_code == 409
    assert exc.value.detail.startswith("Cannot delete: 2 daily record(s)")
    assert (await crud.get_location(db, north.id)) is not None


@pytest.mark.asyncio
async def test_expense_blocks_permanent_delete(db, world):
    admin = identity_of(world["admin"])
    empty = await crud.create_location(db, schemas.LocationCreate(name="Empty"))
    await crud.create_expense(db, schemas.ExpenseCreate(location_id=empty.id, expense_date=date(2026, 1, 2), amount=Decimal("1")))
    await db.commit()
    with pytest.raises(HTTPException) as exc:
        await locations_router.delete_location(location_id=empty.id, permanent=True, identity=admin, db=db)
    assert exc.value.status_code == 409
    assert "1 expense(s)" in exc.value.detail


@pytest.mark.asyncio
async def test_deactivate_then_delete_clean_location(db, world):
    admin = identity_of(world["admin"])
    loc = await crud.create_location(db, schemas.LocationCreate(name="Temp"))
    await db.commit()

    res = await locations_router.delete_location(location_id=loc.id, permanent=False, identity=admin, db=db)
    assert res == {"message": "Location deactivated"}
    assert (await crud.get_location(db, loc.id)).is_active is False

    res = await locations_router.delete_location(location_id=loc.id, permanent=True, identity=admin, db=db)
    assert res == {"message": "Location permanently deleted"}
    assert await crud.get_location(db, loc.id) is None

    with pytest.raises(HTTPException) as exc:
        await locations_router.delete_location(location_id=loc.id, permanent=True, identity=admin, db=db)
    assert exc.value.status_code == 404


def test_role_id_format():
    with pytest.raises(ValueError, match="lowercase letters and underscores"):
        schemas.RoleCreate(role_id="Bad-Role", display_name="x")
    assert schemas.RoleCreate(role_id="qa_lead", display_name="QA").role_id == "qa_lead"


@pytest.mark.asyncio
async def test_system_roles_are_read_only(db, world):
    admin = identity_of(world["admin"])
    sys_role = (await db.execute(select(Role).where(Role.role_id == "file_handler"))).scalar_one()
    with pytest.raises(HTTPException) as exc:
        await roles_router.update_role(role_pk=sys_role.id, data=schemas.RoleUpdate(display_name="X"), identity=admin, db=db)
    assert exc.value.status_code == 403
    with pytest.raises(HTTPException) as exc:
        await roles_router.delete_role(role_pk=sys_role.id, identity=admin, db=db)
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_custom_role_lifecycle(db, world):
    admin = identity_of(world["admin"])
    role = await roles_router.create_role(data=schemas.RoleCreate(role_id="auditor", display_name="Auditor"), identity=admin, db=db)
    assert role.is_system is False

    with pytest.raises(HTTPException) as exc:
        await roles_router.create_role(data=schemas.RoleCreate(role_id="auditor", display_name="Again"), identity=admin, db=db)
    assert exc.value.status_code == 409

    db.add(Employee(username="aud", full_name="Aud", role="auditor", location_id=world["north"].id))
    await db.flush()
    with pytest.raises(HTTPException) as exc:
        await roles_router.delete_role(role_pk=role.id, identity=admin, db=db)
    assert exc.value.status_code == 409
    assert exc.value.detail == "Cannot delete role. 1 users are using this role."

    listed = await roles_router.list_roles(identity=admin, db=db)
    assert [r.is_system for r in listed][:4] == [True] * 4
    assert listed[-1].role_id == "auditor"


@pytest.mark.asyncio
async def test_unknown_role_rejected_on_create(db, world):
    from scantrack.routers import employees as employees_router

    with pytest.raises(HTTPException) as exc:
        await employees_router.create_employee(
            data=schemas.EmployeeCreate(username="x1", full_name="X", role="nope"),
            identity=identity_of(world["admin"]), db=db,
        )
    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_scan_rate_setting_is_super_admin_only(db, world):
    with pytest.raises(HTTPException) as exc:
        await settings_router.update_settings(
            data=schemas.SettingsUpdate(scan_rate=Decimal("0.2")), identity=identity_of(world["mgr"]), db=db,
        )
    assert exc.value.status_code == 403
    res = await settings_router.update_settings(
        data=schemas.SettingsUpdate(scan_rate=Decimal("0.2")), identity=identity_of(world["admin"]), db=db,
    )
    assert res["scan_rate"] == "0.2"
    assert await crud.get_scan_rate(db) == Decimal("0.2")


@pytest.mark.asyncio
async def test_seed_only_adds_missing_rows(db):
    data = {
        "roles": [{"role_id": "super_admin", "display_name": "Super Admin"},
                  {"role_id": "scanner_operator", "display_name": "Scanner Operator"}],
        "settings": {"scan_rate": "0.10"},
        "super_admin": {"username": "admin", "full_name": "Super Admin"},
    }
    first = await seed_defaults(db, data)
    assert first == {"roles": 2, "settings": 1, "employees": 1}
    second = await seed_defaults(db, data)
    assert second == {"roles": 0, "settings": 0, "employees": 0}
    assert await crud.get_scan_rate(db) == Decimal("0.10")
