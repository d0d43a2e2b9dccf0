"""
Shared fixtures: an in-memory SQLite store per test and a small seeded world.

world:
  locations  north (client_rate 0.50), south (client_rate 0.40)
  employees  admin (super_admin), mgr_north (location_manager @north),
             ann / bob (scanner_operator @north), sam (scanner_operator @south)
  settings   scan_rate = 0.10
"""
from decimal import Decimal
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from scantrack.database import Base
from scantrack.models import Location, Employee, Role, Setting
from scantrack.visibility import Identity

SYSTEM_ROLES = (
    ("super_admin", "Super Admin"),
    ("location_manager", "Location Admin"),
    ("scanner_operator", "Scanner Operator"),
    ("file_handler", "File Handler"),
)


@pytest.fixture
async def async_engine_and_session():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield engine, async_session
    await engine.dispose()


@pytest.fixture
async def db(async_engine_and_session):
    _, async_session = async_engine_and_session
    async with async_session() as session:
        yield session


def identity_of(emp: Employee) -> Identity:
    return Identity(employee_id=emp.id, role=emp.role, location_id=emp.location_id)


@pytest.fixture
async def world(db):
    for role_id, name in SYSTEM_ROLES:
        db.add(Role(role_id=role_id, display_name=name, is_system=True))
    db.add(Setting(key="scan_rate", value="0.10"))
    north = Location(name="North", address="1 North Rd", client_rate=Decimal("0.50"))
    south = Location(name="South", address="2 South Rd", client_rate=Decimal("0.40"))
    db.add_all([north, south])
    await db.flush()

    admin = Employee(username="admin", full_name="Super Admin", role="super_admin")
    mgr = Employee(username="mgr_north", full_name="Mona Manager", role="location_manager", location_id=north.id)
    ann = Employee(username="ann", full_name="Ann", role="scanner_operator", location_id=north.id, scanner_id="S1")
    bob = Employee(username="bob", full_name="Bob", role="scanner_operator", location_id=north.id, scanner_id="S2")
    sam = Employee(username="sam", full_name="Sam", role="scanner_operator", location_id=south.id)
    db.add_all([admin, mgr, ann, bob, sam])
    await db.flush()
    await db.commit()
    return {
        "north": north,
        "south": south,
        "admin": admin,
        "mgr": mgr,
        "ann": ann,
        "bob": bob,
        "sam": sam,
    }
