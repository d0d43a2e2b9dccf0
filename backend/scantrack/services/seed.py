"""Startup seeding from config/seed_defaults.yaml: system roles, default settings, bootstrap super admin.
Only missing rows are created."""
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from scantrack import crud
from scantrack.config import settings, BASE_DIR
from scantrack.models import Employee, Role, Setting
from scantrack.visibility import SUPER_ADMIN

logger = logging.getLogger(__name__)


def load_seed_defaults(path: Optional[Path] = None) -> Dict[str, Any]:
    p = path or settings.seed_file
    if not p.is_absolute():
        p = BASE_DIR / p
    if not p.is_file():
        logger.warning("seed file %s not found", p)
        return {}
    with open(p, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


async def seed_defaults(db: AsyncSession, data: Optional[Dict[str, Any]] = None) -> Dict[str, int]:
    data = load_seed_defaults() if data is None else data
    created = {"roles": 0, "settings": 0, "employees": 0}

    existing_roles = set((await db.execute(select(Role.role_id))).scalars().all())
    for r in data.get("roles") or []:
        if r["role_id"] in existing_roles:
            continue
        db.add(Role(
            role_id=r["role_id"],
            display_name=r.get("display_name") or r["role_id"],
            description=r.get("description") or "",
            is_system=True,
        ))
        created["roles"] += 1

    defaults = dict(data.get("settings") or {})
    defaults.setdefault(crud.SCAN_RATE_KEY, settings.default_scan_rate)
    for key, value in defaults.items():
        if await db.get(Setting, key) is None:
            db.add(Setting(key=key, value=str(value)))
            created["settings"] += 1

    admin = data.get("super_admin")
    if admin:
        r = await db.execute(select(Employee.id).where(Employee.role == SUPER_ADMIN).limit(1))
        if r.scalar_one_or_none() is None:
            db.add(Employee(
                username=admin.get("username") or "admin",
                full_name=admin.get("full_name") or "Super Admin",
                role=SUPER_ADMIN,
            ))
            created["employees"] += 1

    await db.flush()
    if any(created.values()):
        logger.info("seeded defaults: %s", created)
    return created
