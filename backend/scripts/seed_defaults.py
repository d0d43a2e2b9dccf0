"""Seed system roles, default settings and the bootstrap super admin (also done on app startup).
Run from backend/: python scripts/seed_defaults.py [path/to/seed.yaml]"""
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from scantrack.database import AsyncSessionLocal, init_db
from scantrack.services.seed import load_seed_defaults, seed_defaults


async def run(seed_path: Path | None) -> None:
    await init_db()
    data = load_seed_defaults(seed_path)
    if not data:
        print("Nothing to seed")
        return
    async with AsyncSessionLocal() as db:
        created = await seed_defaults(db, data)
        await db.commit()
    print(f"Seed complete: {created}")


if __name__ == "__main__":
    asyncio.run(run(Path(sys.argv[1]) if len(sys.argv) > 1 else None))
