"""ScanTrack - attendance, earnings and location financials API"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from scantrack import config as app_config
from scantrack.database import AsyncSessionLocal, init_db
from scantrack.routers import (
    auth,
    locations,
    employees,
    records,
    expenses,
    roles,
    settings,
    dashboard,
    backup_restore,
)
from scantrack.services.backup_job import run_scheduled_backup
from scantrack.services.seed import seed_defaults

logging.basicConfig(
    level=getattr(logging, app_config.settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)
_scheduler: AsyncIOScheduler | None = None


async def _daily_backup_job():
    try:
        await run_scheduled_backup()
    except Exception:
        logger.exception("daily backup failed")


def _parse_schedule_time(value: str) -> tuple[int, int]:
    """HH:MM -> (hour, minute); anything unreadable falls back to midnight."""
    try:
        parts = value.strip().split(":")
        hour, minute = int(parts[0]), int(parts[1]) if len(parts) > 1 else 0
    except (ValueError, IndexError, AttributeError):
        logger.warning("invalid backup_schedule_time %r, using 00:00", value)
        return 0, 0
    if not (0 <= hour < 24 and 0 <= minute < 60):
        logger.warning("invalid backup_schedule_time %r, using 00:00", value)
        return 0, 0
    return hour, minute


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    async with AsyncSessionLocal() as db:
        await seed_defaults(db)
        await db.commit()
    backup_dir = app_config.settings.backup_dir
    if not backup_dir.is_absolute():
        backup_dir = app_config.BASE_DIR / backup_dir
    backup_dir.mkdir(parents=True, exist_ok=True)
    global _scheduler
    _scheduler = AsyncIOScheduler()
    hour, minute = _parse_schedule_time(app_config.settings.backup_schedule_time)
    _scheduler.add_job(
        _daily_backup_job,
        "cron",
        hour=hour,
        minute=minute,
        id="scantrack_daily_backup",
        replace_existing=True,
    )
    _scheduler.start()
    logger.info("daily backup scheduled at %02d:%02d", hour, minute)
    yield
    if _scheduler:
        _scheduler.shutdown(wait=False)


app = FastAPI(
    title="ScanTrack",
    description="Scanning attendance, earnings and location profit",
    version="1.0.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(locations.router)
app.include_router(employees.router)
app.include_router(records.router)
app.include_router(expenses.router)
app.include_router(roles.router)
app.include_router(settings.router)
app.include_router(dashboard.router)
app.include_router(backup_restore.router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request, exc):
    if isinstance(exc, HTTPException):
        raise exc
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc) if exc else "Internal Server Error"},
    )


@app.get("/health")
def health():
    return {"status": "ok", "timestamp": datetime.utcnow().isoformat()}
