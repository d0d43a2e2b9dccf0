"""Alembic environment for scantrack: metadata from scantrack.models, URL from Settings.
Migrations run synchronously, so the async driver in DATABASE_URL is swapped for its sync twin."""
from pathlib import Path
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from scantrack.config import settings
from scantrack.database import Base, normalize_database_url
from scantrack import models  # noqa: F401  (registers tables)

config = context.config
if config.config_file_name and Path(config.config_file_name).exists():
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _sync_url(url: str) -> str:
    """aiosqlite -> sqlite (relative file pinned to backend/), asyncpg -> psycopg2."""
    if url.startswith("sqlite+aiosqlite"):
        url = url.replace("sqlite+aiosqlite", "sqlite", 1)
        prefix = "sqlite:///./"
        if url.startswith(prefix):
            url = "sqlite:///" + (BACKEND_DIR / url[len(prefix):].strip()).resolve().as_posix()
        return url
    return url.replace("postgresql+asyncpg", "postgresql+psycopg2", 1)


config.set_main_option("sqlalchemy.url", _sync_url(normalize_database_url(settings.database_url)))


def run_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = create_engine(config.get_main_option("sqlalchemy.url"))
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, render_as_batch=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
