"""Database health check."""

import logging
import os

from sqlalchemy import func, inspect, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from airdrop.services._types import DbInfoDict
from config import DatabaseSettings, get_settings
from db.connection import REQUIRED_TABLES, get_engine
from db.models import AirdropSnapshots

logger: logging.Logger = logging.getLogger(__name__)


def _describe_backend(db: DatabaseSettings) -> tuple[str, str | None]:
    if db._use_postgres():
        return "postgres", db._redacted_postgres_dsn()
    return "sqlite", db._resolved_sqlite_path().as_posix()


def _latest_snapshot(engine: Engine) -> tuple[int, str | None]:
    with Session(engine) as session:
        count: int = session.scalar(select(func.count()).select_from(AirdropSnapshots)) or 0
        latest: str | None = session.scalar(
            select(AirdropSnapshots.period).order_by(AirdropSnapshots.started_at.desc()).limit(1)
        )
    return count, latest


def get_db_info() -> DbInfoDict:
    """Backend, table and snapshot summary for ``/health/db``. Errors are reported, not raised."""
    info: DbInfoDict = DbInfoDict(
        backend_type="unknown",
        database_url_or_path=None,
        tables_present=[],
        tables_missing=list(REQUIRED_TABLES),
        schema_initialized=False,
        pid=os.getpid(),
    )
    try:
        backend, location = _describe_backend(get_settings().database)
        info["backend_type"] = backend
        info["database_url_or_path"] = location

        engine: Engine = get_engine()
        existing: set[str] = set(inspect(engine).get_table_names())
        info["tables_present"] = sorted(existing)
        info["tables_missing"] = [t for t in REQUIRED_TABLES if t not in existing]
        info["schema_initialized"] = not info["tables_missing"]

        if info["schema_initialized"]:
            count, latest = _latest_snapshot(engine)
            info["snapshot_count"] = count
            info["latest_period"] = latest
    except Exception as e:
        logger.exception("Health DB check failed: %s", e)
        info["error"] = str(e)
    return info
