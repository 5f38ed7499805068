"""Engine and session handling for the snapshot database."""

import logging
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config import DatabaseSettings, get_settings
from db.models import Base

logger = logging.getLogger(__name__)

REQUIRED_TABLES: tuple[str, ...] = ("airdrop_snapshots", "allocation_entries")

_SQLITE_PRAGMAS: tuple[str, ...] = (
    "PRAGMA foreign_keys=ON",
    "PRAGMA journal_mode=WAL",
    "PRAGMA busy_timeout=30000",
)

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _build_engine(db: DatabaseSettings, echo: bool) -> Engine:
    if db._use_postgres():
        return create_engine(
            db.url,
            echo=echo,
            pool_size=db.pool_size,
            pool_timeout=db.pool_timeout,
            pool_recycle=db.pool_recycle,
            pool_pre_ping=True,
        )

    engine: Engine = create_engine(db.url, echo=echo)

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _record):
        cur = dbapi_conn.cursor()
        for pragma in _SQLITE_PRAGMAS:
            cur.execute(pragma)
        cur.close()

    return engine


def get_engine() -> Engine:
    """Shared engine, created from settings on first use."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = _build_engine(settings.database, settings.debug)
        logger.debug("Engine created for %s", settings.database.db_info_for_logging())
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            bind=get_engine(),
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
    return _session_factory


def init_database() -> None:
    """Create the snapshot tables if they do not exist yet."""
    engine: Engine = get_engine()
    existing: set[str] = set(inspect(engine).get_table_names())
    Base.metadata.create_all(engine)

    created: list[str] = [t for t in REQUIRED_TABLES if t not in existing]
    if created:
        logger.info("Created tables %s", created)
    else:
        logger.debug("Snapshot tables already present")


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Session that commits on success and rolls back on any error."""
    session: Session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency wrapping ``get_session``."""
    with get_session() as session:
        yield session


def reset_engine() -> None:
    """Drop the cached engine so the next call rebuilds it from settings."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
