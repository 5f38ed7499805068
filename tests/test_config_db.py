"""Tests for settings and the database bootstrap against a temporary SQLite file."""

from collections.abc import Generator
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import inspect, select

from airdrop.services._helpers import new_id, now_iso
from app.routes.health import get_db_info
from config import Settings, get_settings
from db.connection import REQUIRED_TABLES, get_engine, get_session, init_database, reset_engine
from db.enums import RunStatus
from db.models import AirdropSnapshots


@pytest.fixture()
def sqlite_settings(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Settings, None, None]:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("DB_SQLITE_PATH", str(tmp_path / "airdrop.db"))
    monkeypatch.setenv("AIRDROP_TOTAL_AIRDROP", "1200")
    monkeypatch.setenv("AIRDROP_MONTHS", "12")
    get_settings.cache_clear()
    reset_engine()
    yield get_settings()
    reset_engine()
    get_settings.cache_clear()


def test_settings_from_env(sqlite_settings: Settings) -> None:
    assert sqlite_settings.airdrop.total_airdrop == Decimal("1200")
    assert sqlite_settings.airdrop.months == 12
    assert sqlite_settings.airdrop.proposal_id == 90
    assert not sqlite_settings.database._use_postgres()
    assert sqlite_settings.steem.rpc_url.startswith("https://")
    assert sqlite_settings.export_dir.exists()


def test_init_database_creates_tables(sqlite_settings: Settings) -> None:
    init_database()
    tables: set[str] = set(inspect(get_engine()).get_table_names())
    assert set(REQUIRED_TABLES) <= tables

    info = get_db_info()
    assert info["backend_type"] == "sqlite"
    assert info["schema_initialized"] is True
    assert info["tables_missing"] == []
    assert info["snapshot_count"] == 0


def test_get_session_commits(sqlite_settings: Settings) -> None:
    init_database()
    snapshot_id: str = new_id()
    with get_session() as session:
        session.add(
            AirdropSnapshots(
                id=snapshot_id,
                proposal_id=90,
                period="2026-10",
                status=RunStatus.RUNNING.value,
                started_at=now_iso(),
                total_airdrop=1200.0,
                months=12,
                monthly_budget=100.0,
            )
        )

    with get_session() as session:
        row = session.scalar(select(AirdropSnapshots).where(AirdropSnapshots.id == snapshot_id))
        assert row is not None
        assert row.period == "2026-10"


def test_get_session_rolls_back(sqlite_settings: Settings) -> None:
    init_database()
    with pytest.raises(RuntimeError), get_session() as session:
        session.add(
            AirdropSnapshots(
                id=new_id(),
                proposal_id=90,
                period="2026-10",
                status=RunStatus.RUNNING.value,
                started_at=now_iso(),
                total_airdrop=1.0,
                months=1,
                monthly_budget=1.0,
            )
        )
        raise RuntimeError("boom")

    with get_session() as session:
        assert session.scalar(select(AirdropSnapshots)) is None


def test_app_health_endpoints(sqlite_settings: Settings) -> None:
    from fastapi.testclient import TestClient

    from app.main import create_app

    with TestClient(create_app()) as client:
        health = client.get("/health").json()
        assert health == {"status": "ok", "proposalId": 90, "environment": "development"}

        info = client.get("/health/db").json()
        assert info["schema_initialized"] is True
        assert info["snapshot_count"] == 0
        assert info["latest_period"] is None
