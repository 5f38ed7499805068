"""FastAPI dependencies: DB sessions, services and auth."""

import secrets

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from airdrop.services.export import ExportService
from airdrop.services.snapshot import SnapshotService
from config import get_settings
from db.connection import get_db as get_db  # noqa: F401 (re-exported for routes)


def get_api_key(x_api_key: str = Header(default="")) -> str:
    """Require ``X-API-Key`` on mutating endpoints when a key is configured."""
    expected: str | None = get_settings().api_key
    if not expected:
        return ""
    if not secrets.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
    return x_api_key


def get_snapshot_service(db: Session = Depends(get_db)) -> SnapshotService:
    return SnapshotService(db)


def get_export_service(db: Session = Depends(get_db)) -> ExportService:
    return ExportService(db, get_settings().export_dir)
