"""FastAPI application entry point."""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from airdrop.services._types import DbInfoDict
from app.dependencies import get_api_key
from app.routes import snapshots
from app.routes.health import get_db_info
from app.schemas.common import ErrorResponse, HealthResponse
from config import Settings, get_settings
from db.connection import init_database

logger: logging.Logger = logging.getLogger(__name__)

_TRUTHY: frozenset[str] = frozenset({"1", "true", "yes"})


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = get_settings()
    logger.info(
        "Starting for proposal %s (%s), DB: %s",
        settings.airdrop.proposal_id,
        settings.environment,
        settings.database.db_info_for_logging(),
    )
    logger.info("Steem RPC: %s", settings.steem.rpc_url)
    init_database()
    yield


def create_app() -> FastAPI:
    app: FastAPI = FastAPI(
        title="Proposal Airdrop Engine",
        version="0.1.0",
        lifespan=_lifespan,
    )

    @app.exception_handler(Exception)
    async def _on_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled: %s", exc)
        body: ErrorResponse = ErrorResponse(detail=str(exc), type=type(exc).__name__)
        return JSONResponse(status_code=500, content=body.model_dump())

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        settings: Settings = get_settings()
        return HealthResponse(
            status="ok",
            proposal_id=settings.airdrop.proposal_id,
            environment=settings.environment,
        )

    @app.get("/health/db", dependencies=[Depends(get_api_key)])
    def health_db() -> DbInfoDict:
        return get_db_info()

    app.include_router(snapshots.router)
    return app


app: FastAPI = create_app()


def start() -> None:
    """Entry point for airdrop-api."""
    project_root: Path = Path(__file__).resolve().parent.parent
    os.chdir(project_root)
    env_file: Path = project_root / ".env"
    if env_file.exists():
        load_dotenv(env_file, override=False)

    uvicorn.run(
        "app.main:app",
        host=os.environ.get("AIRDROP_HOST", "0.0.0.0"),
        port=int(os.environ.get("AIRDROP_PORT", "8000")),
        reload=os.environ.get("AIRDROP_RELOAD", "false").lower() in _TRUTHY,
    )
