"""Snapshot endpoints. Thin routes; logic lives in services."""

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from airdrop.services._types import AllocationEntryDict, ExportDataDict, SnapshotDict
from airdrop.services.errors import (
    AllocationError,
    ChainClientError,
    ExportError,
    IngestionError,
    SnapshotError,
)
from airdrop.services.export import ExportService
from airdrop.services.schemas.results import SnapshotResult
from airdrop.services.snapshot import SnapshotService
from app.dependencies import get_api_key, get_db, get_export_service, get_snapshot_service
from app.schemas.common import ErrorResponse
from app.schemas.snapshots import (
    AllocationEntryResponse,
    SnapshotRequest,
    SnapshotResponse,
    SnapshotRunResponse,
)

router: APIRouter = APIRouter(prefix="/api", tags=["snapshots"])

_NOT_FOUND: dict[int | str, dict[str, object]] = {404: {"model": ErrorResponse}}


def _failure_status(error: SnapshotError) -> int:
    """Status for a failed run, taken from the error that aborted it."""
    cause: BaseException | None = error.__cause__
    if isinstance(cause, AllocationError):
        return 422
    if isinstance(cause, (ChainClientError, IngestionError)):
        return 502
    return 500


@router.get("/snapshots", response_model=list[SnapshotResponse])
def list_snapshots(
    proposal_id: int | None = Query(None),
    service: SnapshotService = Depends(get_snapshot_service),
) -> list[SnapshotDict]:
    return service.list_snapshots(proposal_id)


@router.get(
    "/snapshots/{snapshot_id}", response_model=SnapshotResponse, responses=_NOT_FOUND
)
def get_snapshot(
    snapshot_id: str, service: SnapshotService = Depends(get_snapshot_service)
) -> SnapshotDict:
    result: SnapshotDict | None = service.get_snapshot(snapshot_id)
    if result is None:
        raise HTTPException(404, detail=f"Snapshot {snapshot_id} not found")
    return result


@router.get(
    "/snapshots/{snapshot_id}/entries",
    response_model=list[AllocationEntryResponse],
    responses=_NOT_FOUND,
)
def list_entries(
    snapshot_id: str,
    eligible_only: bool = Query(False),
    service: SnapshotService = Depends(get_snapshot_service),
) -> list[AllocationEntryDict]:
    entries: list[AllocationEntryDict] | None = service.list_entries(snapshot_id, eligible_only)
    if entries is None:
        raise HTTPException(404, detail=f"Snapshot {snapshot_id} not found")
    return entries


@router.get("/snapshots/{snapshot_id}/export", responses=_NOT_FOUND)
def export_snapshot(
    snapshot_id: str,
    format: Literal["json", "csv"] = Query("json"),
    exporter: ExportService = Depends(get_export_service),
) -> ExportDataDict:
    try:
        return exporter.generate_export(snapshot_id, format)
    except ExportError as e:
        raise HTTPException(404, detail=str(e)) from e


@router.post(
    "/snapshots",
    response_model=SnapshotRunResponse,
    responses={
        422: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
def trigger_snapshot(
    body: SnapshotRequest,
    db: Session = Depends(get_db),
    service: SnapshotService = Depends(get_snapshot_service),
    _key: str = Depends(get_api_key),
) -> SnapshotRunResponse:
    try:
        result: SnapshotResult = service.run_snapshot(
            proposal_id=body.proposal_id,
            total_airdrop=body.total_airdrop,
            months=body.months,
            period=body.period,
            dry_run=body.dry_run,
        )
    except SnapshotError as e:
        db.commit()
        raise HTTPException(_failure_status(e), detail=str(e)) from e

    report = result.report
    return SnapshotRunResponse(
        snapshot_id=result.snapshot_id,
        dry_run=result.dry_run,
        total_voters=report.total_voters if report else 0,
        total_proxied_accounts=report.total_proxied_accounts if report else 0,
        eligible_count=report.eligible_count if report else 0,
        total_allocated_tokens=report.total_allocated_tokens if report else 0,
        failed_voters=result.failed_voters,
        missing_accounts=result.missing_accounts,
        warnings=list(report.warnings) if report else [],
    )
