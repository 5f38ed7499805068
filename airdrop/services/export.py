"""Export service for writing allocation reports as JSON or CSV."""

import csv
import io
import json
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path

import structlog
from sqlalchemy.orm import Session

from airdrop.services._helpers import now_iso
from airdrop.services._types import ExportDataDict, ExportReportDict, ExportVoterDict
from airdrop.services.errors import ExportError, SnapshotError
from airdrop.services.schemas.results import AllocationReport, ExportResult
from airdrop.services.snapshot import SnapshotService
from db.enums import ExportFormat

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


def _whole(value: Decimal) -> str:
    return str(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _percent(value: Decimal) -> str:
    return str(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def report_to_dict(report: AllocationReport) -> ExportReportDict:
    """Serialize a report in the published voters-file layout.

    Stakes are whole units and shares carry two decimals, all as strings.
    """
    return ExportReportDict(
        snapshotTimestamp=report.snapshot_timestamp,
        proposalId=report.proposal_id,
        period=report.period,
        totalVoters=report.total_voters,
        totalProxiedAccounts=report.total_proxied_accounts,
        totalAirdrop=_whole(report.total_airdrop),
        months=report.months,
        airdropPerMonth=_whole(report.monthly_budget),
        proposaltotalSP=_whole(report.total_counted_stake),
        airdropTotalTokenCount=report.total_allocated_tokens,
        warnings=list(report.warnings),
        voters=[
            ExportVoterDict(
                account=e.account,
                sp=_whole(e.stake_held),
                proxied_sp=_whole(e.stake_delegated_from),
                total_sp=_whole(e.total_counted_stake),
                sp_share_percent=_percent(e.share_percent),
                token_count=str(e.token_allocation),
                is_eligible=e.is_eligible,
                proxy_to=e.proxy_target,
            )
            for e in report.entries
        ],
    )


class ExportService:
    """Exports persisted snapshots to JSON / CSV."""

    _CSV_COLUMNS = [
        "rank",
        "account",
        "role",
        "stake_held",
        "stake_delegated_from",
        "total_counted_stake",
        "share_percent",
        "token_allocation",
        "is_eligible",
        "proxy_target",
    ]

    def __init__(self, session: Session, export_dir: str | Path = "exports") -> None:
        self.session: Session = session
        self.export_dir: Path = Path(export_dir)

    def _load(self, snapshot_id: str) -> AllocationReport:
        try:
            return SnapshotService(self.session).load_report(snapshot_id)
        except SnapshotError as e:
            raise ExportError(str(e)) from e

    def default_path(self, report: AllocationReport, fmt: ExportFormat) -> Path:
        return self.export_dir / (
            f"proposal_{report.proposal_id}_{report.period}_voters.{fmt.value}"
        )

    def write_json(self, report: AllocationReport, output_path: Path | None = None) -> Path:
        output_path = output_path or self.default_path(report, ExportFormat.JSON)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(report_to_dict(report), f, indent=2)
        return output_path

    def write_csv(self, report: AllocationReport, output_path: Path | None = None) -> Path:
        output_path = output_path or self.default_path(report, ExportFormat.CSV)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", newline="", encoding="utf-8") as f:
            f.write(self._render_csv(report))
        return output_path

    def _render_csv(self, report: AllocationReport) -> str:
        buf = io.StringIO()
        writer = csv.writer(buf)
        writer.writerow([f"# Proposal {report.proposal_id} Airdrop - {report.period}"])
        writer.writerow([f"# Snapshot: {report.snapshot_timestamp}"])
        writer.writerow([f"# Generated: {now_iso()}"])
        writer.writerow([f"# Monthly budget: {_whole(report.monthly_budget)}"])
        writer.writerow([f"# Total counted stake: {_whole(report.total_counted_stake)}"])
        writer.writerow([f"# Total allocated tokens: {report.total_allocated_tokens}"])
        for warning in report.warnings:
            writer.writerow([f"# WARNING: {warning}"])
        writer.writerow([])

        writer.writerow(self._CSV_COLUMNS)
        for rank, e in enumerate(report.entries, start=1):
            writer.writerow([
                rank,
                e.account,
                e.role.value,
                _whole(e.stake_held),
                _whole(e.stake_delegated_from),
                _whole(e.total_counted_stake),
                _percent(e.share_percent),
                e.token_allocation,
                e.is_eligible,
                e.proxy_target or "",
            ])
        return buf.getvalue()

    def export(
        self,
        snapshot_id: str,
        fmt: ExportFormat = ExportFormat.JSON,
        output_path: Path | None = None,
    ) -> ExportResult:
        report: AllocationReport = self._load(snapshot_id)
        if fmt is ExportFormat.CSV:
            path: Path = self.write_csv(report, output_path)
        else:
            path = self.write_json(report, output_path)

        warnings: list[str] = list(report.warnings)
        if report.budget_deviation != 0:
            warnings.append(
                f"Allocated {report.total_allocated_tokens} tokens against a budget of "
                f"{report.monthly_budget} (per-account rounding)"
            )
        logger.info("Exported snapshot", snapshot_id=snapshot_id, path=str(path), format=fmt.value)
        return ExportResult(
            snapshot_id=snapshot_id,
            output_path=path,
            row_count=len(report.entries),
            eligible_entries=report.eligible_count,
            total_tokens=report.total_allocated_tokens,
            warnings=warnings,
        )

    def generate_export(self, snapshot_id: str, fmt: str = "json") -> ExportDataDict:
        """Render a snapshot for the API response instead of a file."""
        report: AllocationReport = self._load(snapshot_id)
        if fmt == ExportFormat.CSV.value:
            return {
                "format": "csv",
                "content": self._render_csv(report),
                "record_count": len(report.entries),
            }
        return {"format": "json", "data": report_to_dict(report), "record_count": len(report.entries)}
