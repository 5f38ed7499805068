"""Worker: snapshot a proposal's voters and allocate this month's airdrop.

Usage:
    python -m worker.run_snapshot --proposal 90
    python -m worker.run_snapshot --proposal 90 --period 2026-10 --export csv
    python -m worker.run_snapshot --proposal 90 --dry-run
"""

import argparse
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

import structlog

from airdrop.services._helpers import normalize_period
from airdrop.services.chain_client import ProxyChainClient, SteemClient
from airdrop.services.errors import SnapshotError
from airdrop.services.export import ExportService
from airdrop.services.schemas.results import ExportResult, SnapshotResult
from airdrop.services.snapshot import SnapshotService
from config import get_settings
from db.connection import get_session, init_database
from db.enums import ExportFormat

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


def parse_period(raw: str) -> str:
    try:
        return normalize_period(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"{exc} (e.g. 2026-01)") from exc


def parse_amount(raw: str) -> Decimal:
    try:
        value: Decimal = Decimal(raw)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"Invalid amount '{raw}'") from exc
    if value <= 0:
        raise argparse.ArgumentTypeError(f"Amount must be positive, got {raw}")
    return value


def main(argv: list[str] | None = None) -> None:
    settings = get_settings()
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Snapshot proposal voters and allocate the monthly airdrop",
    )
    parser.add_argument(
        "--proposal", "-p", type=int, default=settings.airdrop.proposal_id,
        help="Proposal id (default: AIRDROP_PROPOSAL_ID)",
    )
    parser.add_argument(
        "--total-airdrop", type=parse_amount, default=None,
        help="Total airdrop across all months (default: AIRDROP_TOTAL_AIRDROP)",
    )
    parser.add_argument(
        "--months", type=int, default=None,
        help="Number of monthly distributions (default: AIRDROP_MONTHS)",
    )
    parser.add_argument(
        "--period", type=parse_period, default=None,
        help="Distribution period YYYY-MM (default: current month)",
    )
    parser.add_argument(
        "--export", "-e", choices=[f.value for f in ExportFormat] + ["none"], default="json",
        help="Export format for the finished snapshot (default: json)",
    )
    parser.add_argument(
        "--output", "-o", type=Path, default=None,
        help="Export file path (auto-generated if omitted)",
    )
    parser.add_argument(
        "--dry-run", action="store_true", default=False,
        help="Compute without persisting",
    )
    args: argparse.Namespace = parser.parse_args(argv)

    logger.info(
        "Starting snapshot",
        proposal_id=args.proposal,
        period=args.period,
        dry_run=args.dry_run,
    )
    init_database()

    failed: bool = False
    with (
        get_session() as session,
        SteemClient() as steem,
        ProxyChainClient() as proxies,
    ):
        service: SnapshotService = SnapshotService(session, steem, proxies)
        try:
            result: SnapshotResult = service.run_snapshot(
                proposal_id=args.proposal,
                total_airdrop=args.total_airdrop,
                months=args.months,
                period=args.period,
                dry_run=args.dry_run,
            )
        except SnapshotError as e:
            logger.error("snapshot_error", detail=str(e))
            failed = True
        else:
            exporter: ExportService = ExportService(session, settings.export_dir)
            if args.export != "none" and result.report is not None:
                fmt: ExportFormat = ExportFormat(args.export)
                if args.dry_run:
                    writer = exporter.write_csv if fmt is ExportFormat.CSV else exporter.write_json
                    path: Path = writer(result.report, args.output)
                    logger.info("Wrote dry-run report", output=str(path))
                else:
                    session.flush()
                    export: ExportResult = exporter.export(result.snapshot_id, fmt, args.output)
                    logger.info("Export complete", output=str(export.output_path))

    if failed:
        sys.exit(1)

    logger.info(
        "Snapshot complete",
        snapshot_id=result.snapshot_id,
        voters=result.report.total_voters if result.report else 0,
        failed_voters=len(result.failed_voters),
        missing_accounts=len(result.missing_accounts),
    )
    if result.report is not None:
        for warn in result.report.warnings:
            logger.warning("snapshot_warning", detail=warn)


if __name__ == "__main__":
    main()
