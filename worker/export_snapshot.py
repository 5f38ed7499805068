"""Worker: export a persisted snapshot to JSON or CSV.

Usage:
    python -m worker.export_snapshot --snapshot SNAPSHOT_ID
    python -m worker.export_snapshot --snapshot SNAPSHOT_ID --format csv -o report.csv
"""

import argparse
import sys
from pathlib import Path

import structlog

from airdrop.services.errors import ExportError
from airdrop.services.export import ExportService
from airdrop.services.schemas.results import ExportResult
from config import get_settings
from db.connection import get_session
from db.enums import ExportFormat

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


def main(argv: list[str] | None = None) -> None:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Export an airdrop snapshot",
    )
    parser.add_argument("--snapshot", "-s", required=True, help="Snapshot id")
    parser.add_argument(
        "--format",
        "-f",
        choices=[f.value for f in ExportFormat],
        default=ExportFormat.JSON.value,
        help="Export format (default: json)",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=None,
        help="Output file path (auto-generated if omitted)",
    )
    args: argparse.Namespace = parser.parse_args(argv)

    with get_session() as session:
        service: ExportService = ExportService(session, get_settings().export_dir)
        try:
            result: ExportResult = service.export(
                args.snapshot, ExportFormat(args.format), args.output
            )
        except ExportError as e:
            logger.error("export_error", detail=str(e))
            sys.exit(1)

    logger.info(
        "Export complete",
        snapshot_id=result.snapshot_id,
        output=str(result.output_path),
        rows=result.row_count,
        total_tokens=result.total_tokens,
    )
    for warn in result.warnings:
        logger.warning("export_warning", detail=warn)


if __name__ == "__main__":
    main()
