"""Shared utilities for the service layer."""

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from uuid import uuid4

# JSON column type: every JSON TEXT column in this DB stores a dict.
JsonDict = dict[str, object]
Serializable = Mapping[str, object] | list[Mapping[str, object]]

PERIOD_FORMAT: str = "%Y-%m"


def new_id() -> str:
    return str(uuid4())


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


def current_period() -> str:
    """Calendar month of the current UTC time, as YYYY-MM."""
    return datetime.now(UTC).strftime(PERIOD_FORMAT)


def normalize_period(raw: str) -> str:
    """Validate a distribution period and zero-pad it to YYYY-MM.

    Raises ``ValueError`` for anything that is not a year and a month 1-12.
    """
    parts: list[str] = raw.strip().split("-")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid period '{raw}', expected YYYY-MM")
    year, month = int(parts[0]), int(parts[1])
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month in period '{raw}'")
    return f"{year:04d}-{month:02d}"


def load_json(raw: str | None) -> JsonDict | None:
    """Deserialize a JSON TEXT column. Always a dict or None in this codebase."""
    if not raw:
        return None
    result: object = json.loads(raw)
    if isinstance(result, dict):
        return dict(result)
    return None


def dump_json(obj: Serializable) -> str:
    return json.dumps(obj, default=str)
