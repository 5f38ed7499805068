"""Enumeration types for the Proposal Airdrop Engine."""

from enum import Enum


class AccountRole(str, Enum):
    """How an account's stake reaches the proposal."""

    DIRECT_VOTER = "direct_voter"
    DELEGATOR = "delegator"


class RunStatus(str, Enum):
    """Status of a snapshot run."""

    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class ExportFormat(str, Enum):
    """Supported report export formats."""

    JSON = "json"
    CSV = "csv"
