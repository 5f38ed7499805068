"""Shared dataclasses for airdrop services."""

from airdrop.services.schemas.chain import (
    AccountRecord,
    GlobalStakeParameters,
    ProxyChainLookup,
    ProxyChainRecord,
    parse_asset,
)
from airdrop.services.schemas.results import (
    AllocationEntry,
    AllocationReport,
    EligibilityRecord,
    ExportResult,
    ProxyConflict,
    ProxyDelegation,
    ProxyResolution,
    SnapshotResult,
)

__all__ = [
    # Chain schemas
    "AccountRecord",
    "GlobalStakeParameters",
    "ProxyChainLookup",
    "ProxyChainRecord",
    "parse_asset",
    # Result schemas
    "AllocationEntry",
    "AllocationReport",
    "EligibilityRecord",
    "ExportResult",
    "ProxyConflict",
    "ProxyDelegation",
    "ProxyResolution",
    "SnapshotResult",
]
