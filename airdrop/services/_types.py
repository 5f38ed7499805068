"""Typed dicts for service-layer return values.

Keeps route-facing methods explicit about their shape instead of returning bare dicts.
"""

import sys

if sys.version_info >= (3, 12):
    from typing import TypedDict
else:
    from typing_extensions import TypedDict

# -- Snapshots -------------------------------------------------------------


class SnapshotDict(TypedDict):
    id: str
    proposal_id: int
    period: str
    status: str
    started_at: str
    completed_at: str | None
    snapshot_timestamp: str | None
    total_voters: int
    total_proxied_accounts: int
    eligible_count: int
    total_airdrop: str
    months: int
    monthly_budget: str
    total_counted_stake: str
    total_allocated_tokens: int
    warnings: list[str]
    error_details: str | None


class AllocationEntryDict(TypedDict):
    rank: int
    account: str
    role: str
    stake_held: str
    stake_delegated_from: str
    total_counted_stake: str
    share_percent: str
    token_allocation: int
    is_eligible: bool
    proxy_target: str | None


# -- Export ----------------------------------------------------------------


class ExportVoterDict(TypedDict):
    account: str
    sp: str
    proxied_sp: str
    total_sp: str
    sp_share_percent: str
    token_count: str
    is_eligible: bool
    proxy_to: str | None


class ExportReportDict(TypedDict):
    snapshotTimestamp: str
    proposalId: int
    period: str
    totalVoters: int
    totalProxiedAccounts: int
    totalAirdrop: str
    months: int
    airdropPerMonth: str
    proposaltotalSP: str
    airdropTotalTokenCount: int
    warnings: list[str]
    voters: list[ExportVoterDict]


class ExportDataDict(TypedDict, total=False):
    format: str
    content: str
    data: ExportReportDict
    record_count: int


# -- Health ----------------------------------------------------------------


class DbInfoDict(TypedDict, total=False):
    backend_type: str
    database_url_or_path: str | None
    tables_present: list[str]
    tables_missing: list[str]
    schema_initialized: bool
    snapshot_count: int
    latest_period: str | None
    pid: int
    error: str
