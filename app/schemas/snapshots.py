"""Snapshot request/response schemas."""

from decimal import Decimal

from pydantic import Field

from app.schemas.common import CamelModel


class SnapshotResponse(CamelModel):
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


class AllocationEntryResponse(CamelModel):
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


class SnapshotRequest(CamelModel):
    proposal_id: int | None = None
    total_airdrop: Decimal | None = Field(None, gt=0)
    months: int | None = Field(None, gt=0)
    period: str | None = Field(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    dry_run: bool = False


class SnapshotRunResponse(CamelModel):
    snapshot_id: str
    dry_run: bool
    total_voters: int
    total_proxied_accounts: int
    eligible_count: int
    total_allocated_tokens: int
    failed_voters: list[str]
    missing_accounts: list[str]
    warnings: list[str]
