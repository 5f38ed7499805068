"""Result dataclasses produced by the allocation core and service operations."""

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

from airdrop.services.schemas.chain import GlobalStakeParameters
from db.enums import AccountRole


@dataclass(frozen=True, slots=True)
class ProxyDelegation:
    delegator: str
    direct_target: str
    liquid_stake: Decimal


@dataclass(frozen=True, slots=True)
class ProxyConflict:
    """A delegator observed more than once with differing proxy data."""

    delegator: str
    discarded_target: str | None
    kept_target: str | None
    discarded_vesting_shares: Decimal
    kept_vesting_shares: Decimal

    def describe(self) -> str:
        return (
            f"Conflicting proxy assignment for {self.delegator}: "
            f"kept {self.kept_target} ({self.kept_vesting_shares} VESTS), "
            f"discarded {self.discarded_target} ({self.discarded_vesting_shares} VESTS)"
        )


@dataclass(frozen=True, slots=True)
class ProxyResolution:
    delegations: dict[str, ProxyDelegation]
    conflicts: tuple[ProxyConflict, ...] = ()


@dataclass(frozen=True, slots=True)
class EligibilityRecord:
    account: str
    role: AccountRole
    counted_stake: Decimal
    is_eligible: bool
    resolved_proxy_target: str | None
    held_stake: Decimal = Decimal(0)
    delegated_stake: Decimal = Decimal(0)


@dataclass(frozen=True, slots=True)
class AllocationEntry:
    account: str
    role: AccountRole
    stake_held: Decimal
    stake_delegated_from: Decimal
    total_counted_stake: Decimal
    share_percent: Decimal
    token_allocation: int
    is_eligible: bool
    proxy_target: str | None


@dataclass(frozen=True, slots=True)
class AllocationReport:
    snapshot_timestamp: str
    proposal_id: int
    period: str
    total_voters: int
    total_proxied_accounts: int
    total_airdrop: Decimal
    months: int
    monthly_budget: Decimal
    total_counted_stake: Decimal
    total_allocated_tokens: int
    eligible_count: int
    entries: tuple[AllocationEntry, ...]
    warnings: tuple[str, ...] = ()
    global_parameters: GlobalStakeParameters | None = None

    @property
    def average_stake(self) -> Decimal:
        if not self.entries:
            return Decimal(0)
        return self.total_counted_stake / len(self.entries)

    @property
    def tokens_per_stake(self) -> Decimal:
        if self.total_counted_stake <= 0:
            return Decimal(0)
        return self.monthly_budget / self.total_counted_stake

    @property
    def budget_deviation(self) -> Decimal:
        return Decimal(self.total_allocated_tokens) - self.monthly_budget

    def top(self, n: int = 10) -> tuple[AllocationEntry, ...]:
        return self.entries[:n]


@dataclass
class SnapshotResult:
    snapshot_id: str
    report: AllocationReport | None
    failed_voters: list[str] = field(default_factory=list)
    missing_accounts: list[str] = field(default_factory=list)
    dry_run: bool = False


@dataclass
class ExportResult:
    snapshot_id: str
    output_path: Path
    row_count: int
    eligible_entries: int
    total_tokens: int
    warnings: list[str]
