"""Snapshot runs: fetch chain inputs, allocate the airdrop, persist the result."""

from collections.abc import Collection, Sequence
from decimal import Decimal

import structlog
from sqlalchemy import Select, select
from sqlalchemy.orm import Session, selectinload

from airdrop.services._helpers import (
    current_period,
    dump_json,
    load_json,
    new_id,
    normalize_period,
    now_iso,
)
from airdrop.services._types import AllocationEntryDict, SnapshotDict
from airdrop.services.allocation import build_report
from airdrop.services.chain_client import ProxyChainClient, SteemClient
from airdrop.services.eligibility import classify
from airdrop.services.errors import SnapshotError, SnapshotNotFoundError
from airdrop.services.proxy_resolver import candidates_from_proxy_chains, resolve_proxies
from airdrop.services.schemas.chain import (
    AccountRecord,
    GlobalStakeParameters,
    ProxyChainLookup,
)
from airdrop.services.schemas.results import (
    AllocationEntry,
    AllocationReport,
    EligibilityRecord,
    ProxyResolution,
    SnapshotResult,
)
from config import get_settings
from db.enums import AccountRole, RunStatus
from db.models import AirdropSnapshots, AllocationEntries

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


def build_allocation_report(
    voter_ids: Sequence[str],
    voter_accounts: Sequence[AccountRecord],
    candidates: Sequence[AccountRecord],
    params: GlobalStakeParameters,
    *,
    proposal_id: int,
    total_airdrop: Decimal,
    months: int,
    period: str | None = None,
    extra_warnings: Collection[str] = (),
) -> AllocationReport:
    """Run proxy resolution, classification and allocation over fetched inputs."""
    resolution: ProxyResolution = resolve_proxies(voter_ids, candidates, params)
    records: list[EligibilityRecord] = classify(
        voter_accounts, resolution.delegations, params, voter_ids=voter_ids
    )
    proxied: int = sum(1 for r in records if r.role is AccountRole.DELEGATOR)
    warnings: list[str] = [c.describe() for c in resolution.conflicts]
    warnings.extend(extra_warnings)
    return build_report(
        records,
        proposal_id=proposal_id,
        total_airdrop=total_airdrop,
        months=months,
        total_voters=len(voter_ids),
        total_proxied_accounts=proxied,
        period=period,
        warnings=warnings,
        global_parameters=params,
    )


def _snapshot_dict(row: AirdropSnapshots) -> SnapshotDict:
    warnings: object = (load_json(row.warnings) or {}).get("warnings", [])
    return SnapshotDict(
        id=row.id,
        proposal_id=row.proposal_id,
        period=row.period,
        status=row.status,
        started_at=row.started_at,
        completed_at=row.completed_at,
        snapshot_timestamp=row.snapshot_timestamp,
        total_voters=row.total_voters,
        total_proxied_accounts=row.total_proxied_accounts,
        eligible_count=row.eligible_count,
        total_airdrop=str(row.total_airdrop),
        months=row.months,
        monthly_budget=str(row.monthly_budget),
        total_counted_stake=str(row.total_counted_stake),
        total_allocated_tokens=row.total_allocated_tokens,
        warnings=[str(w) for w in warnings] if isinstance(warnings, list) else [],
        error_details=row.error_details,
    )


def _entry_dict(row: AllocationEntries) -> AllocationEntryDict:
    return AllocationEntryDict(
        rank=row.rank,
        account=row.account,
        role=row.role,
        stake_held=str(row.stake_held),
        stake_delegated_from=str(row.stake_delegated_from),
        total_counted_stake=str(row.total_counted_stake),
        share_percent=str(row.share_percent),
        token_allocation=row.token_allocation,
        is_eligible=bool(row.is_eligible),
        proxy_target=row.proxy_target,
    )


class SnapshotService:
    """Runs and reads persisted airdrop snapshots."""

    def __init__(
        self,
        session: Session,
        steem_client: SteemClient | None = None,
        proxy_client: ProxyChainClient | None = None,
    ) -> None:
        self.session: Session = session
        self.steem_client: SteemClient | None = steem_client
        self.proxy_client: ProxyChainClient | None = proxy_client
        self._owned: list[SteemClient | ProxyChainClient] = []

    def _clients(self) -> tuple[SteemClient, ProxyChainClient]:
        if self.steem_client is None:
            self.steem_client = SteemClient()
            self._owned.append(self.steem_client)
        if self.proxy_client is None:
            self.proxy_client = ProxyChainClient()
            self._owned.append(self.proxy_client)
        return self.steem_client, self.proxy_client

    def _close_owned_clients(self) -> None:
        """Close clients this service opened itself; injected ones belong to the caller."""
        while self._owned:
            client = self._owned.pop()
            client.close()
            if client is self.steem_client:
                self.steem_client = None
            elif client is self.proxy_client:
                self.proxy_client = None

    def _create_snapshot(
        self, proposal_id: int, period: str, total_airdrop: Decimal, months: int
    ) -> AirdropSnapshots:
        row: AirdropSnapshots = AirdropSnapshots(
            id=new_id(),
            proposal_id=proposal_id,
            period=period,
            status=RunStatus.RUNNING.value,
            started_at=now_iso(),
            total_airdrop=float(total_airdrop),
            months=months,
            monthly_budget=float(total_airdrop / months),
        )
        self.session.add(row)
        self.session.flush()
        return row

    def _persist_report(self, row: AirdropSnapshots, report: AllocationReport) -> None:
        row.snapshot_timestamp = report.snapshot_timestamp
        row.total_voters = report.total_voters
        row.total_proxied_accounts = report.total_proxied_accounts
        row.eligible_count = report.eligible_count
        row.total_counted_stake = float(report.total_counted_stake)
        row.total_allocated_tokens = report.total_allocated_tokens
        row.warnings = dump_json({"warnings": list(report.warnings)})
        if report.global_parameters is not None:
            row.total_vesting_fund = float(report.global_parameters.total_vesting_fund_liquid)
            row.total_vesting_shares = float(report.global_parameters.total_vesting_shares)

        for rank, entry in enumerate(report.entries, start=1):
            self.session.add(
                AllocationEntries(
                    id=new_id(),
                    snapshot_id=row.id,
                    rank=rank,
                    account=entry.account,
                    role=entry.role.value,
                    stake_held=float(entry.stake_held),
                    stake_delegated_from=float(entry.stake_delegated_from),
                    total_counted_stake=float(entry.total_counted_stake),
                    share_percent=float(entry.share_percent),
                    token_allocation=entry.token_allocation,
                    is_eligible=entry.is_eligible,
                    proxy_target=entry.proxy_target,
                )
            )
        row.status = RunStatus.SUCCESS.value
        row.completed_at = now_iso()
        self.session.flush()

    def run_snapshot(
        self,
        proposal_id: int | None = None,
        total_airdrop: Decimal | None = None,
        months: int | None = None,
        period: str | None = None,
        dry_run: bool = False,
    ) -> SnapshotResult:
        """Snapshot the proposal's voters and allocate this month's airdrop.

        Any failure marks the persisted snapshot FAILED and is re-raised as
        ``SnapshotError``; nothing partial is returned.
        """
        cfg = get_settings().airdrop
        proposal_id = cfg.proposal_id if proposal_id is None else proposal_id
        total_airdrop = Decimal(cfg.total_airdrop if total_airdrop is None else total_airdrop)
        months = cfg.months if months is None else months
        period = normalize_period(period) if period else current_period()

        row: AirdropSnapshots | None = None
        if not dry_run:
            row = self._create_snapshot(proposal_id, period, total_airdrop, months)
        snapshot_id: str = row.id if row is not None else new_id()

        logger.info(
            "Starting snapshot",
            snapshot_id=snapshot_id,
            proposal_id=proposal_id,
            period=period,
            dry_run=dry_run,
        )
        try:
            steem, proxies = self._clients()
            params: GlobalStakeParameters = steem.get_global_parameters()
            voter_ids: list[str] = steem.get_proposal_voters(proposal_id)
            voter_accounts: list[AccountRecord] = steem.get_accounts(voter_ids)

            found: set[str] = {a.name for a in voter_accounts}
            missing: list[str] = [v for v in voter_ids if v not in found]
            if missing:
                logger.warning("Voter accounts not found", count=len(missing), sample=missing[:5])

            lookup: ProxyChainLookup = proxies.get_proxy_chains(voter_ids)
            extra: list[str] = [f"Proxy chain lookup failed for {v}" for v in lookup.failed_voters]
            extra.extend(f"Voter account not found: {v}" for v in missing)

            report: AllocationReport = build_allocation_report(
                voter_ids,
                voter_accounts,
                candidates_from_proxy_chains(lookup.chains),
                params,
                proposal_id=proposal_id,
                total_airdrop=total_airdrop,
                months=months,
                period=period,
                extra_warnings=extra,
            )
        except Exception as e:
            logger.exception("Snapshot failed", snapshot_id=snapshot_id)
            if row is not None:
                row.status = RunStatus.FAILED.value
                row.error_details = dump_json({"error": str(e), "type": type(e).__name__})
                row.completed_at = now_iso()
                self.session.flush()
            raise SnapshotError(f"Snapshot {snapshot_id} failed: {e}") from e
        finally:
            self._close_owned_clients()

        if row is not None:
            self._persist_report(row, report)
        self._log_summary(report)

        return SnapshotResult(
            snapshot_id=snapshot_id,
            report=report,
            failed_voters=list(lookup.failed_voters),
            missing_accounts=missing,
            dry_run=dry_run,
        )

    @staticmethod
    def _log_summary(report: AllocationReport) -> None:
        logger.info(
            "Snapshot summary",
            total_stake=str(report.total_counted_stake.quantize(Decimal("1"))),
            average_stake=str(report.average_stake.quantize(Decimal("1"))),
            monthly_budget=str(report.monthly_budget),
            tokens_per_stake=str(report.tokens_per_stake.quantize(Decimal("0.000001"))),
            total_tokens=report.total_allocated_tokens,
        )
        for rank, entry in enumerate(report.top(10), start=1):
            logger.info(
                "Top account",
                rank=rank,
                account=entry.account,
                stake=str(entry.total_counted_stake.quantize(Decimal("1"))),
                share_percent=str(entry.share_percent.quantize(Decimal("0.01"))),
                tokens=entry.token_allocation,
            )

    # ------------------------------------------------------------------
    # Route-facing methods
    # ------------------------------------------------------------------

    def _get_row(self, snapshot_id: str) -> AirdropSnapshots | None:
        stmt: Select[tuple[AirdropSnapshots]] = (
            select(AirdropSnapshots)
            .where(AirdropSnapshots.id == snapshot_id)
            .options(selectinload(AirdropSnapshots.entries))
        )
        return self.session.scalar(stmt)

    def list_snapshots(self, proposal_id: int | None = None) -> list[SnapshotDict]:
        stmt: Select[tuple[AirdropSnapshots]] = select(AirdropSnapshots).order_by(
            AirdropSnapshots.started_at.desc()
        )
        if proposal_id is not None:
            stmt = stmt.where(AirdropSnapshots.proposal_id == proposal_id)
        return [_snapshot_dict(r) for r in self.session.scalars(stmt).all()]

    def get_snapshot(self, snapshot_id: str) -> SnapshotDict | None:
        row: AirdropSnapshots | None = self._get_row(snapshot_id)
        return _snapshot_dict(row) if row else None

    def list_entries(
        self, snapshot_id: str, eligible_only: bool = False
    ) -> list[AllocationEntryDict] | None:
        row: AirdropSnapshots | None = self._get_row(snapshot_id)
        if row is None:
            return None
        return [_entry_dict(e) for e in row.entries if e.is_eligible or not eligible_only]

    def load_report(self, snapshot_id: str) -> AllocationReport:
        """Rebuild a persisted snapshot as an ``AllocationReport``."""
        row: AirdropSnapshots | None = self._get_row(snapshot_id)
        if row is None:
            raise SnapshotNotFoundError(f"Snapshot {snapshot_id} not found")
        if row.status != RunStatus.SUCCESS.value:
            raise SnapshotError(f"Snapshot {snapshot_id} has status {row.status}")

        params: GlobalStakeParameters | None = None
        if row.total_vesting_fund is not None and row.total_vesting_shares is not None:
            params = GlobalStakeParameters(
                total_vesting_fund_liquid=Decimal(str(row.total_vesting_fund)),
                total_vesting_shares=Decimal(str(row.total_vesting_shares)),
            )
        return AllocationReport(
            snapshot_timestamp=row.snapshot_timestamp or row.started_at,
            proposal_id=row.proposal_id,
            period=row.period,
            total_voters=row.total_voters,
            total_proxied_accounts=row.total_proxied_accounts,
            total_airdrop=Decimal(str(row.total_airdrop)),
            months=row.months,
            monthly_budget=Decimal(str(row.monthly_budget)),
            total_counted_stake=Decimal(str(row.total_counted_stake)),
            total_allocated_tokens=row.total_allocated_tokens,
            eligible_count=row.eligible_count,
            entries=tuple(
                AllocationEntry(
                    account=e.account,
                    role=AccountRole(e.role),
                    stake_held=Decimal(str(e.stake_held)),
                    stake_delegated_from=Decimal(str(e.stake_delegated_from)),
                    total_counted_stake=Decimal(str(e.total_counted_stake)),
                    share_percent=Decimal(str(e.share_percent)),
                    token_allocation=e.token_allocation,
                    is_eligible=bool(e.is_eligible),
                    proxy_target=e.proxy_target,
                )
                for e in row.entries
            ),
            warnings=tuple(_snapshot_dict(row)["warnings"]),
            global_parameters=params,
        )
