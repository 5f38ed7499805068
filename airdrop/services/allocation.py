"""Proportional airdrop allocation over eligible stake."""

from collections.abc import Iterable, Sequence
from decimal import ROUND_HALF_UP, Decimal, localcontext

import structlog

from airdrop.services._helpers import current_period, now_iso
from airdrop.services.errors import NoEligibleStakeError
from airdrop.services.schemas.chain import GlobalStakeParameters
from airdrop.services.schemas.results import AllocationEntry, AllocationReport, EligibilityRecord

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

ALLOCATION_PRECISION: int = 40
WHOLE_TOKEN: Decimal = Decimal("1")
HUNDRED: Decimal = Decimal(100)


def _sort_key(entry: AllocationEntry) -> tuple[Decimal, str]:
    return (-entry.total_counted_stake, entry.account)


def allocate(
    records: Sequence[EligibilityRecord],
    monthly_budget: Decimal,
) -> list[AllocationEntry]:
    """Split ``monthly_budget`` across eligible records by counted stake.

    Each allocation is rounded half-up to a whole token on its own; no
    remainder is redistributed, so the total may differ from the budget by
    at most half a token per eligible account.
    """
    total: Decimal = sum((r.counted_stake for r in records if r.is_eligible), Decimal(0))
    if total <= 0:
        raise NoEligibleStakeError(
            f"Total eligible stake is {total} across {len(records)} accounts",
            records=records,
        )

    entries: list[AllocationEntry] = []
    with localcontext() as ctx:
        ctx.prec = ALLOCATION_PRECISION
        for r in records:
            if r.is_eligible:
                fraction: Decimal = r.counted_stake / total
                share: Decimal = fraction * HUNDRED
                tokens: int = int(
                    (fraction * monthly_budget).quantize(WHOLE_TOKEN, rounding=ROUND_HALF_UP)
                )
            else:
                share = Decimal(0)
                tokens = 0
            entries.append(
                AllocationEntry(
                    account=r.account,
                    role=r.role,
                    stake_held=r.held_stake,
                    stake_delegated_from=r.delegated_stake,
                    total_counted_stake=r.counted_stake if r.is_eligible else Decimal(0),
                    share_percent=share,
                    token_allocation=tokens,
                    is_eligible=r.is_eligible,
                    proxy_target=r.resolved_proxy_target,
                )
            )

    entries.sort(key=_sort_key)
    return entries


def build_report(
    records: Sequence[EligibilityRecord],
    *,
    proposal_id: int,
    total_airdrop: Decimal,
    months: int,
    total_voters: int,
    total_proxied_accounts: int,
    period: str | None = None,
    snapshot_timestamp: str | None = None,
    warnings: Iterable[str] = (),
    global_parameters: GlobalStakeParameters | None = None,
) -> AllocationReport:
    """Allocate the monthly share of ``total_airdrop`` and wrap it in a report."""
    monthly_budget: Decimal = Decimal(total_airdrop) / months
    entries: list[AllocationEntry] = allocate(records, monthly_budget)

    eligible: list[AllocationEntry] = [e for e in entries if e.is_eligible]
    total_stake: Decimal = sum((e.total_counted_stake for e in eligible), Decimal(0))
    total_tokens: int = sum(e.token_allocation for e in eligible)

    report = AllocationReport(
        snapshot_timestamp=snapshot_timestamp or now_iso(),
        proposal_id=proposal_id,
        period=period or current_period(),
        total_voters=total_voters,
        total_proxied_accounts=total_proxied_accounts,
        total_airdrop=Decimal(total_airdrop),
        months=months,
        monthly_budget=monthly_budget,
        total_counted_stake=total_stake,
        total_allocated_tokens=total_tokens,
        eligible_count=len(eligible),
        entries=tuple(entries),
        warnings=tuple(warnings),
        global_parameters=global_parameters,
    )
    logger.info(
        "Allocation complete",
        proposal_id=proposal_id,
        accounts=len(entries),
        eligible=len(eligible),
        total_stake=str(total_stake.quantize(WHOLE_TOKEN)),
        monthly_budget=str(monthly_budget),
        allocated=total_tokens,
        deviation=str(report.budget_deviation),
    )
    return report
