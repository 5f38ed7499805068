"""Single-hop proxy resolution against the direct voter set.

An account counts as a delegator only when its *immediate* proxy is a direct
voter. Chains are never followed: if X proxies to Y and Y proxies to voter Z,
X is dropped and only Y's own stake can count (through Y's direct vote).
"""

from collections.abc import Collection, Mapping, Sequence
from decimal import Decimal

import structlog

from airdrop.services.schemas.chain import AccountRecord, GlobalStakeParameters, ProxyChainRecord
from airdrop.services.schemas.results import ProxyConflict, ProxyDelegation, ProxyResolution
from airdrop.services.stake import to_liquid_stake

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


def candidates_from_proxy_chains(
    chains: Mapping[str, Sequence[ProxyChainRecord]],
) -> list[AccountRecord]:
    """Flatten per-voter proxy-chain lookups into candidate accounts."""
    return [record.to_account() for records in chains.values() for record in records]


def _dedupe_last_wins(
    candidates: Sequence[AccountRecord],
) -> tuple[dict[str, AccountRecord], list[ProxyConflict]]:
    latest: dict[str, AccountRecord] = {}
    conflicts: list[ProxyConflict] = []
    for account in candidates:
        previous: AccountRecord | None = latest.get(account.name)
        if previous is not None and (
            previous.proxy_target != account.proxy_target
            or previous.vesting_shares != account.vesting_shares
        ):
            conflict = ProxyConflict(
                delegator=account.name,
                discarded_target=previous.proxy_target,
                kept_target=account.proxy_target,
                discarded_vesting_shares=previous.vesting_shares,
                kept_vesting_shares=account.vesting_shares,
            )
            conflicts.append(conflict)
            logger.warning(
                "Conflicting proxy assignment",
                delegator=account.name,
                kept=account.proxy_target,
                discarded=previous.proxy_target,
            )
        latest[account.name] = account
    return latest, conflicts


def resolve_proxies(
    direct_voters: Collection[str],
    candidate_accounts: Sequence[AccountRecord],
    params: GlobalStakeParameters,
) -> ProxyResolution:
    """Map each delegator to its direct-voter target and liquid stake.

    When one account appears more than once, the most recently observed record
    wins; differing duplicates are reported in ``ProxyResolution.conflicts``.
    """
    voters: frozenset[str] = frozenset(direct_voters)
    latest, conflicts = _dedupe_last_wins(candidate_accounts)

    delegations: dict[str, ProxyDelegation] = {}
    dropped_zero: int = 0
    dropped_hop: int = 0
    for name, account in latest.items():
        if account.proxy_target is None or account.proxy_target not in voters:
            dropped_hop += 1
            continue
        if account.vesting_shares <= Decimal(0):
            dropped_zero += 1
            continue
        delegations[name] = ProxyDelegation(
            delegator=name,
            direct_target=account.proxy_target,
            liquid_stake=to_liquid_stake(account.vesting_shares, params),
        )

    logger.info(
        "Resolved proxy delegations",
        candidates=len(candidate_accounts),
        delegations=len(delegations),
        dropped_zero_stake=dropped_zero,
        dropped_not_voter_target=dropped_hop,
        conflicts=len(conflicts),
    )
    return ProxyResolution(delegations=delegations, conflicts=tuple(conflicts))
