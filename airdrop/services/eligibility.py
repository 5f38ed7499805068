"""Eligibility classification of direct voters and their delegators."""

from collections.abc import Collection, Mapping, Sequence
from decimal import Decimal

import structlog

from airdrop.services.schemas.chain import AccountRecord, GlobalStakeParameters
from airdrop.services.schemas.results import EligibilityRecord, ProxyDelegation
from airdrop.services.stake import to_liquid_stake
from db.enums import AccountRole

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


def _classify_voter(
    voter: AccountRecord,
    voters: frozenset[str],
    params: GlobalStakeParameters,
) -> EligibilityRecord:
    own_stake: Decimal = to_liquid_stake(voter.vesting_shares, params)
    if voter.proxy_target is None:
        eligible: bool = True
    else:
        # A declared proxy outranks the direct vote unless the proxy also voted.
        eligible = voter.proxy_target in voters
    return EligibilityRecord(
        account=voter.name,
        role=AccountRole.DIRECT_VOTER,
        counted_stake=own_stake if eligible else Decimal(0),
        is_eligible=eligible,
        resolved_proxy_target=voter.proxy_target,
        held_stake=own_stake,
    )


def _classify_delegator(
    delegation: ProxyDelegation,
    voters: frozenset[str],
) -> EligibilityRecord:
    eligible: bool = delegation.direct_target in voters
    return EligibilityRecord(
        account=delegation.delegator,
        role=AccountRole.DELEGATOR,
        counted_stake=delegation.liquid_stake if eligible else Decimal(0),
        is_eligible=eligible,
        resolved_proxy_target=delegation.direct_target,
        delegated_stake=delegation.liquid_stake,
    )


def classify(
    direct_voters: Sequence[AccountRecord],
    delegations: Mapping[str, ProxyDelegation],
    params: GlobalStakeParameters,
    *,
    voter_ids: Collection[str] | None = None,
) -> list[EligibilityRecord]:
    """Decide whose stake counts toward the proposal total.

    ``voter_ids`` is the full set of accounts that voted. It defaults to the
    names of ``direct_voters`` and exists for runs where some voter account
    records could not be fetched.

    Records come back in input order: direct voters first, then delegators.
    An account that is both a direct voter and a delegation key is only
    classified as a voter, so its stake is never counted twice.
    """
    voters: frozenset[str] = frozenset(
        voter_ids if voter_ids is not None else (v.name for v in direct_voters)
    )

    by_name: dict[str, AccountRecord] = {}
    for voter in direct_voters:
        by_name[voter.name] = voter

    records: list[EligibilityRecord] = [
        _classify_voter(voter, voters, params) for voter in by_name.values()
    ]
    records.extend(
        _classify_delegator(delegation, voters)
        for name, delegation in delegations.items()
        if name not in voters
    )

    eligible: int = sum(1 for r in records if r.is_eligible)
    logger.info(
        "Classified accounts",
        voters=len(by_name),
        delegators=len(records) - len(by_name),
        eligible=eligible,
        ineligible=len(records) - eligible,
    )
    return records
