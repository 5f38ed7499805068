"""Vesting-to-liquid stake conversion."""

from decimal import Decimal, localcontext

from airdrop.services.errors import InvalidGlobalStateError
from airdrop.services.schemas.chain import GlobalStakeParameters

STAKE_PRECISION: int = 40


def to_liquid_stake(vesting_amount: Decimal, params: GlobalStakeParameters) -> Decimal:
    """Convert VESTS into liquid stake at the run's global exchange ratio."""
    if params.total_vesting_shares <= 0:
        raise InvalidGlobalStateError(
            f"total_vesting_shares must be positive, got {params.total_vesting_shares}"
        )
    with localcontext() as ctx:
        ctx.prec = STAKE_PRECISION
        return (params.total_vesting_fund_liquid * vesting_amount) / params.total_vesting_shares
