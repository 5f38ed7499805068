"""Chain-related data transfer objects.

Every ``from_rpc`` constructor is an ingestion boundary: malformed rows raise
``MalformedRecordError`` here so the allocation core only sees valid records.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from airdrop.services.errors import MalformedRecordError


def parse_asset(raw: object) -> Decimal:
    """Parse an asset amount such as ``"1000.000000 VESTS"`` or a bare number."""
    if isinstance(raw, bool):
        raise MalformedRecordError(f"Invalid asset amount: {raw!r}")
    if isinstance(raw, Decimal):
        return raw
    if isinstance(raw, (int, float)):
        return Decimal(str(raw))
    if not isinstance(raw, str) or not raw.strip():
        raise MalformedRecordError(f"Invalid asset amount: {raw!r}")
    amount: str = raw.split()[0]
    try:
        value: Decimal = Decimal(amount)
    except InvalidOperation as exc:
        raise MalformedRecordError(f"Invalid asset amount: {raw!r}") from exc
    if not value.is_finite():
        raise MalformedRecordError(f"Invalid asset amount: {raw!r}")
    return value


def _required(raw: Mapping[str, object], key: str, kind: str) -> object:
    if key not in raw or raw[key] is None:
        raise MalformedRecordError(f"{kind} record missing '{key}'")
    return raw[key]


@dataclass(frozen=True, slots=True)
class GlobalStakeParameters:
    total_vesting_fund_liquid: Decimal
    total_vesting_shares: Decimal

    @classmethod
    def from_rpc(cls, raw: Mapping[str, object]) -> "GlobalStakeParameters":
        """Build from a ``get_dynamic_global_properties`` response."""
        return cls(
            total_vesting_fund_liquid=parse_asset(
                _required(raw, "total_vesting_fund_steem", "Global properties")
            ),
            total_vesting_shares=parse_asset(
                _required(raw, "total_vesting_shares", "Global properties")
            ),
        )


@dataclass(frozen=True, slots=True)
class AccountRecord:
    name: str
    vesting_shares: Decimal
    proxy_target: str | None = None

    @classmethod
    def from_rpc(cls, raw: Mapping[str, object]) -> "AccountRecord":
        """Build from a ``get_accounts`` row; an empty ``proxy`` means none."""
        name: object = _required(raw, "name", "Account")
        if not isinstance(name, str) or not name:
            raise MalformedRecordError(f"Account record has invalid name: {name!r}")
        vesting: Decimal = parse_asset(_required(raw, "vesting_shares", "Account"))
        if vesting < 0:
            raise MalformedRecordError(f"Account {name} has negative vesting shares")
        proxy: object = raw.get("proxy")
        return cls(
            name=name,
            vesting_shares=vesting,
            proxy_target=proxy if isinstance(proxy, str) and proxy else None,
        )


@dataclass(frozen=True, slots=True)
class ProxyChainRecord:
    account: str
    vests: Decimal
    proxy: str

    @classmethod
    def from_rpc(cls, raw: Mapping[str, object], voter: str) -> "ProxyChainRecord":
        """Build from one ``proxied_by`` row of the lookup for ``voter``.

        Rows that report their own immediate ``proxy`` keep it; otherwise the
        queried voter is the target.
        """
        account: object = _required(raw, "account", "Proxy chain")
        if not isinstance(account, str) or not account:
            raise MalformedRecordError(f"Proxy chain record has invalid account: {account!r}")
        vests: Decimal = parse_asset(_required(raw, "vests", "Proxy chain"))
        if vests < 0:
            raise MalformedRecordError(f"Proxy chain record {account} has negative vests")
        proxy: object = raw.get("proxy")
        return cls(
            account=account,
            vests=vests,
            proxy=proxy if isinstance(proxy, str) and proxy else voter,
        )

    def to_account(self) -> AccountRecord:
        return AccountRecord(name=self.account, vesting_shares=self.vests, proxy_target=self.proxy)


@dataclass
class ProxyChainLookup:
    chains: dict[str, list[ProxyChainRecord]]
    failed_voters: list[str]

    @property
    def record_count(self) -> int:
        return sum(len(records) for records in self.chains.values())
