"""Shared fixtures: in-memory SQLite DB and offline chain data sources."""

from collections.abc import Generator, Sequence
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from airdrop.services.errors import RPCError
from airdrop.services.schemas.chain import (
    AccountRecord,
    GlobalStakeParameters,
    ProxyChainLookup,
    ProxyChainRecord,
)
from db.models import Base

# fund / shares = 0.5, so liquid stake is half the VESTS amount.
PARAMS: GlobalStakeParameters = GlobalStakeParameters(
    total_vesting_fund_liquid=Decimal("1000"),
    total_vesting_shares=Decimal("2000"),
)

VOTERS: list[str] = ["alice", "bob", "carol", "ghost"]

ACCOUNTS: dict[str, AccountRecord] = {
    "alice": AccountRecord("alice", Decimal("2000")),
    "bob": AccountRecord("bob", Decimal("1000"), proxy_target="alice"),
    "carol": AccountRecord("carol", Decimal("4000"), proxy_target="dave"),
}

PROXY_CHAINS: dict[str, list[dict[str, object]]] = {
    "alice": [
        {"account": "erin", "vests": 600},
        {"account": "zed", "vests": 0},
        {"account": "bob", "vests": 1000},
    ],
    "bob": [{"account": "frank", "vests": "200.000000"}],
    "carol": [],
    "ghost": [],
}


class FakeSteemClient:
    """Serves the module-level fixture data instead of a Steem node."""

    def __init__(
        self, params: GlobalStakeParameters = PARAMS, voters: Sequence[str] = VOTERS
    ) -> None:
        self.params: GlobalStakeParameters = params
        self.voters: list[str] = list(voters)
        self.closed: bool = False

    def close(self) -> None:
        self.closed = True

    def get_global_parameters(self) -> GlobalStakeParameters:
        return self.params

    def get_proposal_voters(self, proposal_id: int) -> list[str]:
        return list(self.voters)

    def get_accounts(self, names: Sequence[str]) -> list[AccountRecord]:
        return [ACCOUNTS[n] for n in names if n in ACCOUNTS]


class FakeProxyChainClient:
    def __init__(self, failing: Sequence[str] = ()) -> None:
        self.failing: set[str] = set(failing)
        self.closed: bool = False

    def close(self) -> None:
        self.closed = True

    def get_proxy_chains(self, voters: Sequence[str]) -> ProxyChainLookup:
        chains: dict[str, list[ProxyChainRecord]] = {
            v: [ProxyChainRecord.from_rpc(row, v) for row in PROXY_CHAINS.get(v, [])]
            for v in voters
            if v not in self.failing
        }
        return ProxyChainLookup(
            chains=chains, failed_voters=[v for v in voters if v in self.failing]
        )


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    eng: Engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session(engine: Engine) -> Generator[Session, None, None]:
    factory: sessionmaker[Session] = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    sess: Session = factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture()
def params() -> GlobalStakeParameters:
    return PARAMS


@pytest.fixture()
def fake_steem() -> FakeSteemClient:
    return FakeSteemClient()


@pytest.fixture()
def fake_proxies() -> FakeProxyChainClient:
    return FakeProxyChainClient()


@pytest.fixture()
def broken_steem() -> FakeSteemClient:
    """Global parameters with a zero share denominator."""
    return FakeSteemClient(GlobalStakeParameters(Decimal("1000"), Decimal("0")))


@pytest.fixture()
def flaky_proxies() -> FakeProxyChainClient:
    """Proxy lookups for ``bob`` fail."""
    return FakeProxyChainClient(failing=["bob"])


class UnreachableSteemClient(FakeSteemClient):
    def get_global_parameters(self) -> GlobalStakeParameters:
        raise RPCError("get_dynamic_global_properties failed after 3 attempts")


@pytest.fixture()
def lonely_steem() -> FakeSteemClient:
    """Only ``carol`` voted, and her proxy ``dave`` did not."""
    return FakeSteemClient(voters=["carol"])


@pytest.fixture()
def unreachable_steem() -> FakeSteemClient:
    return UnreachableSteemClient()
