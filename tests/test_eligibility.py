"""Tests for voter and delegator eligibility classification."""

from decimal import Decimal

from airdrop.services.eligibility import classify
from airdrop.services.schemas.chain import AccountRecord, GlobalStakeParameters
from airdrop.services.schemas.results import EligibilityRecord, ProxyDelegation
from db.enums import AccountRole


def _by_account(records: list[EligibilityRecord]) -> dict[str, EligibilityRecord]:
    return {r.account: r for r in records}


class TestClassify:
    def test_plain_voter_is_eligible(self, params: GlobalStakeParameters) -> None:
        records = classify([AccountRecord("v", Decimal("1000"))], {}, params)
        assert len(records) == 1
        record = records[0]
        assert record.role is AccountRole.DIRECT_VOTER
        assert record.is_eligible
        assert record.counted_stake == Decimal("500")
        assert record.held_stake == Decimal("500")

    def test_voter_proxying_to_non_voter_is_nulled(
        self, params: GlobalStakeParameters
    ) -> None:
        records = classify([AccountRecord("v", Decimal("1000"), "w")], {}, params)
        record = records[0]
        assert not record.is_eligible
        assert record.counted_stake == Decimal(0)
        assert record.held_stake == Decimal("500")
        assert record.resolved_proxy_target == "w"

    def test_voter_proxying_to_voter_stays_eligible(
        self, params: GlobalStakeParameters
    ) -> None:
        voters: list[AccountRecord] = [
            AccountRecord("v", Decimal("1000"), "w"),
            AccountRecord("w", Decimal("10")),
        ]
        records = _by_account(classify(voters, {}, params))
        assert records["v"].is_eligible
        assert records["v"].counted_stake == Decimal("500")

    def test_delegator_counts_separately(self, params: GlobalStakeParameters) -> None:
        delegations: dict[str, ProxyDelegation] = {
            "d": ProxyDelegation("d", "v", Decimal("75")),
        }
        records = classify([AccountRecord("v", Decimal("1000"))], delegations, params)
        assert [r.account for r in records] == ["v", "d"]
        voter, delegator = records
        assert voter.counted_stake == Decimal("500")
        assert delegator.role is AccountRole.DELEGATOR
        assert delegator.is_eligible
        assert delegator.counted_stake == Decimal("75")
        assert delegator.delegated_stake == Decimal("75")
        assert delegator.resolved_proxy_target == "v"

    def test_delegator_to_non_voter_is_ineligible(
        self, params: GlobalStakeParameters
    ) -> None:
        delegations: dict[str, ProxyDelegation] = {
            "d": ProxyDelegation("d", "gone", Decimal("75")),
        }
        records = _by_account(
            classify([AccountRecord("v", Decimal("1000"))], delegations, params)
        )
        assert not records["d"].is_eligible
        assert records["d"].counted_stake == Decimal(0)

    def test_voter_is_never_counted_twice(self, params: GlobalStakeParameters) -> None:
        voters: list[AccountRecord] = [
            AccountRecord("a", Decimal("1000")),
            AccountRecord("b", Decimal("400"), "a"),
        ]
        delegations: dict[str, ProxyDelegation] = {
            "b": ProxyDelegation("b", "a", Decimal("200")),
        }
        records = classify(voters, delegations, params)
        assert [r.account for r in records] == ["a", "b"]
        assert records[1].role is AccountRole.DIRECT_VOTER
        total: Decimal = sum((r.counted_stake for r in records), Decimal(0))
        assert total == Decimal("700")

    def test_voter_ids_cover_missing_account_records(
        self, params: GlobalStakeParameters
    ) -> None:
        # "w" voted but its account record was not fetched.
        records = classify(
            [AccountRecord("v", Decimal("1000"), "w")],
            {},
            params,
            voter_ids=["v", "w"],
        )
        assert records[0].is_eligible

    def test_duplicate_voters_collapse(self, params: GlobalStakeParameters) -> None:
        voters: list[AccountRecord] = [
            AccountRecord("v", Decimal("100")),
            AccountRecord("v", Decimal("1000")),
        ]
        records = classify(voters, {}, params)
        assert len(records) == 1
        assert records[0].counted_stake == Decimal("500")
