"""Tests for SnapshotService runs and persisted-snapshot readers."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from airdrop.services.errors import SnapshotError, SnapshotNotFoundError
from airdrop.services.schemas.results import AllocationReport, SnapshotResult
from airdrop.services import snapshot as snapshot_module
from airdrop.services.snapshot import SnapshotService
from db.enums import AccountRole, RunStatus
from db.models import AirdropSnapshots, AllocationEntries


def _run(
    session: Session, steem: object, proxies: object, dry_run: bool = False
) -> SnapshotResult:
    service = SnapshotService(session, steem_client=steem, proxy_client=proxies)  # type: ignore[arg-type]
    return service.run_snapshot(
        proposal_id=90,
        total_airdrop=Decimal("15200"),
        months=8,
        period="2026-10",
        dry_run=dry_run,
    )


class TestRunSnapshot:
    def test_allocates_and_persists(
        self, session: Session, fake_steem: object, fake_proxies: object
    ) -> None:
        result: SnapshotResult = _run(session, fake_steem, fake_proxies)
        report: AllocationReport | None = result.report
        assert report is not None

        assert report.monthly_budget == Decimal(1900)
        assert [e.account for e in report.entries] == ["alice", "bob", "erin", "frank", "carol"]
        assert [e.token_allocation for e in report.entries] == [1000, 500, 300, 100, 0]
        assert report.total_counted_stake == Decimal(1900)
        assert report.total_allocated_tokens == 1900
        assert report.total_voters == 4
        assert report.total_proxied_accounts == 2
        assert report.eligible_count == 4
        assert "Voter account not found: ghost" in report.warnings
        assert result.missing_accounts == ["ghost"]
        assert result.failed_voters == []

        by_account = {e.account: e for e in report.entries}
        assert by_account["bob"].role is AccountRole.DIRECT_VOTER
        assert by_account["erin"].role is AccountRole.DELEGATOR
        assert by_account["carol"].stake_held == Decimal(2000)
        assert not by_account["carol"].is_eligible
        assert "zed" not in by_account

        row: AirdropSnapshots | None = session.get(AirdropSnapshots, result.snapshot_id)
        assert row is not None
        assert row.status == RunStatus.SUCCESS.value
        assert row.total_allocated_tokens == 1900
        assert row.period == "2026-10"
        assert len(row.entries) == 5
        assert row.entries[0].rank == 1
        assert row.entries[0].account == "alice"

    def test_failed_proxy_lookup_is_a_warning(
        self, session: Session, fake_steem: object, flaky_proxies: object
    ) -> None:
        result = _run(session, fake_steem, flaky_proxies)
        assert result.failed_voters == ["bob"]
        assert result.report is not None
        assert "Proxy chain lookup failed for bob" in result.report.warnings
        accounts: list[str] = [e.account for e in result.report.entries]
        assert "frank" not in accounts

    def test_dry_run_persists_nothing(
        self, session: Session, fake_steem: object, fake_proxies: object
    ) -> None:
        result = _run(session, fake_steem, fake_proxies, dry_run=True)
        assert result.dry_run
        assert result.report is not None
        assert result.report.total_allocated_tokens == 1900
        count: int = session.scalar(select(func.count()).select_from(AirdropSnapshots)) or 0
        assert count == 0

    def test_failure_marks_snapshot_failed(
        self, session: Session, broken_steem: object, fake_proxies: object
    ) -> None:
        with pytest.raises(SnapshotError):
            _run(session, broken_steem, fake_proxies)

        row: AirdropSnapshots | None = session.scalar(select(AirdropSnapshots))
        assert row is not None
        assert row.status == RunStatus.FAILED.value
        assert row.error_details is not None
        assert "InvalidGlobalStateError" in row.error_details
        entries: int = session.scalar(select(func.count()).select_from(AllocationEntries)) or 0
        assert entries == 0


class TestReaders:
    def test_list_and_get(
        self, session: Session, fake_steem: object, fake_proxies: object
    ) -> None:
        result = _run(session, fake_steem, fake_proxies)
        service = SnapshotService(session)

        snapshots = service.list_snapshots()
        assert [s["id"] for s in snapshots] == [result.snapshot_id]
        assert service.list_snapshots(proposal_id=1) == []

        snapshot = service.get_snapshot(result.snapshot_id)
        assert snapshot is not None
        assert snapshot["status"] == "success"
        assert snapshot["eligible_count"] == 4
        assert "Voter account not found: ghost" in snapshot["warnings"]
        assert service.get_snapshot("nope") is None

    def test_list_entries(
        self, session: Session, fake_steem: object, fake_proxies: object
    ) -> None:
        result = _run(session, fake_steem, fake_proxies)
        service = SnapshotService(session)

        entries = service.list_entries(result.snapshot_id)
        assert entries is not None
        assert len(entries) == 5
        assert entries[0]["rank"] == 1
        eligible = service.list_entries(result.snapshot_id, eligible_only=True)
        assert eligible is not None
        assert [e["account"] for e in eligible] == ["alice", "bob", "erin", "frank"]
        assert service.list_entries("nope") is None

    def test_load_report_round_trips_totals(
        self, session: Session, fake_steem: object, fake_proxies: object
    ) -> None:
        result = _run(session, fake_steem, fake_proxies)
        report = SnapshotService(session).load_report(result.snapshot_id)
        assert report.total_allocated_tokens == 1900
        assert report.monthly_budget == Decimal(1900)
        assert report.period == "2026-10"
        assert [e.account for e in report.entries] == ["alice", "bob", "erin", "frank", "carol"]
        assert report.global_parameters is not None
        assert report.global_parameters.total_vesting_shares == Decimal(2000)

    def test_load_report_missing(self, session: Session) -> None:
        with pytest.raises(SnapshotNotFoundError):
            SnapshotService(session).load_report("nope")

    def test_load_report_failed_snapshot(
        self, session: Session, broken_steem: object, fake_proxies: object
    ) -> None:
        with pytest.raises(SnapshotError):
            _run(session, broken_steem, fake_proxies)
        row = session.scalar(select(AirdropSnapshots))
        assert row is not None
        with pytest.raises(SnapshotError, match="failed"):
            SnapshotService(session).load_report(row.id)

    def test_period_is_zero_padded(
        self, session: Session, fake_steem: object, fake_proxies: object
    ) -> None:
        service = SnapshotService(session, steem_client=fake_steem, proxy_client=fake_proxies)  # type: ignore[arg-type]
        result = service.run_snapshot(months=8, period="2026-1")
        row = session.get(AirdropSnapshots, result.snapshot_id)
        assert row is not None
        assert row.period == "2026-01"

    def test_invalid_period_rejected_before_persisting(
        self, session: Session, fake_steem: object, fake_proxies: object
    ) -> None:
        service = SnapshotService(session, steem_client=fake_steem, proxy_client=fake_proxies)  # type: ignore[arg-type]
        with pytest.raises(ValueError):
            service.run_snapshot(months=8, period="2026-13")
        assert session.scalar(select(func.count()).select_from(AirdropSnapshots)) == 0


class TestClientLifecycle:
    def _patch_factories(
        self, monkeypatch: pytest.MonkeyPatch, steem: object, proxies: object
    ) -> None:
        monkeypatch.setattr(snapshot_module, "SteemClient", lambda: steem)
        monkeypatch.setattr(snapshot_module, "ProxyChainClient", lambda: proxies)

    def test_owned_clients_closed_after_run(
        self,
        session: Session,
        monkeypatch: pytest.MonkeyPatch,
        fake_steem: object,
        fake_proxies: object,
    ) -> None:
        self._patch_factories(monkeypatch, fake_steem, fake_proxies)
        service = SnapshotService(session)
        service.run_snapshot(months=8, period="2026-10", dry_run=True)

        assert fake_steem.closed  # type: ignore[attr-defined]
        assert fake_proxies.closed  # type: ignore[attr-defined]
        assert service.steem_client is None
        assert service.proxy_client is None

    def test_owned_clients_closed_after_failure(
        self,
        session: Session,
        monkeypatch: pytest.MonkeyPatch,
        unreachable_steem: object,
        fake_proxies: object,
    ) -> None:
        self._patch_factories(monkeypatch, unreachable_steem, fake_proxies)
        with pytest.raises(SnapshotError):
            SnapshotService(session).run_snapshot(months=8, period="2026-10", dry_run=True)

        assert unreachable_steem.closed  # type: ignore[attr-defined]
        assert fake_proxies.closed  # type: ignore[attr-defined]

    def test_injected_clients_left_open(
        self, session: Session, fake_steem: object, fake_proxies: object
    ) -> None:
        _run(session, fake_steem, fake_proxies, dry_run=True)
        assert not fake_steem.closed  # type: ignore[attr-defined]
        assert not fake_proxies.closed  # type: ignore[attr-defined]
