"""
Unit tests for FundLedger

Covers reads, every mutation, the equal-split summary and failure handling.
"""

import json
from datetime import datetime, timezone

import pytest

from btcfund import repositories as repositories_module
from btcfund import (
    FundLedger,
    FundRepository,
    HoldingsAdjustment,
    MemberNotFoundError,
    MemberStatus,
    StorageError,
    ValidationError,
)


def _reload(data_dir, ledger_clock=None):
    return FundLedger(FundRepository(data_dir), clock=ledger_clock)


class TestReads:
    def test_loads_members(self, ledger):
        assert len(ledger.get_members()) == 3
        assert ledger.get_members()[0].name == "Alice"

    def test_active_members_filter(self, ledger):
        active = ledger.get_active_members()
        assert [m.name for m in active] == ["Alice", "Bob"]
        assert all(m.status == MemberStatus.ACTIVE for m in active)

    def test_member_by_id(self, ledger):
        assert ledger.get_member_by_id(3).leave_date == "2023-06-01"
        assert ledger.get_member_by_id(999) is None

    def test_contributions_and_purchases(self, ledger):
        contributions = ledger.get_contributions()
        purchases = ledger.get_purchases()
        assert len(contributions) == 3
        assert contributions[0].member_name == "Alice"
        assert contributions[0].amount_zar == 5000
        assert len(purchases) == 2
        assert purchases[1].total_holdings == pytest.approx(0.03)
        assert purchases[1].amount_invested == 12000

    def test_fund_info(self, ledger):
        info = ledger.get_fund_info()
        assert info.target_date == "2031-09-26"
        assert info.target_amount_zar == 1000000
        assert info.current_btc_holdings == pytest.approx(0.03)


class TestSummary:
    def test_member_contributions(self, ledger):
        summary = ledger.get_summary()
        assert summary.member_contributions == {"Alice": 7000, "Bob": 3000}
        assert summary.total_contributions_zar == 10000
        assert summary.active_members == 2
        assert summary.total_members_all_time == 3
        assert summary.number_of_purchases == 2
        assert summary.number_of_contributions == 3
        assert summary.last_btc_purchase == "2022-06-15"

    def test_equal_split_ignores_contribution_size(self, ledger):
        shares = ledger.get_summary().member_shares
        assert shares["Alice"].share_pct == 50
        assert shares["Bob"].share_pct == 50
        assert shares["Alice"].btc_share == pytest.approx(0.015)
        assert shares["Bob"].btc_share == pytest.approx(0.015)
        assert shares["Alice"].contributed_zar == 7000
        assert shares["Bob"].contributed_zar == 3000

    def test_left_members_have_no_share(self, ledger):
        assert "Charlie" not in ledger.get_summary().member_shares

    def test_member_transitions_copied(self, ledger):
        assert ledger.get_summary().member_transitions == {
            "Frank_left": "2023-09-30",
            "Mearp_joined": "2023-10-01",
        }

    def test_summary_is_stable_between_mutations(self, ledger):
        assert ledger.get_summary() == ledger.get_summary()

    def test_caller_edits_do_not_leak_into_summary(self, ledger):
        summary = ledger.get_summary()
        summary.member_contributions["Alice"] = 1
        summary.member_shares.pop("Bob")
        summary.member_transitions.clear()

        fresh = ledger.get_summary()
        assert fresh.member_contributions["Alice"] == 7000
        assert set(fresh.member_shares) == {"Alice", "Bob"}
        assert fresh.member_transitions["Frank_left"] == "2023-09-30"

    @pytest.mark.parametrize("holdings", [0.0, 0.03, 0.1, 1.23456789, 7.0])
    def test_shares_sum_to_holdings(self, ledger, holdings):
        ledger.add_member("Dave", "member", "2024-01-01")
        ledger.add_member("Eve", "member", "2024-01-01")
        ledger.adjust_holdings(holdings, "wallet check")

        shares = ledger.get_summary().member_shares
        assert len(shares) == 4
        assert sum(s.btc_share for s in shares.values()) == pytest.approx(holdings, abs=1e-9)
        assert sum(s.share_pct for s in shares.values()) == pytest.approx(100, abs=1e-9)

    def test_summary_written_to_disk(self, ledger, data_dir):
        ledger.add_contribution(2, "Bob", 250)
        saved = json.loads((data_dir / "fund_summary.json").read_text(encoding="utf-8"))
        assert saved["total_contributions_zar"] == 10250
        assert saved["member_shares"]["Bob"]["share_pct"] == 50


class TestContributions:
    def test_add_contribution(self, ledger):
        entry = ledger.add_contribution(1, "Alice", 1000)
        assert entry.amount_zar == 1000
        assert entry.date == "2024-06-15"
        assert entry.type == "contribution"
        assert len(ledger.get_contributions()) == 4
        assert ledger.get_summary().total_contributions_zar == 11000

    @pytest.mark.parametrize("amount", [0, -50, float("nan"), float("inf")])
    def test_rejects_non_positive_amount(self, ledger, data_dir, amount):
        with pytest.raises(ValidationError):
            ledger.add_contribution(1, "Alice", amount)
        assert len(ledger.get_contributions()) == 3
        assert not (data_dir / "audit-log.jsonl").exists()

    def test_rejects_unknown_member(self, ledger):
        with pytest.raises(MemberNotFoundError) as excinfo:
            ledger.add_contribution(42, "Nobody", 100)
        assert excinfo.value.member_id == 42
        assert len(ledger.get_contributions()) == 3

    def test_member_name_is_a_snapshot(self, ledger):
        entry = ledger.add_contribution(2, "Bobby", 100)
        assert entry.member_name == "Bobby"
        assert ledger.get_member_by_id(2).name == "Bob"

    def test_round_trip_through_storage(self, ledger, data_dir):
        ledger.add_contribution(2, "Bob", 750)
        reloaded = _reload(data_dir, ledger_clock=lambda: datetime(2024, 6, 15, 10, 30, tzinfo=timezone.utc))
        assert reloaded.get_contributions() == ledger.get_contributions()
        assert reloaded.get_summary() == ledger.get_summary()

    def test_writes_audit_entry(self, ledger, audit_entries):
        ledger.add_contribution(1, "Alice", 500)
        entry = audit_entries()[-1]
        assert entry["action"] == "addContribution"
        assert entry["amountZar"] == 500
        assert entry["memberName"] == "Alice"
        assert "timestamp" in entry

    def test_payment_round(self, ledger, audit_entries):
        recorded = ledger.record_payment_round([(1, "Alice", 500), (2, "Bob", 400)], "2024-05-31")
        assert [c.date for c in recorded] == ["2024-05-31", "2024-05-31"]
        assert ledger.get_summary().total_contributions_zar == 10900
        entries = audit_entries()
        assert len(entries) == 1
        assert entries[0]["action"] == "paymentRound"
        assert entries[0]["totalZar"] == 900

    def test_payment_round_is_all_or_nothing(self, ledger):
        with pytest.raises(ValidationError):
            ledger.record_payment_round([(1, "Alice", 500), (2, "Bob", -1)], "2024-05-31")
        with pytest.raises(ValidationError):
            ledger.record_payment_round([], "2024-05-31")
        with pytest.raises(ValidationError):
            ledger.record_payment_round([(1, "Alice", 500)], "31/05/2024")
        assert len(ledger.get_contributions()) == 3


class TestPurchases:
    def test_add_purchase_updates_holdings(self, ledger):
        entry = ledger.add_purchase(0.005, 700000, 3500)
        assert entry.total_holdings == pytest.approx(0.035)
        assert entry.date == "2024-06-15"
        assert entry.recorded_at.startswith("2024-06-15T10:30")
        assert len(ledger.get_purchases()) == 3
        info = ledger.get_fund_info()
        assert info.current_btc_holdings == pytest.approx(0.035)
        assert info.last_purchase_date == "2024-06-15"
        assert ledger.get_summary().total_btc_acquired == pytest.approx(0.035)

    def test_holdings_accumulate_in_order(self, tmp_path):
        ledger = FundLedger(FundRepository(tmp_path))
        bought = [0.01, 0.002, 0.0305, 0.1]
        for btc in bought:
            ledger.add_purchase(btc, 1_000_000)
        for n, purchase in enumerate(ledger.get_purchases(), start=1):
            assert purchase.total_holdings == pytest.approx(sum(bought[:n]))

    def test_first_purchase_starts_from_zero(self, tmp_path):
        ledger = FundLedger(FundRepository(tmp_path))
        entry = ledger.add_purchase(0.25, 1_200_000, 300_000, "first buy")
        assert entry.total_holdings == 0.25
        assert entry.notes == "first buy"

    @pytest.mark.parametrize(
        "btc, price, invested",
        [(0, 500000, None), (-0.01, 500000, None), (0.01, 0, None), (0.01, 500000, -5)],
    )
    def test_rejects_invalid_purchase(self, ledger, btc, price, invested):
        with pytest.raises(ValidationError):
            ledger.add_purchase(btc, price, invested)
        assert len(ledger.get_purchases()) == 2
        assert ledger.get_fund_info().current_btc_holdings == pytest.approx(0.03)

    def test_writes_audit_entry(self, ledger, audit_entries):
        ledger.add_purchase(0.001, 500000, 500)
        assert audit_entries()[-1]["action"] == "addPurchase"


class TestMembers:
    def test_add_member_assigns_next_id(self, ledger):
        member = ledger.add_member("Dave", "member", "2024-06-01")
        assert member.id == 4
        assert member.status == MemberStatus.ACTIVE
        assert member.leave_date is None
        assert len(ledger.get_members()) == 4

    def test_ids_never_reused(self, ledger):
        ledger.update_member(2, status="left", leave_date="2024-01-01")
        assert ledger.add_member("Dave").id == 4
        assert ledger.add_member("Eve").id == 5

    def test_ids_skip_gaps(self, tmp_path):
        (tmp_path / "historical_data.json").write_text(
            json.dumps(
                {
                    "members": [
                        {"id": 1, "name": "A", "joined_date": "2022-01-01", "leave_date": None, "status": "active", "role": "member"},
                        {"id": 5, "name": "B", "joined_date": "2022-01-01", "leave_date": None, "status": "active", "role": "member"},
                    ]
                }
            ),
            encoding="utf-8",
        )
        ledger = FundLedger(FundRepository(tmp_path))
        assert ledger.add_member("C").id == 6

    def test_add_member_persists(self, ledger, data_dir):
        ledger.add_member("Eve", "admin", "2024-07-01")
        eve = [m for m in _reload(data_dir).get_members() if m.name == "Eve"]
        assert len(eve) == 1
        assert eve[0].role.value == "admin"

    def test_add_member_defaults_joined_to_today(self, ledger):
        assert ledger.add_member("Dave").joined_date == "2024-06-15"

    @pytest.mark.parametrize(
        "name, role, joined",
        [("", "member", None), ("Dave", "owner", None), ("Dave", "member", "June"), ("Alice", "member", None)],
    )
    def test_add_member_validation(self, ledger, name, role, joined):
        with pytest.raises(ValidationError):
            ledger.add_member(name, role, joined)
        assert len(ledger.get_members()) == 3

    def test_update_member(self, ledger, data_dir):
        updated = ledger.update_member(2, status="left", leave_date="2024-01-01")
        assert updated.status == MemberStatus.LEFT
        assert updated.leave_date == "2024-01-01"
        assert _reload(data_dir).get_member_by_id(2).status == MemberStatus.LEFT
        assert "Bob" not in ledger.get_summary().member_shares
        assert ledger.get_summary().member_shares["Alice"].share_pct == 100

    def test_leaving_without_date_stamps_today(self, ledger):
        assert ledger.update_member(2, status="left").leave_date == "2024-06-15"

    def test_reactivation_clears_leave_date(self, ledger):
        member = ledger.update_member(3, status="active")
        assert member.status == MemberStatus.ACTIVE
        assert member.leave_date is None

    def test_leave_date_on_active_member_rejected(self, ledger):
        with pytest.raises(ValidationError):
            ledger.update_member(1, leave_date="2024-01-01")

    def test_update_unknown_member(self, ledger):
        with pytest.raises(MemberNotFoundError):
            ledger.update_member(999, status="left")

    def test_update_requires_a_field(self, ledger):
        with pytest.raises(ValidationError):
            ledger.update_member(1)

    def test_update_rejects_unknown_status(self, ledger):
        with pytest.raises(ValidationError):
            ledger.update_member(1, status="paused")

    def test_member_audit_entries(self, ledger, audit_entries):
        ledger.add_member("Frank", "member", "2024-08-01")
        ledger.update_member(1, status="left")
        entries = audit_entries()
        assert entries[-2]["action"] == "addMember"
        assert entries[-2]["name"] == "Frank"
        assert entries[-1]["action"] == "updateMember"
        assert entries[-1]["patch"] == {"status": "left", "leaveDate": None}


class TestHoldingsAdjustment:
    def test_adjust_holdings(self, ledger, audit_entries):
        result = ledger.adjust_holdings(0.05, "wallet reconciliation")
        assert result == HoldingsAdjustment(previous=0.03, current=0.05, reason="wallet reconciliation")
        assert ledger.get_fund_info().current_btc_holdings == 0.05
        assert ledger.get_summary().member_shares["Alice"].btc_share == pytest.approx(0.025)
        assert len(ledger.get_purchases()) == 2
        assert audit_entries()[-1]["reason"] == "wallet reconciliation"

    @pytest.mark.parametrize("holdings, reason", [(0.05, ""), (0.05, "   "), (-1, "oops")])
    def test_adjust_validation(self, ledger, holdings, reason):
        with pytest.raises(ValidationError):
            ledger.adjust_holdings(holdings, reason)
        assert ledger.get_fund_info().current_btc_holdings == pytest.approx(0.03)


class TestBuyouts:
    def test_buyout_transfers_credit(self, ledger, data_dir):
        ledger.add_contribution(3, "Charlie", 1500)
        buyout = ledger.record_buyout("Bob", "Charlie", 1500, "Charlie cashed out")
        assert buyout.date == "2024-06-15"

        summary = ledger.get_summary()
        assert summary.member_contributions["Bob"] == 4500
        assert summary.member_contributions["Charlie"] == 0
        assert summary.total_contributions_zar == 11500
        assert summary.member_shares["Bob"].contributed_zar == 4500
        assert summary.member_shares["Bob"].share_pct == 50
        assert _reload(data_dir).get_buyouts() == [buyout]

    def test_buyout_validation(self, ledger):
        with pytest.raises(ValidationError):
            ledger.record_buyout("Bob", "Bob", 100)
        with pytest.raises(ValidationError):
            ledger.record_buyout("Bob", "Zed", 100)
        with pytest.raises(ValidationError):
            ledger.record_buyout("Bob", "Charlie", 0)

    def test_legacy_buyouts_are_loaded(self, tmp_path):
        data = {
            "members": [
                {"id": 1, "name": "Alice", "joined_date": "2022-01-01", "leave_date": None, "status": "active", "role": "admin"},
                {"id": 2, "name": "Frank", "joined_date": "2022-01-01", "leave_date": "2023-09-30", "status": "left", "role": "member"},
            ],
            "contributions": [
                {"date": "2022-02-01", "member_id": 1, "member_name": "Alice", "amount_zar": 1000, "type": "contribution"},
                {"date": "2022-02-01", "member_id": 2, "member_name": "Frank", "amount_zar": 800, "type": "contribution"},
            ],
            "fund_info": {"name": "Fund", "buyouts": [{"buyer": "Alice", "seller": "Frank", "amount_zar": 800}]},
        }
        (tmp_path / "historical_data.json").write_text(json.dumps(data), encoding="utf-8")
        ledger = FundLedger(FundRepository(tmp_path))
        summary = ledger.get_summary()
        assert summary.member_contributions == {"Alice": 1800, "Frank": 0}
        assert len(ledger.get_buyouts()) == 1


class TestLedgerView:
    def test_entries_newest_first(self, ledger):
        page = ledger.ledger_entries()
        assert page.total == 5
        assert page.pages == 1
        assert page.limit == 50
        assert page.entries[0].type == "purchase"
        assert page.entries[0].date == "2022-06-15"
        assert page.entries[0].btc == pytest.approx(0.02)
        assert [e.date for e in page.entries] == sorted((e.date for e in page.entries), reverse=True)

    def test_filters(self, ledger):
        assert ledger.ledger_entries(entry_type="contribution").total == 3
        assert ledger.ledger_entries(entry_type="purchase").total == 2
        bob = ledger.ledger_entries(entry_type="contribution", member="Bob")
        assert [e.amount_zar for e in bob.entries] == [3000]

    def test_pagination_bounds(self, ledger):
        page = ledger.ledger_entries(page=0, limit=1)
        assert page.page == 1
        assert page.limit == 10
        assert ledger.ledger_entries(page=2).entries == []

    def test_unknown_type(self, ledger):
        with pytest.raises(ValidationError):
            ledger.ledger_entries(entry_type="transfer")


class TestFailures:
    def test_missing_store_starts_empty(self, tmp_path):
        ledger = FundLedger(FundRepository(tmp_path / "fresh"))
        summary = ledger.get_summary()
        assert ledger.get_members() == []
        assert summary.total_contributions_zar == 0
        assert summary.active_members == 0
        assert summary.member_shares == {}

    @pytest.mark.parametrize(
        "content",
        ["{not json", "null", "[]", '"x"', "42", '{"members": [{"name": "NoId"}]}'],
    )
    def test_malformed_store_starts_empty(self, tmp_path, content):
        (tmp_path / "historical_data.json").write_text(content, encoding="utf-8")
        ledger = FundLedger(FundRepository(tmp_path))
        assert ledger.get_contributions() == []
        assert ledger.get_members() == []
        assert ledger.get_summary().total_contributions_zar == 0

    def test_summary_write_failure_is_not_persisted(self, ledger, data_dir):
        summary_path = data_dir / "fund_summary.json"
        if summary_path.exists():
            summary_path.unlink()
        summary_path.mkdir()
        with pytest.raises(StorageError):
            ledger.add_contribution(1, "Alice", 100)
        assert len(ledger.get_contributions()) == 3
        assert len(_reload(data_dir).get_contributions()) == 3

    def test_history_write_failure_is_not_persisted(self, ledger, data_dir, monkeypatch):
        real_write = repositories_module._write_json_atomic

        def failing_write(path, payload):
            if path.name == "historical_data.json":
                raise OSError("disk full")
            real_write(path, payload)

        monkeypatch.setattr(repositories_module, "_write_json_atomic", failing_write)
        with pytest.raises(StorageError):
            ledger.add_contribution(1, "Alice", 100)
        monkeypatch.undo()
        reloaded = _reload(data_dir)
        assert len(reloaded.get_contributions()) == 3
        assert reloaded.get_summary().total_contributions_zar == 10000

    def test_storage_failure_leaves_state_untouched(self, ledger, repository, monkeypatch):
        def broken_save(state, summary):
            raise StorageError("disk full")

        monkeypatch.setattr(repository, "save", broken_save)
        with pytest.raises(StorageError):
            ledger.add_contribution(1, "Alice", 100)
        assert len(ledger.get_contributions()) == 3
        assert ledger.get_summary().total_contributions_zar == 10000

    def test_audit_failure_does_not_block_mutation(self, data_dir):
        (data_dir / "audit-log.jsonl").mkdir()
        ledger = FundLedger(FundRepository(data_dir))
        entry = ledger.add_contribution(1, "Alice", 100)
        assert entry.amount_zar == 100
        assert len(_reload(data_dir).get_contributions()) == 4
        assert ledger.get_audit_log() == []


class TestAuditLog:
    def test_newest_first_with_limit(self, ledger):
        ledger.add_contribution(1, "Alice", 100)
        ledger.add_contribution(2, "Bob", 200)
        ledger.add_member("Dave")
        log = ledger.get_audit_log(2)
        assert [e["action"] for e in log] == ["addMember", "addContribution"]
        assert log[1]["amountZar"] == 200

    def test_empty_when_no_log(self, ledger):
        assert ledger.get_audit_log() == []
