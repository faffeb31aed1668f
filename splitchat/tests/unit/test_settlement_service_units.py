"""
tests/unit/test_settlement_service_units.py — Unit tests for services/settlement_service.py.

What this file proves:
  - After settle_payment(from, to) no entry has payer == to with from among its debtors
  - Settling a legacy even split clears ONLY the confirming debtor's share;
    everybody else's balance is unchanged
  - Nothing to settle → NOTHING_TO_SETTLE notice, state untouched
  - Self-settlement → SELF_SETTLEMENT (422)
  - The whole settlement is one batch (one snapshot)
  - build_payment_link fills and encodes the template; a missing handle blocks

Unit test constraints:
  - No database, no Flask. Runs against an in-memory LedgerStore.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from splitchat.app.errors import AppError, ErrorCode, NoticeCode
from splitchat.app.ledger.commands import ApplyBatch, RemoveExpense
from splitchat.app.services.balance_service import summarize_group
from splitchat.app.services.settlement_service import (
    amount_owed,
    build_payment_link,
    plan_settlement,
    settle_payment,
)

from .conftest import GROUP_ID, event, expense, group_state


MEMBERS = ("alice", "bob", "carol")


def _store_with(store, *expenses):
    store.load_group(group_state(*MEMBERS, event=event(*expenses)))
    return store


def _remaining_debt(store, from_user, to_user):
    return [
        e for e in store.get_event(GROUP_ID).expenses
        if e.payer == to_user and e.owed_by(from_user)
    ]


# ═══════════════════════════════════════════════════════════════════════════
# settle_payment
# ═══════════════════════════════════════════════════════════════════════════

class TestSettlePayment:

    def test_single_debtor_entries_are_removed(self, store):
        _store_with(
            store,
            expense("x1", "alice", "10.00", debtor="bob"),
            expense("x2", "alice", "5.25", debtor="bob"),
            expense("x3", "alice", "3.00", debtor="carol"),
        )
        result = settle_payment(store, GROUP_ID, "bob", "alice")

        assert result.changed is True
        assert result.amount == Decimal("15.25")
        assert set(result.settled_ids) == {"x1", "x2"}
        assert _remaining_debt(store, "bob", "alice") == []
        assert [e.id for e in store.get_event(GROUP_ID).expenses] == ["x3"]

    def test_even_split_settles_only_the_confirming_debtor(self, store):
        """Bob settles the 90.00 Dinner with Alice; Carol still owes 45.00."""
        _store_with(
            store,
            expense("d1", "alice", "90.00", split_between=["bob", "carol"], item_name="Dinner"),
        )
        result = settle_payment(store, GROUP_ID, "bob", "alice")

        assert result.amount == Decimal("45.00")
        summary = summarize_group(store.get(GROUP_ID))
        assert summary["bob"].owes_to == {}
        assert summary["carol"].owes_to == {"alice": Decimal("45.00")}

        remaining = store.get_event(GROUP_ID).expenses
        assert [(e.id, e.debtors.username, e.amount) for e in remaining] == [
            ("d1:carol", "carol", Decimal("45.00")),
        ]
        assert remaining[0].item_name == "Dinner"

    def test_even_split_keeps_uneven_shares_exact(self, store):
        # 10.00 three ways, payer not listed: bob 3.34 (first), carol 3.33, dave 3.33
        store.load_group(group_state(
            "alice", "bob", "carol", "dave",
            event=event(expense("t1", "alice", "10.00", split_between=["bob", "carol", "dave"])),
        ))
        before = summarize_group(store.get(GROUP_ID))

        settle_payment(store, GROUP_ID, "carol", "alice")

        after = summarize_group(store.get(GROUP_ID))
        assert after["carol"].owes_to == {}
        assert after["bob"].owes_to == before["bob"].owes_to == {"alice": Decimal("3.34")}
        assert after["dave"].owes_to == before["dave"].owes_to

    def test_reverse_direction_is_untouched(self, store):
        _store_with(
            store,
            expense("x1", "alice", "10.00", debtor="bob"),
            expense("x2", "bob", "4.00", debtor="alice"),
        )
        settle_payment(store, GROUP_ID, "bob", "alice")
        assert [e.id for e in store.get_event(GROUP_ID).expenses] == ["x2"]

    def test_nothing_to_settle_is_a_notice(self, store):
        _store_with(store, expense("x1", "alice", "10.00", debtor="carol"))
        before = store.get(GROUP_ID)

        result = settle_payment(store, GROUP_ID, "bob", "alice")

        assert result.changed is False
        assert result.batch is None
        assert [n["code"] for n in result.notices] == [NoticeCode.NOTHING_TO_SETTLE]
        assert store.get(GROUP_ID) is before

    def test_self_settlement_raises(self, store):
        _store_with(store)
        with pytest.raises(AppError) as exc:
            settle_payment(store, GROUP_ID, "bob", "bob")
        assert exc.value.code == ErrorCode.SELF_SETTLEMENT
        assert exc.value.http_status == 422

    def test_settlement_is_one_snapshot(self, store):
        _store_with(
            store,
            expense("x1", "alice", "10.00", debtor="bob"),
            expense("d1", "alice", "30.00", split_between=["bob", "carol", "alice"]),
        )
        seen = []
        store.subscribe(seen.append)

        result = settle_payment(store, GROUP_ID, "bob", "alice")

        assert len(seen) == 1
        assert isinstance(result.batch, ApplyBatch)

    def test_entries_set_without_ids_settle_independently(self, store):
        _store_with(store)
        store.set_event(GROUP_ID, event(
            expense(None, "alice", "12.00", debtor="bob", item_name="Taxi"),
            expense(None, "alice", "80.00", debtor="carol", item_name="Hotel"),
        ))

        result = settle_payment(store, GROUP_ID, "bob", "alice")

        assert result.amount == Decimal("12.00")
        [left] = store.get_event(GROUP_ID).expenses
        assert (left.item_name, left.debtors.username) == ("Hotel", "carol")

    def test_dispatch_receives_the_batch(self, store):
        _store_with(store, expense("x1", "alice", "10.00", debtor="bob"))
        dispatched = []

        def dispatch(batch):
            dispatched.append(batch)
            return True, [{"code": "X", "message": "y"}]

        result = settle_payment(store, GROUP_ID, "bob", "alice", dispatch=dispatch)

        assert dispatched == [result.batch]
        assert result.notices == [{"code": "X", "message": "y"}]
        # dispatch owns application; the store itself was not touched
        assert len(store.get_event(GROUP_ID).expenses) == 1


def test_plan_settlement_orders_remove_before_replacements():
    state = group_state(*MEMBERS, event=event(
        expense("d1", "alice", "90.00", split_between=["bob", "carol"]),
    ))
    commands = plan_settlement(state, "bob", "alice")
    assert isinstance(commands[0], RemoveExpense)
    assert commands[0].expense_id == "d1"
    assert commands[1].expense.id == "d1:carol"


def test_amount_owed_without_event_is_zero():
    assert amount_owed(group_state(*MEMBERS), "bob", "alice") == Decimal("0.00")


# ═══════════════════════════════════════════════════════════════════════════
# build_payment_link
# ═══════════════════════════════════════════════════════════════════════════

class TestBuildPaymentLink:

    def test_default_template(self):
        link = build_payment_link("bob-v", Decimal("12.5"), "Payment for Dinner")
        assert link == "https://venmo.com/bob-v?txn=pay&amount=12.50&note=Payment%20for%20Dinner"

    def test_custom_template_and_encoding(self):
        link = build_payment_link(
            "a b",
            Decimal("3"),
            template="venmo://paycharge?recipients={handle}&amount={amount}",
        )
        assert link == "venmo://paycharge?recipients=a%20b&amount=3.00"

    @pytest.mark.parametrize("handle", [None, "", "   "])
    def test_missing_handle_blocks(self, handle):
        with pytest.raises(AppError) as exc:
            build_payment_link(handle, Decimal("1.00"))
        assert exc.value.code == ErrorCode.PAYMENT_HANDLE_MISSING
        assert exc.value.http_status == 422
