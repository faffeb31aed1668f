"""
tests/unit/test_validation_schemas.py — Unit tests for the marshmallow schemas
and the ledger-mutation wire format.

What this file proves:
  - Every schema accepts valid input without raising
  - Every schema rejects invalid input with a ValidationError on the right field
  - Error codes raised as messages match the registered constants in errors.py
  - from_message() rebuilds the command to_message() produced, for every kind,
    and rejects broken envelopes

Unit test constraints:
  - No database, no Flask application context. Schemas inherit from
    marshmallow.Schema directly (see extensions.py).
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from marshmallow import ValidationError

from splitchat.app.errors import ErrorCode
from splitchat.app.ledger.commands import (
    AddExpense,
    ApplyBatch,
    RemoveExpense,
    SetEvent,
    UpdateExpense,
    from_message,
    to_message,
)
from splitchat.app.ledger.types import EvenSplit, SingleDebtor
from splitchat.app.schemas.event_schema import SetEventSchema, to_event
from splitchat.app.schemas.expense_schema import CreateExpenseSchema, PatchExpenseSchema
from splitchat.app.schemas.group_schema import AddMemberSchema, CreateGroupSchema
from splitchat.app.schemas.ledger_schema import EventSchema, ExpenseSchema, MemberSchema
from splitchat.app.schemas.settlement_schema import SettleSchema
from splitchat.app.schemas.user_schema import CreateUserSchema, UpdateUserSchema

from .conftest import GROUP_ID, event, expense


def _expense_payload(**overrides) -> dict:
    payload = {
        "item_name": "Dinner",
        "amount": "12.50",
        "payer": "alice",
        "debtor": "bob",
    }
    payload.update(overrides)
    return {k: v for k, v in payload.items() if v is not ...}


# ═══════════════════════════════════════════════════════════════════════════
# ExpenseSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestExpenseSchema:

    def _load(self, data: dict):
        return ExpenseSchema().load(data)

    def test_single_debtor(self):
        result = self._load(_expense_payload())
        assert result.debtors == SingleDebtor("bob")
        assert result.amount == Decimal("12.50")
        assert isinstance(result.amount, Decimal)

    def test_legacy_split_between(self):
        result = self._load(_expense_payload(debtor=..., split_between=["bob", "carol"]))
        assert result.debtors == EvenSplit(("bob", "carol"))

    def test_both_debtor_models_rejected(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_expense_payload(split_between=["carol"]))
        assert exc.value.messages["debtor"] == [ErrorCode.AMBIGUOUS_DEBTORS]

    @pytest.mark.parametrize("split", [..., [], None])
    def test_no_debtor_rejected(self, split):
        with pytest.raises(ValidationError) as exc:
            self._load(_expense_payload(debtor=..., split_between=split))
        assert exc.value.messages["debtor"] == [ErrorCode.EMPTY_DEBTOR_SELECTION]

    def test_three_decimal_places_rejected(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_expense_payload(amount="10.005"))
        assert exc.value.messages["amount"] == [ErrorCode.INVALID_AMOUNT_PRECISION]

    @pytest.mark.parametrize("amount", ["0", "-1.00", "abc"])
    def test_non_positive_or_non_numeric_amount_rejected(self, amount):
        with pytest.raises(ValidationError) as exc:
            self._load(_expense_payload(amount=amount))
        assert "amount" in exc.value.messages

    def test_blank_item_name_rejected(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_expense_payload(item_name="   "))
        assert "item_name" in exc.value.messages

    def test_missing_payer_rejected(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_expense_payload(payer=...))
        assert "payer" in exc.value.messages

    def test_item_name_longer_than_column_rejected(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_expense_payload(item_name="x" * 256))
        assert "item_name" in exc.value.messages
        assert self._load(_expense_payload(item_name="x" * 255)).item_name == "x" * 255

    def test_id_longer_than_column_rejected(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_expense_payload(id="x" * 101))
        assert "id" in exc.value.messages

    def test_blank_debtor_is_empty_selection(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_expense_payload(debtor="  "))
        assert exc.value.messages["debtor"] == [ErrorCode.EMPTY_DEBTOR_SELECTION]

    def test_blank_split_entry_is_empty_selection(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_expense_payload(debtor=..., split_between=["bob", ""]))
        assert exc.value.messages["split_between"] == {1: [ErrorCode.EMPTY_DEBTOR_SELECTION]}


class TestCreateExpenseSchema:

    def test_added_by_is_not_accepted(self):
        with pytest.raises(ValidationError) as exc:
            CreateExpenseSchema().load(_expense_payload(added_by="mallory"))
        assert "added_by" in exc.value.messages

    def test_client_supplied_id_is_kept(self):
        result = CreateExpenseSchema().load(_expense_payload(id="abc123"))
        assert result.id == "abc123"
        assert result.added_by is None

    def test_id_leaves_room_for_debtor_suffix(self):
        assert CreateExpenseSchema().load(_expense_payload(id="x" * 49)).id == "x" * 49
        with pytest.raises(ValidationError) as exc:
            CreateExpenseSchema().load(_expense_payload(id="x" * 50))
        assert "id" in exc.value.messages


class TestPatchExpenseSchema:

    def test_partial(self):
        assert PatchExpenseSchema().load({"amount": "3.00"}) == {"amount": Decimal("3.00")}

    def test_empty_body_rejected(self):
        with pytest.raises(ValidationError):
            PatchExpenseSchema().load({})

    def test_debtor_not_editable(self):
        with pytest.raises(ValidationError) as exc:
            PatchExpenseSchema().load({"debtor": "carol"})
        assert "debtor" in exc.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# Event / group / user / settlement schemas
# ═══════════════════════════════════════════════════════════════════════════

class TestSetEventSchema:

    def test_new_event_without_id(self):
        result = SetEventSchema().load({"title": "Bowling"})
        assert result["id"] is None
        assert result["date"] == "" and result["description"] == ""

    def test_full_replacement_builds_event(self):
        data = SetEventSchema().load({
            "id": "e9",
            "title": " Bowling ",
            "expenses": [_expense_payload(id="x1")],
        })
        built = to_event(data)
        assert built.title == "Bowling"
        assert [e.id for e in built.expenses] == ["x1"]

    def test_blank_title_rejected(self):
        with pytest.raises(ValidationError) as exc:
            SetEventSchema().load({"title": " "})
        assert "title" in exc.value.messages

    def test_repeated_expense_id_rejected(self):
        with pytest.raises(ValidationError) as exc:
            SetEventSchema().load({
                "id": "e9",
                "title": "Bowling",
                "expenses": [_expense_payload(id="x1"), _expense_payload(id="x1")],
            })
        assert "expenses" in exc.value.messages

    def test_entries_without_ids_are_accepted(self):
        data = SetEventSchema().load({
            "id": "e9",
            "title": "Bowling",
            "expenses": [_expense_payload(), _expense_payload(debtor="carol")],
        })
        assert [e.id for e in data["expenses"]] == [None, None]


def test_create_group_requires_name():
    with pytest.raises(ValidationError) as exc:
        CreateGroupSchema().load({})
    assert "name" in exc.value.messages


def test_add_member_by_username():
    assert AddMemberSchema().load({"username": "bob"}) == {"username": "bob"}


def test_create_user_defaults():
    result = CreateUserSchema().load({"username": "alice"})
    assert result == {"username": "alice", "payment_handle": None, "profile_picture": None}


def test_update_user_null_clears():
    assert UpdateUserSchema().load({"payment_handle": None}) == {"payment_handle": None}


def test_settle_requires_to():
    with pytest.raises(ValidationError) as exc:
        SettleSchema().load({})
    assert "to" in exc.value.messages


def test_member_list_loads():
    members = MemberSchema(many=True).load([
        {"username": "alice", "is_admin": True, "payment_handle": "alice-v"},
        {"username": "bob"},
    ])
    assert [m.username for m in members] == ["alice", "bob"]
    assert members[0].payment_handle == "alice-v"
    assert members[1].is_admin is False


def test_event_with_repeated_expense_id_rejected():
    with pytest.raises(ValidationError) as exc:
        EventSchema().load({
            "id": "e1",
            "title": "Dinner",
            "expenses": [_expense_payload(id="x1"), _expense_payload(id="x1", debtor="carol")],
        })
    assert "expenses" in exc.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# Wire format
# ═══════════════════════════════════════════════════════════════════════════

@pytest.mark.parametrize("command", [
    SetEvent(GROUP_ID, event(expense("x1", "alice", "10.00", debtor="bob"))),
    SetEvent(GROUP_ID, None),
    AddExpense(GROUP_ID, expense("x1", "alice", "90.00", split_between=["bob", "carol"])),
    UpdateExpense(GROUP_ID, "x1", item_name="Tacos", amount=Decimal("4.20")),
    RemoveExpense(GROUP_ID, "x1"),
    ApplyBatch(GROUP_ID, (
        RemoveExpense(GROUP_ID, "x1"),
        AddExpense(GROUP_ID, expense("x1:bob", "alice", "45.00", debtor="bob")),
    )),
], ids=lambda c: c.kind)
def test_message_rebuilds_command(command):
    message = to_message(command, origin="alice")
    assert message["origin"] == "alice"
    assert from_message(message) == command


@pytest.mark.parametrize("message", [
    {"kind": "remove_expense", "payload": {"expense_id": "x"}},
    {"group_id": GROUP_ID, "kind": "nope", "payload": {}},
    {"group_id": GROUP_ID, "kind": "add_expense", "payload": "not-a-dict"},
    {"group_id": GROUP_ID, "kind": "update_expense", "payload": {"amount": "1.00"}},
])
def test_broken_envelopes_raise(message):
    with pytest.raises(ValidationError):
        from_message(message)


def test_amounts_travel_as_strings():
    message = to_message(AddExpense(GROUP_ID, expense("x1", "alice", "10.50", debtor="bob")))
    assert message["payload"]["expense"]["amount"] == "10.50"
