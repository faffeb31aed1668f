"""
schemas/ledger_schema.py — Wire format for ledger state and mutation messages.

Two directions:
  - load: marshmallow schemas turn incoming JSON (socket payloads, resync
    snapshots) into frozen ledger types via @post_load.
  - dump: the dump_* helpers are pure data-shaping functions. Amounts are
    serialised as strings, never floats.

Remote mutations are structurally re-validated on the way in. A message that
fails to load is dropped by the gateway; the ledger never holds a value it
could not have produced locally.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from datetime import timezone
from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    post_load,
    validate,
    validates_schema,
)

from splitchat.app.errors import ErrorCode
from splitchat.app.ledger.types import (
    EvenSplit,
    Event,
    Expense,
    GroupState,
    Member,
    SingleDebtor,
)


MUTATION_KINDS = (
    "set_event",
    "add_expense",
    "update_expense",
    "remove_expense",
    "batch",
)


def validate_monetary_amount(value: Decimal) -> None:
    """
    Validates a monetary Decimal value:
      - Must be strictly greater than zero.
      - Must have at most 2 decimal places (rejected, never rounded).
    """
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def validate_non_empty_after_trim(value: str) -> None:
    """Raises ValidationError if the string is blank or contains only whitespace."""
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def validate_debtor_name(value: str) -> None:
    """A blank debtor is an empty selection, not an unknown member."""
    if not value.strip():
        raise ValidationError(ErrorCode.EMPTY_DEBTOR_SELECTION)


def validate_unique_expense_ids(expenses) -> None:
    """Entry ids within one event must be distinct; id-less entries get one later."""
    seen = set()
    for expense in expenses or ():
        if not expense.id:
            continue
        if expense.id in seen:
            raise ValidationError(
                {"expenses": [f"Expense id {expense.id} appears more than once."]}
            )
        seen.add(expense.id)


# Column widths in the backing store.
USERNAME_MAX = 50
ITEM_NAME_MAX = 255
EXPENSE_ID_MAX = 100
EVENT_ID_MAX = 64


# ── Load schemas ───────────────────────────────────────────────────────────

class MemberSchema(Schema):
    username = fields.Str(required=True, validate=validate_non_empty_after_trim)
    is_admin = fields.Bool(load_default=False)
    profile_picture = fields.Str(load_default=None, allow_none=True)
    payment_handle = fields.Str(load_default=None, allow_none=True)

    @post_load
    def make_member(self, data: dict, **kwargs) -> Member:
        return Member(**data)


class ExpenseSchema(Schema):
    """
    One expense entry. Exactly one of `debtor` (primary model) or
    `split_between` (legacy even-split model) must be present.
    """

    id = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=EXPENSE_ID_MAX),
    )
    item_name = fields.Str(
        required=True,
        validate=[
            validate.Length(max=ITEM_NAME_MAX, error="Item name must be at most 255 characters."),
            validate_non_empty_after_trim,
        ],
    )
    amount = fields.Decimal(required=True, validate=validate_monetary_amount)
    payer = fields.Str(
        required=True,
        validate=[validate.Length(max=USERNAME_MAX), validate_non_empty_after_trim],
    )
    debtor = fields.Str(
        load_default=None,
        allow_none=True,
        validate=[validate.Length(max=USERNAME_MAX), validate_debtor_name],
    )
    split_between = fields.List(
        fields.Str(validate=[validate.Length(max=USERNAME_MAX), validate_debtor_name]),
        load_default=None,
        allow_none=True,
    )
    added_by = fields.Str(load_default=None, allow_none=True)
    timestamp = fields.AwareDateTime(
        default_timezone=timezone.utc,
        load_default=None,
        allow_none=True,
    )

    @validates_schema
    def validate_debtor_model(self, data: dict, **kwargs) -> None:
        debtor = data.get("debtor")
        split_between = data.get("split_between")
        if debtor is not None and split_between is not None:
            raise ValidationError({"debtor": [ErrorCode.AMBIGUOUS_DEBTORS]})
        if debtor is None and not split_between:
            raise ValidationError({"debtor": [ErrorCode.EMPTY_DEBTOR_SELECTION]})

    @post_load
    def make_expense(self, data: dict, **kwargs) -> Expense:
        debtor = data.pop("debtor", None)
        split_between = data.pop("split_between", None)
        debtors = (
            SingleDebtor(debtor)
            if debtor is not None
            else EvenSplit(tuple(split_between))
        )
        timestamp = data.pop("timestamp", None)
        if timestamp is None:
            return Expense(debtors=debtors, **data)
        return Expense(debtors=debtors, timestamp=timestamp, **data)


class EventSchema(Schema):
    id = fields.Str(
        required=True,
        validate=[validate.Length(max=EVENT_ID_MAX), validate_non_empty_after_trim],
    )
    title = fields.Str(required=True)
    date = fields.Str(load_default="")
    description = fields.Str(load_default="")
    expenses = fields.List(fields.Nested(ExpenseSchema), load_default=list)

    @validates_schema
    def validate_expense_ids(self, data: dict, **kwargs) -> None:
        validate_unique_expense_ids(data.get("expenses"))

    @post_load
    def make_event(self, data: dict, **kwargs) -> Event:
        data["expenses"] = tuple(data["expenses"])
        return Event(**data)


class UpdateExpensePayloadSchema(Schema):
    expense_id = fields.Str(required=True)
    item_name = fields.Str(load_default=None, allow_none=True)
    amount = fields.Decimal(
        load_default=None,
        allow_none=True,
        validate=validate_monetary_amount,
    )


class MutationMessageSchema(Schema):
    """
    Envelope for every `ledger-mutation` message on the transport.

    The payload is kept raw here; commands.from_message() loads it with the
    schema that matches `kind`.
    """

    group_id = fields.Str(required=True)
    kind = fields.Str(required=True, validate=validate.OneOf(MUTATION_KINDS))
    payload = fields.Dict(required=True)
    origin = fields.Str(load_default=None, allow_none=True)


# ── Dump helpers ───────────────────────────────────────────────────────────
# Pure data shaping. Amounts as strings.

def dump_expense(expense: Expense) -> dict:
    single = isinstance(expense.debtors, SingleDebtor)
    return {
        "id": expense.id,
        "item_name": expense.item_name,
        "amount": str(expense.amount),
        "payer": expense.payer,
        "debtor": expense.debtors.username if single else None,
        "split_between": None if single else list(expense.debtors.usernames),
        "added_by": expense.added_by,
        "timestamp": expense.timestamp.isoformat() if expense.timestamp else None,
    }


def dump_event(event: Event | None) -> dict | None:
    if event is None:
        return None
    return {
        "id": event.id,
        "title": event.title,
        "date": event.date,
        "description": event.description,
        "expenses": [dump_expense(e) for e in event.expenses],
    }


def dump_member(member: Member) -> dict:
    return {
        "username": member.username,
        "is_admin": member.is_admin,
        "profile_picture": member.profile_picture,
        "payment_handle": member.payment_handle,
    }


def dump_group_state(state: GroupState) -> dict:
    return {
        "group_id": state.group_id,
        "name": state.name,
        "admin": state.admin,
        "members": [dump_member(m) for m in state.members],
        "event": dump_event(state.event),
    }
