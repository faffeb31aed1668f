"""
schemas/expense_schema.py — Marshmallow schemas for expense endpoints.

Validation responsibility:
  - This file:
      - Field types, decimal precision, positive amounts
      - Exactly one debtor model (debtor XOR split_between)
      - Non-empty-after-trim enforcement for item_name and debtors
      - Lengths that fit the backing columns
  - ledger/rules.py (called from services/event_service.py):
      - PAYER_NOT_MEMBER / DEBTOR_NOT_MEMBER (422) — requires group members
      - SELF_DEBT (422)                            — payer == only debtor
  - services/event_service.py:
      - NO_ACTIVE_EVENT (422)  — requires DB lookup
      - FORBIDDEN (403)        — caller must be a member

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

from splitchat.app.schemas.ledger_schema import (
    EXPENSE_ID_MAX,
    ITEM_NAME_MAX,
    USERNAME_MAX,
    ExpenseSchema,
    validate_monetary_amount,
    validate_non_empty_after_trim,
)


CLIENT_EXPENSE_ID_MAX = EXPENSE_ID_MAX - USERNAME_MAX - 1


class CreateExpenseSchema(ExpenseSchema):
    """
    POST /groups/:id/expenses

    Same shape as a ledger expense entry. `added_by` is always the caller and
    `timestamp` is set server-side, so neither is accepted from the body.
    `id` is optional; a client that supplies one can retry the request
    without creating a duplicate.

    Loads to a ledger Expense (see ExpenseSchema.make_expense).
    """

    # Split entries are stored as "<id>:<debtor>", which must fit the
    # 100-character expense_id column.
    id = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(
            max=CLIENT_EXPENSE_ID_MAX,
            error="Expense id must be at most 49 characters.",
        ),
    )

    class Meta:
        exclude = ("added_by", "timestamp")


class PatchExpenseSchema(Schema):
    """
    PATCH /groups/:id/expenses/:expense_id

    Partial update of the descriptive fields. Debtor and payer are not
    editable; delete and re-add the entry instead.
    """

    item_name = fields.Str(
        validate=[
            validate.Length(max=ITEM_NAME_MAX, error="Item name must be at most 255 characters."),
            validate_non_empty_after_trim,
        ],
    )
    amount = fields.Decimal(validate=validate_monetary_amount)

    @validates_schema
    def validate_not_empty(self, data: dict, **kwargs) -> None:
        if "item_name" not in data and "amount" not in data:
            raise ValidationError("Provide item_name or amount to update.")
