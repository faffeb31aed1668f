"""
schemas/event_schema.py — Marshmallow schema for PUT /groups/:id/event.

Two request shapes share one endpoint:
  - no `id`    → open a new event (EVENT_ALREADY_OPEN, 409, if one is open)
  - with `id`  → wholesale setEvent: title, date, description and the full
                 expense list replace the stored event

Expense ids must be unique within the payload. Entries sent without an id
are given one by the service before anything is stored.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate, validates_schema

from splitchat.app.ledger.types import Event
from splitchat.app.schemas.ledger_schema import (
    EVENT_ID_MAX,
    ExpenseSchema,
    validate_non_empty_after_trim,
    validate_unique_expense_ids,
)


class SetEventSchema(Schema):

    id = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=EVENT_ID_MAX),
    )
    title = fields.Str(
        required=True,
        validate=[
            validate.Length(max=200, error="Title must be at most 200 characters."),
            validate_non_empty_after_trim,
        ],
    )
    date = fields.Str(load_default="", validate=validate.Length(max=50))
    description = fields.Str(load_default="")
    expenses = fields.List(fields.Nested(ExpenseSchema), load_default=None, allow_none=True)

    @validates_schema
    def validate_expense_ids(self, data: dict, **kwargs) -> None:
        validate_unique_expense_ids(data.get("expenses"))


def to_event(data: dict) -> Event:
    """Builds the ledger Event for a loaded SetEventSchema payload that carries an id."""
    return Event(
        id=data["id"],
        title=data["title"].strip(),
        date=data["date"],
        description=data["description"],
        expenses=tuple(data["expenses"] or ()),
    )
