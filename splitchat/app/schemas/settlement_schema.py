"""
schemas/settlement_schema.py — Marshmallow schemas for settlement endpoints.

Validation responsibility:
  - This file: the counterparty username is present and non-blank.
  - services/settlement_service.py:
      - SELF_SETTLEMENT (422)        — requires the caller from flask.g;
                                       the service receives it as argument
      - PAYMENT_HANDLE_MISSING (422) — requires the payee's profile
  - services/event_service.py:
      - FORBIDDEN (403), GROUP_NOT_FOUND (404) — require DB lookups

There is no amount field: a settlement always clears everything the caller
owes the payee in the active event.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, fields

from splitchat.app.schemas.ledger_schema import validate_non_empty_after_trim


class SettleSchema(Schema):
    """POST /groups/:id/settlements — the caller confirms paying `to`."""

    to = fields.Str(required=True, validate=validate_non_empty_after_trim)


class PaymentLinkQuerySchema(Schema):
    """GET /groups/:id/payment-link?to=<username>"""

    to = fields.Str(required=True, validate=validate_non_empty_after_trim)
