"""
schemas/group_schema.py — Marshmallow schemas for group and membership endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim).
  - services/group_service.py:
      - FORBIDDEN (403)  — admin-only and member-only actions
      - USER_NOT_FOUND   — username existence check requires DB lookup
      - ALREADY_MEMBER   — membership existence check requires DB lookup
      - GROUP_NOT_FOUND  — requires DB lookup

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from splitchat.app.schemas.ledger_schema import validate_non_empty_after_trim


class CreateGroupSchema(Schema):
    """
    POST /groups

    The DB has CHECK(LENGTH(TRIM(name)) > 0). This schema enforces the same
    rule at the API layer so bad input is rejected before the service is
    called; the DB constraint is the last resort.
    """

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=100,
                error="Group name must be between 1 and 100 characters.",
            ),
            validate_non_empty_after_trim,
        ],
    )


class AddMemberSchema(Schema):
    """POST /groups/:id/members — admin only; the service checks that."""

    username = fields.Str(
        required=True,
        validate=[
            validate.Length(max=50, error="Username must be at most 50 characters."),
            validate_non_empty_after_trim,
        ],
    )
