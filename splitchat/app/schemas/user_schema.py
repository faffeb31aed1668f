"""
schemas/user_schema.py — Marshmallow schemas for user endpoints.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from splitchat.app.schemas.ledger_schema import validate_non_empty_after_trim


class CreateUserSchema(Schema):
    """POST /users"""

    username = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=50, error="Username must be between 1 and 50 characters."),
            validate_non_empty_after_trim,
        ],
    )
    payment_handle = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=100),
    )
    profile_picture = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500),
    )


class UpdateUserSchema(Schema):
    """
    PATCH /users/:username

    Absent fields are left unchanged; null clears a field.
    """

    payment_handle = fields.Str(allow_none=True, validate=validate.Length(max=100))
    profile_picture = fields.Str(allow_none=True, validate=validate.Length(max=500))
