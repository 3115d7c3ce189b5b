"""
schemas/user_schema.py — Marshmallow schemas for user directory endpoints.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from splitbook.app.schemas.expense_schema import InvitedUserSchema


class InviteUserSchema(InvitedUserSchema):
    """POST /users/invite — same shape as an invited_users entry."""


class PushTokenSchema(Schema):
    """POST /users/:id/push-token"""

    push_token = fields.Str(
        required=True,
        data_key="pushToken",
        validate=validate.Length(min=1, max=255),
    )
