"""
schemas/group_schema.py — Marshmallow schemas for group endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim).
  - services/group_service.py:
      - caller must be the creator to update or delete   (403)
      - caller must be a member to read                  (403)
      - USER_NOT_FOUND for unknown member ids            (404)
      - GROUP_NOT_FOUND                                  (404)

IMPORTANT: Inherits from marshmallow.Schema directly.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate

from splitbook.app.schemas.expense_schema import InvitedUserSchema


# ── Shared non-empty string validator ─────────────────────────────────────
#
# validate.Length(min=1) alone allows whitespace-only strings like "   "
# because len("   ") == 3 > 0. This validator strips first then checks.
# ──────────────────────────────────────────────────────────────────────────

def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


_group_name_validators = [
    validate.Length(
        min=1,
        max=120,
        error="Group name must be between 1 and 120 characters.",
    ),
    _validate_non_empty_after_trim,
]


class CreateGroupSchema(Schema):
    """
    POST /groups

    The creator is always added as a member by the service, whether or not
    they appear in `members`.
    """

    name = fields.Str(required=True, validate=_group_name_validators)
    members = fields.List(
        fields.Str(validate=validate.Length(min=1, max=36)),
        load_default=list,
    )
    invited_users = fields.List(fields.Nested(InvitedUserSchema), load_default=list)


class UpdateGroupSchema(Schema):
    """
    PATCH /groups/:id

    Rename and/or add members. Members listed here are ADDED; nobody is
    removed by an update.
    """

    name = fields.Str(validate=_group_name_validators)
    members = fields.List(fields.Str(validate=validate.Length(min=1, max=36)))
    invited_users = fields.List(fields.Nested(InvitedUserSchema), load_default=list)
