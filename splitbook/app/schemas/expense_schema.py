"""
schemas/expense_schema.py — Marshmallow schemas for expense endpoints.

Validation responsibility:
  - This file (request shape → 400):
      - Field types and maximum lengths
      - split_type enum value            (INVALID_SPLIT_TYPE)
      - decimal precision of amounts     (INVALID_AMOUNT_PRECISION)
      - duplicate users in split_details (DUPLICATE_SPLIT_USER)
  - services/split_normalizer.py (ledger rules → 422, or 403 / 404):
      - positive amount, non-blank title / category, valid date
      - participant / detail consistency and the 0.01 sum tolerance
      - group membership and user existence

Both schemas load into a dict that ExpensePatch.from_dict() accepts; a create
is a patch with no stored record underneath it.

IMPORTANT: Inherits from marshmallow.Schema directly. Unit tests instantiate
           these schemas without a Flask app context.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    post_load,
    validate,
    validates_schema,
)

from splitbook.app.errors import ErrorCode
from splitbook.app.store.records import InvitedUser, SplitDetail, SplitType


# ── Shared monetary precision validator ───────────────────────────────────
#
# Input with more than 2 decimal places is REJECTED, never rounded or
# truncated. Positivity is a ledger rule and is checked by the normalizer.
# ──────────────────────────────────────────────────────────────────────────

def validate_amount_precision(value: Decimal) -> None:
    """
    Decimal.as_tuple().exponent gives the scale as a negative integer:
      Decimal("10.123") → -3 → REJECT
      Decimal("10.12")  → -2 → accept
      Decimal("10")     →  0 → accept
    """
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


class SplitDetailSchema(Schema):
    """One {user_id, amount} entry in split_details."""

    user_id = fields.Str(required=True, validate=validate.Length(min=1, max=36))

    # Zero is allowed here: a participant may owe nothing on an UNEQUAL split.
    amount = fields.Decimal(required=True, validate=validate_amount_precision)

    @post_load
    def make_detail(self, data: dict, **kwargs) -> SplitDetail:
        return SplitDetail(user_id=data["user_id"].strip(), amount=data["amount"])


class InvitedUserSchema(Schema):
    """A person to add to the split who may not have an account yet."""

    name = fields.Str(required=True, validate=validate.Length(min=1, max=120))
    mobile = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=32))

    @post_load
    def make_invited_user(self, data: dict, **kwargs) -> InvitedUser:
        return InvitedUser(name=data["name"].strip(), mobile=data.get("mobile"))


def _check_duplicate_detail_users(data: dict) -> None:
    details = data.get("split_details")
    if details:
        user_ids = [d.user_id for d in details]
        if len(user_ids) != len(set(user_ids)):
            raise ValidationError({"split_details": [ErrorCode.DUPLICATE_SPLIT_USER]})


class PatchExpenseSchema(Schema):
    """
    PATCH /expenses/:id

    All fields are optional; an absent field keeps its stored value. The
    normalizer re-validates the merged result as a whole, so no cross-field
    co-presence rules are needed here.
    """

    title = fields.Str(validate=validate.Length(max=200))
    amount = fields.Decimal(validate=validate_amount_precision)
    date = fields.Date()
    category = fields.Str(validate=validate.Length(max=80))

    # "" clears the receipt; a data: URL is uploaded by the service.
    receipt_url = fields.Str(allow_none=True)

    group_id = fields.Str(allow_none=True, validate=validate.Length(max=36))
    paid_by = fields.Str(validate=validate.Length(min=1, max=36))

    split_type = fields.Enum(
        SplitType,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_TYPE},
    )
    split_between = fields.List(fields.Str(validate=validate.Length(min=1, max=36)))
    split_details = fields.List(fields.Nested(SplitDetailSchema), allow_none=True)
    invited_users = fields.List(fields.Nested(InvitedUserSchema), load_default=list)

    @validates_schema
    def validate_split_details_shape(self, data: dict, **kwargs) -> None:
        _check_duplicate_detail_users(data)


class CreateExpenseSchema(PatchExpenseSchema):
    """
    POST /expenses

    paid_by defaults to the caller; split_type defaults to EQUAL. split_details
    are required by the normalizer only when split_type is UNEQUAL.
    """

    title = fields.Str(required=True, validate=validate.Length(max=200))
    amount = fields.Decimal(required=True, validate=validate_amount_precision)
    date = fields.Date(required=True)
    category = fields.Str(required=True, validate=validate.Length(max=80))
    split_type = fields.Enum(
        SplitType,
        by_value=True,
        load_default=SplitType.EQUAL,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_TYPE},
    )
    split_between = fields.List(
        fields.Str(validate=validate.Length(min=1, max=36)),
        required=True,
    )
