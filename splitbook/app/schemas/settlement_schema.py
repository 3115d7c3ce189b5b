"""
schemas/settlement_schema.py — Marshmallow schema for settlement endpoints.

Validation responsibility:
  - This file: field types, decimal precision, positive amount, note length.
  - services/settlement_service.py:
      - SELF_SETTLEMENT (422)         — from_user_id == to_user_id
      - USER_NOT_FOUND  (404)         — requires directory lookup
      - GROUP_NOT_FOUND (404)         — requires store lookup
      - NOT_GROUP_MEMBER / NOT_SETTLEMENT_PARTY (403)

IMPORTANT: Inherits from marshmallow.Schema directly, never a Flask-bound
           schema base.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate

from splitbook.app.errors import ErrorCode


# ── Monetary amount validator ─────────────────────────────────────────────
#
# Same rule as expense amounts but kept local so each schema file stays
# self-contained. Settlements must be strictly positive; zero-value
# settlements carry no meaning.
# ──────────────────────────────────────────────────────────────────────────

def _validate_monetary_amount(value: Decimal) -> None:
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


class CreateSettlementSchema(Schema):
    """
    POST /expenses/settlements

    Field rules:
      from_user_id : required; who paid the debt back
      to_user_id   : required; who received it
      amount       : required, positive Decimal, max 2 decimal places
      group_id     : optional; scopes the settlement to one group
      settled_at   : optional ISO datetime; defaults to creation time
      note         : optional, trimmed, max 200 characters
    """

    from_user_id = fields.Str(required=True, validate=validate.Length(min=1, max=36))
    to_user_id = fields.Str(required=True, validate=validate.Length(min=1, max=36))

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    group_id = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=36))
    # Naive values are read as UTC by the service.
    settled_at = fields.DateTime(load_default=None, allow_none=True)
    note = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=200))


class ListSettlementsQuerySchema(Schema):
    """GET /expenses/settlements?groupId=..."""

    group_id = fields.Str(data_key="groupId", load_default=None, validate=validate.Length(min=1, max=36))
