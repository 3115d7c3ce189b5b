"""
schemas/analytics_schema.py — Query-string schema for the analytics summary.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from splitbook.app.errors import ErrorCode

TIME_FILTERS = ("30D", "90D", "ALL")


class AnalyticsQuerySchema(Schema):
    """GET /expenses/analytics/summary?timeFilter=30D&groupId=..."""

    time_filter = fields.Str(
        data_key="timeFilter",
        load_default="ALL",
        validate=validate.OneOf(TIME_FILTERS, error=ErrorCode.INVALID_TIME_FILTER),
    )
    group_id = fields.Str(
        data_key="groupId",
        load_default=None,
        validate=validate.Length(min=1, max=36),
    )
