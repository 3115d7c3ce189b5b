"""
services/analytics_service.py — Time-windowed spending summary for one user.

Window: "30D", "90D" or "ALL" (default), inclusive, measured against "now"
at query time. An expense is in the window when its calendar date is on or
after the window's start date; a settlement when its settled_at is on or
after the window's start instant.

Over the expenses U paid or participates in (optionally one group only):
  categoryTotals  — summed by category
  groupTotals     — summed by group label: "Personal" when ungrouped, the
                    group's name, or "Unnamed Group" if the group is gone
  dailyTotals     — summed by YYYY-MM-DD
  monthlyTotals   — summed by YYYY-MM
  transactionCount— number of expenses in the filtered set
Totals use the full expense amount, not U's share.

Over the settlements U is a party to (same window and group filter):
  settlementTotals — paid, received, net = received − paid

youOwe / owesYou / totalSpent / net are the balance fold from
balance_service over the same filtered sets. Callers must not rely on the
ordering of any map in the result.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from splitbook.app.errors import ErrorCode, ValidationFailure
from splitbook.app.services import balance_service, membership_service
from splitbook.app.store.base import LedgerStore
from splitbook.app.store.records import (
    ExpenseRecord,
    GroupFilter,
    SettlementRecord,
)

TIME_FILTER_DAYS: dict[str, int | None] = {
    "30D": 30,
    "90D": 90,
    "ALL": None,
}

PERSONAL_LABEL = "Personal"
UNNAMED_GROUP_LABEL = "Unnamed Group"
DEFAULT_CATEGORY = "Others"


def window_start(time_filter: str, now: datetime) -> datetime | None:
    """Start instant of the window, or None for ALL."""
    if time_filter not in TIME_FILTER_DAYS:
        raise ValidationFailure(
            ErrorCode.INVALID_TIME_FILTER,
            "timeFilter must be one of 30D, 90D or ALL.",
            field="timeFilter",
            http_status=400,
        )
    days = TIME_FILTER_DAYS[time_filter]
    return None if days is None else now - timedelta(days=days)


def _group_label(expense: ExpenseRecord, group_names: dict[str, str]) -> str:
    if not expense.group_id:
        return PERSONAL_LABEL
    return group_names.get(expense.group_id) or UNNAMED_GROUP_LABEL


def summarize(
        expenses: list[ExpenseRecord],
        settlements: list[SettlementRecord],
        user_id: str,
        group_names: dict[str, str],
        time_filter: str = "ALL",
        now: datetime | None = None,
) -> dict:
    """Pure aggregation over already-loaded records."""
    now = now or datetime.now(timezone.utc)
    start = window_start(time_filter, now)

    if start is not None:
        start_date = start.date()
        expenses = [e for e in expenses if e.date >= start_date]
        settlements = [s for s in settlements if s.settled_at >= start]

    category_totals: dict[str, Decimal] = defaultdict(Decimal)
    group_totals: dict[str, Decimal] = defaultdict(Decimal)
    daily_totals: dict[str, Decimal] = defaultdict(Decimal)
    monthly_totals: dict[str, Decimal] = defaultdict(Decimal)

    for expense in expenses:
        category = (expense.category or "").strip() or DEFAULT_CATEGORY
        category_totals[category] += expense.amount
        group_totals[_group_label(expense, group_names)] += expense.amount
        daily_totals[expense.date.strftime("%Y-%m-%d")] += expense.amount
        monthly_totals[expense.date.strftime("%Y-%m")] += expense.amount

    paid = sum((s.amount for s in settlements if s.from_user_id == user_id), Decimal("0"))
    received = sum((s.amount for s in settlements if s.to_user_id == user_id), Decimal("0"))

    balance = balance_service.accumulate(expenses, settlements, user_id)

    def _render(totals: dict[str, Decimal]) -> dict[str, Decimal]:
        return {key: balance_service.to_cents(value) for key, value in totals.items()}

    return {
        "timeFilter": time_filter,
        **balance.to_dict(),
        "transactionCount": len(expenses),
        "categoryTotals": _render(category_totals),
        "groupTotals": _render(group_totals),
        "dailyTotals": _render(daily_totals),
        "monthlyTotals": _render(monthly_totals),
        "settlementTotals": {
            "paid": balance_service.to_cents(paid),
            "received": balance_service.to_cents(received),
            "net": balance_service.to_cents(received - paid),
        },
    }


def get_analytics_summary(
        store: LedgerStore,
        user_id: str,
        time_filter: str = "ALL",
        group_id: str | None = None,
        now: datetime | None = None,
) -> dict:
    """
    Loads U's records and summarizes them.

    A group filter is authorized before anything else is read: the group
    must exist (404) and U must be a member (403).
    """
    window_start(time_filter, now or datetime.now(timezone.utc))
    if group_id:
        membership_service.load_group_for_member(store, group_id, user_id)

    expenses = balance_service.get_visible_expenses(store, user_id, group_id=group_id)
    settlements = balance_service.get_user_settlements(store, user_id, group_id=group_id)

    group_ids = tuple(sorted({e.group_id for e in expenses if e.group_id}))
    group_names: dict[str, str] = {}
    if group_ids:
        group_names = {g.id: g.name for g in store.groups.query(GroupFilter(ids=group_ids))}

    summary = summarize(expenses, settlements, user_id, group_names, time_filter, now)
    summary["groupId"] = group_id
    return summary
