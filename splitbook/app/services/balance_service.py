"""
services/balance_service.py — Per-user balance computation.

This file is the SINGLE SOURCE OF TRUTH for how balances are computed. The
per-split share logic here is also what the expense notification quotes and
what the analytics summary folds, so it must not be reimplemented elsewhere.

Per expense, seen from user U:
  - U paid:    totalSpent += amount, and
                 EQUAL, U participates      → owesYou += amount × (N−1)/N
                 EQUAL, U not participating → owesYou += amount
                 UNEQUAL                    → owesYou += Σ other participants' shares
  - U did not pay but participates:
                 youOwe += share(U)   (EQUAL: amount / N; UNEQUAL: U's detail or 0)

Per settlement:
  - U is the source      → youOwe  = max(0, youOwe − amount)
  - U is the destination → owesYou = max(0, owesYou − amount)

Every expense contribution is folded first; settlements are then applied as a
single summed reduction per side. Because every term is added or subtracted
within its own phase, any permutation of either input list gives identical
totals.

Layer rules:
  - No Flask imports. The fold functions take plain records and are pure.
  - Arithmetic stays at full Decimal precision; results are quantized to
    cents (half-up) only when rendered.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from splitbook.app.store.base import LedgerStore
from splitbook.app.store.records import (
    ExpenseFilter,
    ExpenseRecord,
    SettlementFilter,
    SettlementRecord,
    SplitType,
)

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_cents(value: Decimal) -> Decimal:
    """Rendering-only rounding. Never feed the result back into a fold."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class BalanceSummary:
    you_owe: Decimal = ZERO
    owes_you: Decimal = ZERO
    total_spent: Decimal = ZERO

    @property
    def net(self) -> Decimal:
        """Positive: others owe you on balance. Negative: you owe others."""
        return self.owes_you - self.you_owe

    def to_dict(self) -> dict:
        return {
            "youOwe": to_cents(self.you_owe),
            "owesYou": to_cents(self.owes_you),
            "totalSpent": to_cents(self.total_spent),
            "net": to_cents(self.net),
        }


# ── Pure fold ──────────────────────────────────────────────────────────────

def share_of(expense: ExpenseRecord, user_id: str) -> Decimal:
    """
    The amount `user_id` owes on this expense, before any settlement.

    0 for users outside split_between, and for UNEQUAL participants with no
    detail entry.
    """
    if user_id not in expense.split_between:
        return ZERO
    if expense.split_type == SplitType.UNEQUAL:
        for detail in expense.split_details or []:
            if detail.user_id == user_id:
                return detail.amount
        return ZERO
    return expense.amount / Decimal(len(expense.split_between))


def expense_contribution(expense: ExpenseRecord, user_id: str) -> BalanceSummary:
    """One expense's contribution to `user_id`'s balance."""
    if expense.paid_by == user_id:
        if expense.split_type == SplitType.UNEQUAL:
            owed = sum(
                (d.amount for d in expense.split_details or [] if d.user_id != user_id),
                ZERO,
            )
        elif user_id in expense.split_between:
            n = Decimal(len(expense.split_between))
            owed = expense.amount * (n - 1) / n
        else:
            owed = expense.amount
        return BalanceSummary(owes_you=owed, total_spent=expense.amount)

    if user_id in expense.split_between:
        return BalanceSummary(you_owe=share_of(expense, user_id))

    return BalanceSummary()


def accumulate(
        expenses: Iterable[ExpenseRecord],
        settlements: Iterable[SettlementRecord],
        user_id: str,
) -> BalanceSummary:
    """Folds expenses, then settlements, into one BalanceSummary for `user_id`."""
    summary = BalanceSummary()
    for expense in expenses:
        part = expense_contribution(expense, user_id)
        summary.you_owe += part.you_owe
        summary.owes_you += part.owes_you
        summary.total_spent += part.total_spent

    paid = ZERO
    received = ZERO
    for settlement in settlements:
        if settlement.from_user_id == user_id:
            paid += settlement.amount
        elif settlement.to_user_id == user_id:
            received += settlement.amount

    summary.you_owe = max(ZERO, summary.you_owe - paid)
    summary.owes_you = max(ZERO, summary.owes_you - received)
    return summary


# ── Data access helpers ────────────────────────────────────────────────────
# The sanctioned ways to load "what U can see" for balance purposes.

def get_visible_expenses(
        store: LedgerStore,
        user_id: str,
        group_id: str | None = None,
) -> list[ExpenseRecord]:
    """Expenses U paid or participates in, deduplicated by id."""
    paid = store.expenses.query(ExpenseFilter(paid_by=user_id, group_id=group_id))
    shared = store.expenses.query(ExpenseFilter(participant=user_id, group_id=group_id))

    by_id: dict[str, ExpenseRecord] = {}
    for expense in [*paid, *shared]:
        by_id.setdefault(expense.id, expense)
    return list(by_id.values())


def get_user_settlements(
        store: LedgerStore,
        user_id: str,
        group_id: str | None = None,
) -> list[SettlementRecord]:
    """Settlements where U is the source or the destination."""
    sent = store.settlements.query(SettlementFilter(from_user_id=user_id, group_id=group_id))
    received = store.settlements.query(SettlementFilter(to_user_id=user_id, group_id=group_id))

    by_id: dict[str, SettlementRecord] = {}
    for settlement in [*sent, *received]:
        by_id.setdefault(settlement.id, settlement)
    return list(by_id.values())


def get_user_balance(store: LedgerStore, user_id: str) -> BalanceSummary:
    """Unwindowed balance across every expense and settlement U can see."""
    return accumulate(
        get_visible_expenses(store, user_id),
        get_user_settlements(store, user_id),
        user_id,
    )
