"""
services/expense_service.py — Expense orchestration.

Authorization rules:
  - Create: any authenticated user; group rules are applied by the normalizer
            (caller, payer and every participant must be members).
  - List:   the caller's own expenses (paid by or participating in); with a
            group filter, the caller must be a member of that group.
  - Get:    payer, participant, or member of the expense's group.
  - Update: payer only.
  - Delete: payer only.

Ordering guarantee: every validation and authorization step runs before the
first write. The only exceptions are invited users, which the directory
provisions while the submission is normalized, and an inline receipt, which is
uploaded immediately before the expense row is written.

Notifications are best-effort: they run after the expense is persisted, and a
failure for one recipient is logged and swallowed.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Receives the store, directory and collaborators as arguments; returns
    plain records or raises AppError.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from splitbook.app.errors import ErrorCode, Forbidden, NotFound
from splitbook.app.services import balance_service, membership_service
from splitbook.app.services.receipt_service import resolve_receipt_url
from splitbook.app.services.split_normalizer import normalize_expense
from splitbook.app.store.base import LedgerStore, UserDirectory
from splitbook.app.store.records import ExpenseFilter, ExpensePatch, ExpenseRecord

logger = logging.getLogger(__name__)

NEW_EXPENSE_TITLE = "New Expense Added"


# ── Private helpers ────────────────────────────────────────────────────────

def _get_expense_or_404(store: LedgerStore, expense_id: str) -> ExpenseRecord:
    expense = store.expenses.get(expense_id)
    if expense is None:
        raise NotFound(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
        )
    return expense


def _require_payer(expense: ExpenseRecord, caller_id: str, action: str) -> None:
    if expense.paid_by != caller_id:
        raise Forbidden(
            f"Only the payer can {action} this expense.",
            code=ErrorCode.NOT_EXPENSE_PAYER,
        )


def _can_view(store: LedgerStore, expense: ExpenseRecord, caller_id: str) -> bool:
    if expense.paid_by == caller_id or caller_id in expense.split_between:
        return True
    if expense.group_id:
        group = store.groups.get(expense.group_id)
        return group is not None and membership_service.is_member(group, caller_id)
    return False


def notify_participants(
        expense: ExpenseRecord,
        creator_id: str,
        directory: UserDirectory,
        notifier,
) -> None:
    """
    Tells every participant except the creator what they owe on `expense`.

    The quoted share uses balance_service.share_of, so it always matches what
    the recipient's balance will show.
    """
    if notifier is None:
        return

    try:
        creator = directory.find_by_id(creator_id)
    except Exception:
        logger.exception("Failed to look up creator %s for expense %s", creator_id, expense.id)
        creator = None
    creator_name = creator.name if creator is not None else "Someone"

    for user_id in expense.split_between:
        if user_id == creator_id:
            continue
        try:
            recipient = directory.find_by_id(user_id)
            if recipient is None or not recipient.push_token:
                continue
            share = balance_service.to_cents(balance_service.share_of(expense, user_id))
            notifier.notify(
                recipient.push_token,
                NEW_EXPENSE_TITLE,
                f'{creator_name} added "{expense.title}" (₹{expense.amount}). Pay ₹{share}.',
                {"expenseId": expense.id},
            )
        except Exception:
            logger.exception(
                "Failed to notify user %s about expense %s", user_id, expense.id,
            )


# ── Public service functions ───────────────────────────────────────────────

def create_expense(
        store: LedgerStore,
        directory: UserDirectory,
        caller_id: str,
        patch: ExpensePatch,
        notifier=None,
        receipts=None,
) -> ExpenseRecord:
    """
    Normalizes the submission, assigns an id, uploads an inline receipt,
    persists, then notifies the other participants.
    """
    normalized = normalize_expense(patch, caller_id, store, directory)

    expense_id = str(uuid.uuid4())
    receipt_url = resolve_receipt_url(
        normalized.receipt_url,
        owner_id=normalized.paid_by,
        expense_id=expense_id,
        storage=receipts,
    )

    now = datetime.now(timezone.utc)
    expense = store.expenses.insert(ExpenseRecord(
        id=expense_id,
        title=normalized.title,
        amount=normalized.amount,
        date=normalized.date,
        category=normalized.category,
        paid_by=normalized.paid_by,
        split_type=normalized.split_type,
        split_between=normalized.split_between,
        split_details=normalized.split_details,
        group_id=normalized.group_id,
        receipt_url=receipt_url,
        created_at=now,
        updated_at=now,
    ))
    logger.info("Expense %s created by %s", expense.id, caller_id)

    notify_participants(expense, caller_id, directory, notifier)
    return expense


def update_expense(
        store: LedgerStore,
        directory: UserDirectory,
        expense_id: str,
        caller_id: str,
        patch: ExpensePatch,
        receipts=None,
) -> ExpenseRecord:
    """
    Partial update by the payer. The merged result is re-validated in full
    by the normalizer before anything is written.
    """
    existing = _get_expense_or_404(store, expense_id)
    _require_payer(existing, caller_id, "edit")

    normalized = normalize_expense(patch, caller_id, store, directory, existing=existing)

    receipt_url = existing.receipt_url
    if patch.receipt_url is not None:
        receipt_url = resolve_receipt_url(
            patch.receipt_url,
            owner_id=normalized.paid_by,
            expense_id=expense_id,
            storage=receipts,
        )

    updated = store.expenses.patch(expense_id, {
        "title": normalized.title,
        "amount": normalized.amount,
        "date": normalized.date,
        "category": normalized.category,
        "receipt_url": receipt_url,
        "group_id": normalized.group_id,
        "paid_by": normalized.paid_by,
        "split_type": normalized.split_type,
        "split_between": normalized.split_between,
        "split_details": normalized.split_details,
    })
    if not updated:
        # Deleted between the read and the write.
        raise NotFound(ErrorCode.EXPENSE_NOT_FOUND, f"Expense {expense_id} does not exist.")

    return _get_expense_or_404(store, expense_id)


def delete_expense(store: LedgerStore, expense_id: str, caller_id: str) -> None:
    expense = _get_expense_or_404(store, expense_id)
    _require_payer(expense, caller_id, "delete")
    store.expenses.delete(ExpenseFilter(id=expense_id))
    logger.info("Expense %s deleted by %s", expense_id, caller_id)


def get_expense(store: LedgerStore, expense_id: str, caller_id: str) -> ExpenseRecord:
    expense = _get_expense_or_404(store, expense_id)
    if not _can_view(store, expense, caller_id):
        raise Forbidden("You do not have access to this expense.")
    return expense


def list_expenses(store: LedgerStore, caller_id: str) -> list[ExpenseRecord]:
    """Expenses the caller paid or participates in, newest first."""
    expenses = balance_service.get_visible_expenses(store, caller_id)
    return sorted(expenses, key=_newest_first)


def list_group_expenses(store: LedgerStore, group_id: str, caller_id: str) -> list[ExpenseRecord]:
    """Every expense in a group, for members only, newest first."""
    membership_service.load_group_for_member(store, group_id, caller_id)
    return sorted(store.expenses.query(ExpenseFilter(group_id=group_id)), key=_newest_first)


def _newest_first(expense: ExpenseRecord):
    created = expense.created_at or datetime.min.replace(tzinfo=timezone.utc)
    return (-expense.date.toordinal(), -created.timestamp())
