"""
services/split_normalizer.py — Validates and canonicalizes an expense submission.

Input is an ExpensePatch (a create is a patch over no stored record), the
acting user's id and, for updates, the stored ExpenseRecord. Output is a
NormalizedExpense ready to persist. Nothing is written here except invited
users, which the user directory provisions on demand.

Steps, in order (the first failure wins):
  1. Resolve invited users through the directory; merge their ids into the
     participants and dedupe, keeping first-seen order.
  2. If the expense is grouped: the group must exist (404) and the acting
     user, the payer and every participant must be members (403).
  3. Every participant and the payer must exist (404).
  4. amount > 0 with at most 2 dp, title and category non-blank after trim,
     date a valid calendar date (422).
  5. EQUAL: details are dropped. Shares are amount / N, computed on read.
  6. UNEQUAL: exactly one detail per participant, each non-negative, summing
     to amount within 0.01. Details are re-emitted in participant order.

Layer rules:
  - No Flask imports. Receives a LedgerStore and a UserDirectory.
  - All arithmetic is Decimal. Sums are compared with a tolerance, never
    with exact equality.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from splitbook.app.errors import ErrorCode, Forbidden, NotFound, ValidationFailure
from splitbook.app.services import membership_service
from splitbook.app.store.base import LedgerStore, UserDirectory
from splitbook.app.store.records import (
    ExpensePatch,
    ExpenseRecord,
    SplitDetail,
    SplitType,
)

SPLIT_SUM_TOLERANCE = Decimal("0.01")


@dataclass
class NormalizedExpense:
    title: str
    amount: Decimal
    date: date
    category: str
    paid_by: str
    split_type: SplitType
    split_between: list[str]
    split_details: list[SplitDetail] | None
    group_id: str | None
    # Raw submitted receipt value (URL, data URL or "" to clear); the expense
    # service resolves it after an id has been assigned.
    receipt_url: str | None


def _dedupe(ids: list[str]) -> list[str]:
    seen: set[str] = set()
    ordered = []
    for uid in ids:
        if uid not in seen:
            seen.add(uid)
            ordered.append(uid)
    return ordered


def _pick(new, old):
    return new if new is not None else old


def _parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise ValidationFailure(
        ErrorCode.INVALID_DATE,
        "date must be a valid calendar date (YYYY-MM-DD).",
        field="date",
    )


def _parse_amount(value) -> Decimal:
    if value is None:
        raise ValidationFailure(ErrorCode.INVALID_AMOUNT, "amount is required.", field="amount")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise ValidationFailure(ErrorCode.INVALID_AMOUNT, "amount must be a number.", field="amount")
    if not amount.is_finite() or amount <= 0:
        raise ValidationFailure(
            ErrorCode.INVALID_AMOUNT,
            "amount must be greater than zero.",
            field="amount",
        )
    if amount.as_tuple().exponent < -2:
        raise ValidationFailure(
            ErrorCode.INVALID_AMOUNT_PRECISION,
            "amount must have at most 2 decimal places.",
            field="amount",
        )
    return amount


def _require_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationFailure(
            ErrorCode.BLANK_FIELD,
            f"{field} must not be blank.",
            field=field,
        )
    return text


def _check_group(
        store: LedgerStore,
        group_id: str,
        acting_user_id: str,
        payer_id: str,
        participants: list[str],
) -> None:
    group = membership_service.get_group_or_404(store, group_id)
    membership_service.require_member(
        group, acting_user_id,
        message="You are not a member of this group.",
    )
    membership_service.require_member(
        group, payer_id,
        code=ErrorCode.PAYER_NOT_MEMBER,
        message="The payer must be a member of this group.",
    )
    outsiders = [uid for uid in participants if uid not in group.members]
    if outsiders:
        raise Forbidden(
            f"User {outsiders[0]} is not a member of this group.",
            code=ErrorCode.SPLIT_USER_NOT_MEMBER,
        )


def _check_users_exist(directory: UserDirectory, participants: list[str], payer_id: str) -> None:
    for uid in [*participants, payer_id]:
        if directory.find_by_id(uid) is None:
            raise NotFound(ErrorCode.USER_NOT_FOUND, f"User {uid} not found.")


def _normalize_details(
        details: list[SplitDetail] | None,
        participants: list[str],
        amount: Decimal,
) -> list[SplitDetail]:
    if not details:
        raise ValidationFailure(
            ErrorCode.SPLIT_DETAILS_REQUIRED,
            "split_details are required for an UNEQUAL split.",
            field="split_details",
        )

    participant_set = set(participants)
    by_user: dict[str, Decimal] = {}
    for detail in details:
        uid = (detail.user_id or "").strip()
        if uid in by_user:
            raise ValidationFailure(
                ErrorCode.DUPLICATE_SPLIT_USER,
                f"User {uid} appears more than once in split_details.",
                field="split_details",
            )
        if uid not in participant_set:
            raise ValidationFailure(
                ErrorCode.SPLIT_USER_NOT_PARTICIPANT,
                f"User {uid} in split_details is not in split_between.",
                field="split_details",
            )
        share = detail.amount if isinstance(detail.amount, Decimal) else Decimal(str(detail.amount))
        if not share.is_finite() or share < 0:
            raise ValidationFailure(
                ErrorCode.NEGATIVE_SHARE,
                f"Share for user {uid} must not be negative.",
                field="split_details",
            )
        if share.as_tuple().exponent < -2:
            raise ValidationFailure(
                ErrorCode.INVALID_AMOUNT_PRECISION,
                f"Share for user {uid} must have at most 2 decimal places.",
                field="split_details",
            )
        by_user[uid] = share

    missing = [uid for uid in participants if uid not in by_user]
    if missing:
        raise ValidationFailure(
            ErrorCode.SPLIT_DETAILS_MISSING,
            f"split_details has no entry for user {missing[0]}.",
            field="split_details",
        )

    total = sum(by_user.values(), Decimal("0"))
    if abs(total - amount) > SPLIT_SUM_TOLERANCE:
        raise ValidationFailure(
            ErrorCode.SPLIT_SUM_MISMATCH,
            f"Split amounts ({total}) do not add up to the expense amount ({amount}).",
            field="split_details",
        )

    return [SplitDetail(user_id=uid, amount=by_user[uid]) for uid in participants]


def normalize_expense(
        patch: ExpensePatch,
        acting_user_id: str,
        store: LedgerStore,
        directory: UserDirectory,
        existing: ExpenseRecord | None = None,
) -> NormalizedExpense:
    """
    Merges `patch` over `existing` (None on create) and validates the result.

    Field merge: a None patch field keeps the stored value. An empty string
    group_id moves the expense out of its group. Switching to EQUAL drops the
    stored details; switching to UNEQUAL requires details to be supplied or
    already stored.
    """
    payer_id = (_pick(patch.paid_by, existing.paid_by if existing else None) or "").strip()
    payer_id = payer_id or acting_user_id

    split_between = _pick(patch.split_between, existing.split_between if existing else None) or []

    # ── Step 1: invited users ──────────────────────────────────────────────
    invited_ids = [
        directory.provision_invited_user(invited.name, invited.mobile).id
        for invited in patch.invited_users
    ]
    participants = _dedupe([uid.strip() for uid in [*split_between, *invited_ids] if uid and uid.strip()])
    if not participants:
        raise ValidationFailure(
            ErrorCode.EMPTY_PARTICIPANTS,
            "split_between must contain at least one user.",
            field="split_between",
        )

    # ── Step 2: group membership ───────────────────────────────────────────
    group_id = _pick(patch.group_id, existing.group_id if existing else None)
    group_id = group_id.strip() if group_id else None
    if group_id:
        _check_group(store, group_id, acting_user_id, payer_id, participants)

    # ── Step 3: user existence ─────────────────────────────────────────────
    _check_users_exist(directory, participants, payer_id)

    # ── Step 4: scalar fields ──────────────────────────────────────────────
    amount = _parse_amount(_pick(patch.amount, existing.amount if existing else None))
    title = _require_text(_pick(patch.title, existing.title if existing else None), "title")
    category = _require_text(_pick(patch.category, existing.category if existing else None), "category")
    expense_date = _parse_date(_pick(patch.date, existing.date if existing else None))

    # ── Steps 5 and 6: split details ───────────────────────────────────────
    split_type = SplitType(_pick(patch.split_type, existing.split_type if existing else None) or SplitType.EQUAL)
    if split_type == SplitType.EQUAL:
        split_details = None
    else:
        stored_details = None
        if existing is not None and existing.split_type == SplitType.UNEQUAL:
            stored_details = existing.split_details
        split_details = _normalize_details(
            _pick(patch.split_details, stored_details),
            participants,
            amount,
        )

    return NormalizedExpense(
        title=title,
        amount=amount,
        date=expense_date,
        category=category,
        paid_by=payer_id,
        split_type=split_type,
        split_between=participants,
        split_details=split_details,
        group_id=group_id,
        receipt_url=_pick(patch.receipt_url, existing.receipt_url if existing else None),
    )
