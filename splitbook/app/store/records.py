"""
store/records.py — Plain record types exchanged with the record store.

These are the shapes the ledger engine reads and writes. They carry no ORM
state, so services, the split normalizer and the balance accumulator work the
same whichever storage adapter is wired in.

Money is always Decimal. Dates on expenses are calendar dates; settlement
timestamps are timezone-aware datetimes.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date as calendar_date, datetime
from decimal import Decimal


class SplitType(str, enum.Enum):
    EQUAL   = "EQUAL"
    UNEQUAL = "UNEQUAL"


@dataclass(frozen=True)
class SplitDetail:
    user_id: str
    amount: Decimal


@dataclass
class ExpenseRecord:
    id: str
    title: str
    amount: Decimal
    date: calendar_date
    category: str
    paid_by: str
    split_type: SplitType
    split_between: list[str]
    split_details: list[SplitDetail] | None = None
    group_id: str | None = None
    receipt_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class SettlementRecord:
    id: str
    from_user_id: str
    to_user_id: str
    amount: Decimal
    settled_at: datetime
    created_at: datetime
    created_by: str
    group_id: str | None = None
    note: str | None = None


@dataclass
class GroupRecord:
    id: str
    name: str
    created_by: str
    members: list[str] = field(default_factory=list)
    created_at: datetime | None = None


@dataclass
class UserRecord:
    id: str
    name: str
    mobile: str | None = None
    email: str | None = None
    push_token: str | None = None


# ── Filters ────────────────────────────────────────────────────────────────
# Every set attribute must match (logical AND). An all-None filter matches
# every row, so delete() refuses it.

@dataclass(frozen=True)
class ExpenseFilter:
    id: str | None = None
    paid_by: str | None = None
    participant: str | None = None   # split_between contains this user
    group_id: str | None = None

    def is_empty(self) -> bool:
        return not any((self.id, self.paid_by, self.participant, self.group_id))


@dataclass(frozen=True)
class SettlementFilter:
    id: str | None = None
    from_user_id: str | None = None
    to_user_id: str | None = None
    group_id: str | None = None

    def is_empty(self) -> bool:
        return not any((self.id, self.from_user_id, self.to_user_id, self.group_id))


@dataclass(frozen=True)
class GroupFilter:
    id: str | None = None
    member: str | None = None        # members contains this user
    created_by: str | None = None
    ids: tuple[str, ...] | None = None

    def is_empty(self) -> bool:
        return not any((self.id, self.member, self.created_by, self.ids))


# ── Submissions ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class InvitedUser:
    name: str
    mobile: str | None = None


@dataclass
class ExpensePatch:
    """
    Explicit partial update for an expense.

    One optional attribute per mutable field; None means "leave unchanged".
    A create is a patch applied over no stored record, so required fields
    must all be present in that case. An empty receipt_url clears the receipt.
    Built from PatchExpenseSchema output, so every provided field has already
    passed shape validation individually. The split normalizer merges it over
    the stored record and re-validates the result as a whole.
    """

    title: str | None = None
    amount: Decimal | None = None
    date: calendar_date | None = None
    category: str | None = None
    receipt_url: str | None = None
    group_id: str | None = None
    paid_by: str | None = None
    split_type: SplitType | None = None
    split_between: list[str] | None = None
    split_details: list[SplitDetail] | None = None
    invited_users: list[InvitedUser] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "ExpensePatch":
        known = {name for name in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known and v is not None})
