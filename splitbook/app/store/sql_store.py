"""
store/sql_store.py — SQLAlchemy implementation of the storage adapter.

This is the only module that maps between ORM rows and the plain records in
store/records.py. Services never import it; the route layer builds a store
for the current request via extensions.get_store() / get_directory().

Write semantics:
  - Every mutating method commits before returning, so each call is atomic
    on its own (see store/base.py).
  - Any SQLAlchemyError is rolled back, logged with full detail, and
    re-raised as UpstreamFailure carrying a generic message. Driver text
    never reaches the caller.
"""

from __future__ import annotations

import logging
import re
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from splitbook.app.errors import UpstreamFailure
from splitbook.app.models.expense import Expense
from splitbook.app.models.group import Group
from splitbook.app.models.membership import Membership
from splitbook.app.models.participant import ExpenseParticipant
from splitbook.app.models.settlement import Settlement
from splitbook.app.models.user import User
from splitbook.app.store.base import (
    ExpenseTable,
    GroupTable,
    LedgerStore,
    SettlementTable,
    UserDirectory,
)
from splitbook.app.store.records import (
    ExpenseFilter,
    ExpenseRecord,
    GroupFilter,
    GroupRecord,
    SettlementFilter,
    SettlementRecord,
    SplitDetail,
    SplitType,
    UserRecord,
)

logger = logging.getLogger(__name__)

_EXPENSE_COLUMNS = (
    "title", "amount", "date", "category", "receipt_url",
    "group_id", "paid_by", "split_type", "updated_at",
)


@contextmanager
def _guarded(session: Session, operation: str) -> Iterator[None]:
    """Wraps one store operation: on a driver error, roll back and raise UpstreamFailure."""
    try:
        yield
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Record store operation failed: %s", operation)
        raise UpstreamFailure("The record store is unavailable. Please try again later.")


# ── Row ↔ record mapping ───────────────────────────────────────────────────

def _aware(value: datetime | None) -> datetime | None:
    """Some backends (SQLite) drop tzinfo on read. Stored values are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _expense_to_record(row: Expense) -> ExpenseRecord:
    participants = list(row.participants)
    split_type = SplitType(row.split_type)
    details = None
    if split_type == SplitType.UNEQUAL:
        details = [SplitDetail(user_id=p.user_id, amount=p.share) for p in participants]
    return ExpenseRecord(
        id=row.id,
        title=row.title,
        amount=row.amount,
        date=row.date,
        category=row.category,
        paid_by=row.paid_by,
        split_type=split_type,
        split_between=[p.user_id for p in participants],
        split_details=details,
        group_id=row.group_id,
        receipt_url=row.receipt_url,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _participant_rows(
        split_between: list[str],
        split_details: list[SplitDetail] | None,
) -> list[ExpenseParticipant]:
    shares = {d.user_id: d.amount for d in split_details or []}
    return [
        ExpenseParticipant(user_id=uid, share=shares.get(uid), position=index)
        for index, uid in enumerate(split_between)
    ]


def _settlement_to_record(row: Settlement) -> SettlementRecord:
    return SettlementRecord(
        id=row.id,
        from_user_id=row.from_user_id,
        to_user_id=row.to_user_id,
        amount=row.amount,
        settled_at=_aware(row.settled_at),
        created_at=_aware(row.created_at),
        created_by=row.created_by,
        group_id=row.group_id,
        note=row.note,
    )


def _group_to_record(row: Group) -> GroupRecord:
    return GroupRecord(
        id=row.id,
        name=row.name,
        created_by=row.created_by,
        members=[m.user_id for m in row.memberships],
        created_at=_aware(row.created_at),
    )


def _user_to_record(row: User) -> UserRecord:
    return UserRecord(
        id=row.id,
        name=row.name,
        mobile=row.mobile,
        email=row.email,
        push_token=row.push_token,
    )


# ── Tables ─────────────────────────────────────────────────────────────────

class SqlExpenseTable(ExpenseTable):

    def __init__(self, session: Session) -> None:
        self.session = session

    def _select(self, flt: ExpenseFilter):
        stmt = select(Expense).options(selectinload(Expense.participants))
        if flt.id is not None:
            stmt = stmt.where(Expense.id == flt.id)
        if flt.paid_by is not None:
            stmt = stmt.where(Expense.paid_by == flt.paid_by)
        if flt.group_id is not None:
            stmt = stmt.where(Expense.group_id == flt.group_id)
        if flt.participant is not None:
            stmt = stmt.where(
                Expense.participants.any(ExpenseParticipant.user_id == flt.participant)
            )
        return stmt

    def insert(self, record: ExpenseRecord) -> ExpenseRecord:
        with _guarded(self.session, "expenses.insert"):
            row = Expense(
                id=record.id,
                title=record.title,
                amount=record.amount,
                date=record.date,
                category=record.category,
                receipt_url=record.receipt_url,
                group_id=record.group_id,
                paid_by=record.paid_by,
                split_type=record.split_type,
                participants=_participant_rows(record.split_between, record.split_details),
            )
            self.session.add(row)
            self.session.commit()
            self.session.refresh(row)
            return _expense_to_record(row)

    def query(self, flt: ExpenseFilter) -> list[ExpenseRecord]:
        with _guarded(self.session, "expenses.query"):
            rows = self.session.execute(self._select(flt)).scalars().all()
            return [_expense_to_record(row) for row in rows]

    def patch(self, expense_id: str, fields: dict[str, Any]) -> bool:
        with _guarded(self.session, "expenses.patch"):
            row = self.session.get(Expense, expense_id)
            if row is None:
                return False

            for name in _EXPENSE_COLUMNS:
                if name in fields:
                    setattr(row, name, fields[name])

            if "split_between" in fields or "split_details" in fields:
                stale = list(row.participants)
                if "split_between" in fields:
                    split_between = fields["split_between"]
                else:
                    split_between = [p.user_id for p in stale]
                split_details = fields.get("split_details")
                # Core delete before the inserts: the ORM would flush the new
                # rows first and trip uq_participants_expense_user.
                self.session.execute(
                    delete(ExpenseParticipant).where(ExpenseParticipant.expense_id == expense_id)
                )
                self.session.expire(row, ["participants"])
                for participant in stale:
                    if participant in self.session:
                        self.session.expunge(participant)
                for participant in _participant_rows(split_between, split_details):
                    participant.expense_id = expense_id
                    self.session.add(participant)

            if "updated_at" not in fields:
                row.updated_at = datetime.now(timezone.utc)
            self.session.commit()
            return True

    def delete(self, flt: ExpenseFilter) -> int:
        if flt.is_empty():
            raise ValueError("Refusing to delete expenses with an empty filter.")
        with _guarded(self.session, "expenses.delete"):
            ids = [row.id for row in self.session.execute(self._select(flt)).scalars().all()]
            if not ids:
                return 0
            # Explicit child delete: SQLite does not enforce ON DELETE CASCADE
            # unless foreign keys are switched on per connection.
            self.session.execute(
                delete(ExpenseParticipant).where(ExpenseParticipant.expense_id.in_(ids))
            )
            self.session.execute(delete(Expense).where(Expense.id.in_(ids)))
            self.session.commit()
            return len(ids)


class SqlSettlementTable(SettlementTable):

    def __init__(self, session: Session) -> None:
        self.session = session

    def insert(self, record: SettlementRecord) -> SettlementRecord:
        with _guarded(self.session, "settlements.insert"):
            row = Settlement(
                id=record.id,
                from_user_id=record.from_user_id,
                to_user_id=record.to_user_id,
                amount=record.amount,
                settled_at=record.settled_at,
                created_at=record.created_at,
                created_by=record.created_by,
                group_id=record.group_id,
                note=record.note,
            )
            self.session.add(row)
            self.session.commit()
            self.session.refresh(row)
            return _settlement_to_record(row)

    def query(self, flt: SettlementFilter) -> list[SettlementRecord]:
        stmt = select(Settlement)
        if flt.id is not None:
            stmt = stmt.where(Settlement.id == flt.id)
        if flt.from_user_id is not None:
            stmt = stmt.where(Settlement.from_user_id == flt.from_user_id)
        if flt.to_user_id is not None:
            stmt = stmt.where(Settlement.to_user_id == flt.to_user_id)
        if flt.group_id is not None:
            stmt = stmt.where(Settlement.group_id == flt.group_id)
        with _guarded(self.session, "settlements.query"):
            rows = self.session.execute(stmt).scalars().all()
            return [_settlement_to_record(row) for row in rows]


class SqlGroupTable(GroupTable):

    def __init__(self, session: Session) -> None:
        self.session = session

    def _select(self, flt: GroupFilter):
        stmt = select(Group).options(selectinload(Group.memberships))
        if flt.id is not None:
            stmt = stmt.where(Group.id == flt.id)
        if flt.ids is not None:
            stmt = stmt.where(Group.id.in_(flt.ids))
        if flt.created_by is not None:
            stmt = stmt.where(Group.created_by == flt.created_by)
        if flt.member is not None:
            stmt = stmt.where(Group.memberships.any(Membership.user_id == flt.member))
        return stmt

    def insert(self, record: GroupRecord) -> GroupRecord:
        with _guarded(self.session, "groups.insert"):
            row = Group(
                id=record.id or str(uuid.uuid4()),
                name=record.name,
                created_by=record.created_by,
                memberships=[
                    Membership(user_id=uid, position=index)
                    for index, uid in enumerate(record.members)
                ],
            )
            self.session.add(row)
            self.session.commit()
            self.session.refresh(row)
            return _group_to_record(row)

    def query(self, flt: GroupFilter) -> list[GroupRecord]:
        with _guarded(self.session, "groups.query"):
            rows = self.session.execute(self._select(flt)).scalars().all()
            return [_group_to_record(row) for row in rows]

    def patch(self, group_id: str, fields: dict[str, Any]) -> bool:
        """Supported fields: name, members (the full new member list)."""
        with _guarded(self.session, "groups.patch"):
            row = self.session.get(Group, group_id)
            if row is None:
                return False

            if "name" in fields:
                row.name = fields["name"]

            if "members" in fields:
                wanted = list(fields["members"])
                for membership in list(row.memberships):
                    if membership.user_id not in wanted:
                        row.memberships.remove(membership)
                current = {m.user_id for m in row.memberships}
                for index, uid in enumerate(wanted):
                    if uid not in current:
                        row.memberships.append(Membership(user_id=uid, position=index))

            row.updated_at = datetime.now(timezone.utc)
            self.session.commit()
            return True

    def delete(self, flt: GroupFilter) -> int:
        if flt.is_empty():
            raise ValueError("Refusing to delete groups with an empty filter.")
        with _guarded(self.session, "groups.delete"):
            ids = [row.id for row in self.session.execute(self._select(flt)).scalars().all()]
            if not ids:
                return 0
            self.session.execute(delete(Membership).where(Membership.group_id.in_(ids)))
            self.session.execute(delete(Group).where(Group.id.in_(ids)))
            self.session.commit()
            return len(ids)


class SqlLedgerStore(LedgerStore):

    def __init__(self, session: Session) -> None:
        self.session = session
        self.expenses = SqlExpenseTable(session)
        self.settlements = SqlSettlementTable(session)
        self.groups = SqlGroupTable(session)

    def delete_group_with_expenses(self, group_id: str) -> int:
        with _guarded(self.session, "groups.delete_with_expenses"):
            expense_ids = self.session.execute(
                select(Expense.id).where(Expense.group_id == group_id)
            ).scalars().all()
            if expense_ids:
                self.session.execute(
                    delete(ExpenseParticipant).where(ExpenseParticipant.expense_id.in_(expense_ids))
                )
                self.session.execute(delete(Expense).where(Expense.id.in_(expense_ids)))
            self.session.execute(delete(Membership).where(Membership.group_id == group_id))
            self.session.execute(delete(Group).where(Group.id == group_id))
            self.session.commit()
            return len(expense_ids)


# ── User directory ─────────────────────────────────────────────────────────

def normalize_mobile(mobile: str | None) -> str | None:
    """
    Strips formatting from a phone number, keeping a leading "+".

    "+91 98765-43210" -> "+919876543210";  "(555) 010 2000" -> "5550102000".
    Returns None when nothing usable is left.
    """
    if not mobile:
        return None
    cleaned = re.sub(r"[^\d+]", "", mobile.strip())
    if not cleaned:
        return None
    if cleaned.startswith("+"):
        digits = re.sub(r"\D", "", cleaned[1:])
        return f"+{digits}" if digits else None
    digits = re.sub(r"\D", "", cleaned)
    return digits or None


def mobile_lookup_key(mobile: str | None) -> str | None:
    normalized = normalize_mobile(mobile)
    if normalized is None:
        return None
    return re.sub(r"\D", "", normalized)


class SqlUserDirectory(UserDirectory):

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_id(self, user_id: str) -> UserRecord | None:
        with _guarded(self.session, "users.find_by_id"):
            row = self.session.get(User, user_id)
            return _user_to_record(row) if row is not None else None

    def provision_invited_user(self, name: str, mobile: str | None = None) -> UserRecord:
        normalized = normalize_mobile(mobile)
        key = mobile_lookup_key(normalized)
        with _guarded(self.session, "users.provision_invited_user"):
            if key is not None:
                existing = self.session.execute(
                    select(User).where(User.mobile_key == key).limit(1)
                ).scalar_one_or_none()
                if existing is not None:
                    existing.name = name
                    self.session.commit()
                    return _user_to_record(existing)

            row = User(
                id=str(uuid.uuid4()),
                name=name,
                mobile=normalized,
                mobile_key=key,
            )
            self.session.add(row)
            self.session.commit()
            logger.info("Provisioned invited user %s", row.id)
            return _user_to_record(row)

    def set_push_token(self, user_id: str, push_token: str) -> UserRecord | None:
        with _guarded(self.session, "users.set_push_token"):
            row = self.session.get(User, user_id)
            if row is None:
                return None
            row.push_token = push_token
            self.session.commit()
            return _user_to_record(row)
