"""
services/settlement_service.py — Settlement business logic.

A settlement records money paid back from one user to another. It reduces
the source's youOwe and the destination's owesYou (see balance_service), and
it is immutable: there is no update and no delete.

Rules enforced here, in order:
  SELF_SETTLEMENT (422)       — from_user_id must differ from to_user_id
  USER_NOT_FOUND  (404)       — both parties must exist
  GROUP_NOT_FOUND (404)       — when group-scoped, the group must exist
  NOT_GROUP_MEMBER (403)      — when group-scoped, from, to and the creator
                                must all be members
  NOT_SETTLEMENT_PARTY (403)  — when unscoped, the creator must be from or to

Overpayment is not an error: the balance fold floors each side at zero.

Layer rules:
  - No Flask imports. Receives the store and directory as arguments.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from splitbook.app.errors import ErrorCode, Forbidden, NotFound, ValidationFailure
from splitbook.app.services import balance_service, membership_service
from splitbook.app.store.base import LedgerStore, UserDirectory
from splitbook.app.store.records import SettlementRecord

logger = logging.getLogger(__name__)


def _require_user(directory: UserDirectory, user_id: str, field: str) -> None:
    if directory.find_by_id(user_id) is None:
        raise NotFound(ErrorCode.USER_NOT_FOUND, f"User {user_id} not found.", field=field)


def create_settlement(
        store: LedgerStore,
        directory: UserDirectory,
        caller_id: str,
        from_user_id: str,
        to_user_id: str,
        amount: Decimal,
        group_id: str | None = None,
        settled_at: datetime | None = None,
        note: str | None = None,
) -> SettlementRecord:
    from_user_id = from_user_id.strip()
    to_user_id = to_user_id.strip()

    if from_user_id == to_user_id:
        raise ValidationFailure(
            ErrorCode.SELF_SETTLEMENT,
            "A settlement must be between two different users.",
            field="to_user_id",
        )
    if amount <= 0:
        raise ValidationFailure(ErrorCode.INVALID_AMOUNT, "amount must be greater than zero.", field="amount")

    _require_user(directory, from_user_id, "from_user_id")
    _require_user(directory, to_user_id, "to_user_id")

    group_id = group_id.strip() if group_id else None
    if group_id:
        group = membership_service.get_group_or_404(store, group_id)
        membership_service.require_member(group, caller_id, message="You are not a member of this group.")
        for party in (from_user_id, to_user_id):
            membership_service.require_member(
                group, party,
                message=f"User {party} is not a member of this group.",
            )
    elif caller_id not in (from_user_id, to_user_id):
        raise Forbidden(
            "You can only record settlements you paid or received.",
            code=ErrorCode.NOT_SETTLEMENT_PARTY,
        )

    now = datetime.now(timezone.utc)
    if settled_at is None:
        settled_at = now
    elif settled_at.tzinfo is None:
        settled_at = settled_at.replace(tzinfo=timezone.utc)

    note = note.strip() if note else None

    settlement = store.settlements.insert(SettlementRecord(
        id=str(uuid.uuid4()),
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        amount=amount,
        settled_at=settled_at,
        created_at=now,
        created_by=caller_id,
        group_id=group_id,
        note=note or None,
    ))
    logger.info(
        "Settlement %s recorded: %s -> %s (%s)",
        settlement.id, from_user_id, to_user_id, amount,
    )
    return settlement


def list_settlements(
        store: LedgerStore,
        caller_id: str,
        group_id: str | None = None,
) -> list[SettlementRecord]:
    """Settlements the caller is a party to, newest first. A group filter requires membership."""
    if group_id:
        membership_service.load_group_for_member(store, group_id, caller_id)
    settlements = balance_service.get_user_settlements(store, caller_id, group_id=group_id)
    return sorted(settlements, key=lambda s: s.settled_at, reverse=True)
