"""
services/group_service.py — Group business logic.

Authorization rules:
  - Create:  any authenticated user; the creator is always a member
  - Read:    members only (403 for non-members)
  - Update:  creator only; rename and/or ADD members (nobody is removed)
  - Delete:  creator only; deletes every expense scoped to the group first,
             then the group itself, and reports how many expenses went

Settlements that referenced a deleted group keep their group_id. They are
immutable history and still count toward each party's balance.

Layer rules:
  - No Flask imports. Receives the store and directory as arguments.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from splitbook.app.errors import ErrorCode, Forbidden, NotFound, ValidationFailure
from splitbook.app.services import membership_service
from splitbook.app.store.base import LedgerStore, UserDirectory
from splitbook.app.store.records import (
    GroupFilter,
    GroupRecord,
    InvitedUser,
)

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationFailure(ErrorCode.BLANK_FIELD, "Group name must not be blank.", field="name")
    return cleaned


def _require_creator(group: GroupRecord, caller_id: str, action: str) -> None:
    if group.created_by != caller_id:
        raise Forbidden(
            f"Only the group creator can {action} this group.",
            code=ErrorCode.NOT_GROUP_CREATOR,
        )


def _resolve_members(
        directory: UserDirectory,
        member_ids: list[str],
        invited_users: list[InvitedUser],
) -> list[str]:
    """Checks every listed member exists, then provisions invited users."""
    cleaned = [uid.strip() for uid in member_ids if uid and uid.strip()]
    for uid in cleaned:
        if directory.find_by_id(uid) is None:
            raise NotFound(ErrorCode.USER_NOT_FOUND, f"User {uid} not found.", field="members")
    invited_ids = [
        directory.provision_invited_user(invited.name, invited.mobile).id
        for invited in invited_users
    ]
    return [*cleaned, *invited_ids]


def _dedupe(ids: list[str]) -> list[str]:
    return list(dict.fromkeys(ids))


# ── Public service functions ───────────────────────────────────────────────

def create_group(
        store: LedgerStore,
        directory: UserDirectory,
        caller_id: str,
        name: str,
        members: list[str] | None = None,
        invited_users: list[InvitedUser] | None = None,
) -> GroupRecord:
    name = _clean_name(name)
    resolved = _resolve_members(directory, members or [], invited_users or [])

    group = store.groups.insert(GroupRecord(
        id=str(uuid.uuid4()),
        name=name,
        created_by=caller_id,
        members=_dedupe([caller_id, *resolved]),
        created_at=datetime.now(timezone.utc),
    ))
    logger.info("Group %s created by %s with %d members", group.id, caller_id, len(group.members))
    return group


def update_group(
        store: LedgerStore,
        directory: UserDirectory,
        group_id: str,
        caller_id: str,
        name: str | None = None,
        members: list[str] | None = None,
        invited_users: list[InvitedUser] | None = None,
) -> GroupRecord:
    group = membership_service.get_group_or_404(store, group_id)
    _require_creator(group, caller_id, "update")

    fields: dict = {}
    if name is not None:
        fields["name"] = _clean_name(name)

    if members or invited_users:
        added = _resolve_members(directory, members or [], invited_users or [])
        fields["members"] = _dedupe([*group.members, *added])

    if fields and not store.groups.patch(group_id, fields):
        raise NotFound(ErrorCode.GROUP_NOT_FOUND, f"Group {group_id} does not exist.")

    return membership_service.get_group_or_404(store, group_id)


def delete_group(store: LedgerStore, group_id: str, caller_id: str) -> int:
    """Returns the number of expenses deleted along with the group."""
    group = membership_service.get_group_or_404(store, group_id)
    _require_creator(group, caller_id, "delete")

    deleted_expenses = store.delete_group_with_expenses(group_id)
    logger.info(
        "Group %s deleted by %s; %d expenses removed",
        group_id, caller_id, deleted_expenses,
    )
    return deleted_expenses


def get_group(store: LedgerStore, group_id: str, caller_id: str) -> GroupRecord:
    return membership_service.load_group_for_member(store, group_id, caller_id)


def list_groups(store: LedgerStore, caller_id: str) -> list[GroupRecord]:
    """Groups the caller created or belongs to, oldest first."""
    by_id: dict[str, GroupRecord] = {}
    for group in [
        *store.groups.query(GroupFilter(member=caller_id)),
        *store.groups.query(GroupFilter(created_by=caller_id)),
    ]:
        by_id.setdefault(group.id, group)
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(by_id.values(), key=lambda g: g.created_at or epoch)
