"""
services/membership_service.py — Group membership questions.

Answers "does G exist", "who are the members of G" and "is U a member of G"
from the group table of the ledger store. Every authorization check on a
group-scoped operation goes through here.

Layer rules:
  - No Flask imports. Receives a LedgerStore and plain string ids.
  - Raises AppError subclasses; never returns an HTTP response.
"""

from __future__ import annotations

from splitbook.app.errors import ErrorCode, Forbidden, NotFound
from splitbook.app.store.base import LedgerStore
from splitbook.app.store.records import GroupRecord


def get_group_or_404(store: LedgerStore, group_id: str) -> GroupRecord:
    """Returns the GroupRecord or raises GROUP_NOT_FOUND (404)."""
    group = store.groups.get(group_id)
    if group is None:
        raise NotFound(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            field="group_id",
        )
    return group


def group_exists(store: LedgerStore, group_id: str) -> bool:
    return store.groups.get(group_id) is not None


def member_ids(store: LedgerStore, group_id: str) -> list[str]:
    return list(get_group_or_404(store, group_id).members)


def is_member(group: GroupRecord, user_id: str) -> bool:
    return user_id in group.members


def require_member(
        group: GroupRecord,
        user_id: str,
        code: str = ErrorCode.NOT_GROUP_MEMBER,
        message: str | None = None,
) -> None:
    """
    Raises Forbidden (403) if user_id is not a member of the group.
    Non-members receive 403, not 404: the group's existence is not a secret
    once the caller has its id.
    """
    if not is_member(group, user_id):
        raise Forbidden(
            message or f"You are not a member of group {group.id}.",
            code=code,
        )


def load_group_for_member(store: LedgerStore, group_id: str, user_id: str) -> GroupRecord:
    """Existence (404) first, then membership (403)."""
    group = get_group_or_404(store, group_id)
    require_member(group, user_id)
    return group
