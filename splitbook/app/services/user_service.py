"""
services/user_service.py — Thin wrappers over the user directory.

Accounts and credentials belong to the external identity service. This
module only covers what the ledger itself needs: inviting a person by name
and mobile so they can be split with, and registering a device push token.
"""

from __future__ import annotations

from splitbook.app.errors import ErrorCode, Forbidden, NotFound
from splitbook.app.store.base import UserDirectory
from splitbook.app.store.records import UserRecord


def get_user(directory: UserDirectory, user_id: str) -> UserRecord:
    user = directory.find_by_id(user_id)
    if user is None:
        raise NotFound(ErrorCode.USER_NOT_FOUND, f"User {user_id} not found.")
    return user


def invite_user(directory: UserDirectory, name: str, mobile: str | None = None) -> UserRecord:
    """Idempotent by mobile: re-inviting a known number renames that user."""
    return directory.provision_invited_user(name.strip(), mobile)


def register_push_token(
        directory: UserDirectory,
        user_id: str,
        caller_id: str,
        push_token: str,
) -> UserRecord:
    if user_id != caller_id:
        raise Forbidden("You can only register a push token for yourself.")
    user = directory.set_push_token(user_id, push_token.strip())
    if user is None:
        raise NotFound(ErrorCode.USER_NOT_FOUND, f"User {user_id} not found.")
    return user
