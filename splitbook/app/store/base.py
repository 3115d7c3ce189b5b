"""
store/base.py — Storage adapter interfaces.

The ledger engine talks to durable state ONLY through these interfaces.
Services receive a LedgerStore and a UserDirectory as arguments and never
import a concrete backend, so swapping the backend never touches the engine.

Per-entity table contract:
  insert(record)          -> the stored record
  query(filter)           -> list of records; order is not significant
  patch(key, fields)      -> True if a row with that key was updated
  delete(filter)          -> number of rows removed

Each mutating call is atomic on its own. There is no cross-call transaction:
concurrent updates to the same key are last-writer-wins.
LedgerStore.delete_group_with_expenses is the one write spanning tables, and
it too is a single atomic call.

Implementations must raise UpstreamFailure (never a driver exception) when
the backend itself fails.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from splitbook.app.store.records import (
    ExpenseFilter,
    ExpenseRecord,
    GroupFilter,
    GroupRecord,
    SettlementFilter,
    SettlementRecord,
    UserRecord,
)


class ExpenseTable(ABC):

    @abstractmethod
    def insert(self, record: ExpenseRecord) -> ExpenseRecord: ...

    @abstractmethod
    def query(self, flt: ExpenseFilter) -> list[ExpenseRecord]: ...

    @abstractmethod
    def patch(self, expense_id: str, fields: dict[str, Any]) -> bool: ...

    @abstractmethod
    def delete(self, flt: ExpenseFilter) -> int: ...

    def get(self, expense_id: str) -> ExpenseRecord | None:
        rows = self.query(ExpenseFilter(id=expense_id))
        return rows[0] if rows else None


class SettlementTable(ABC):
    """Settlements are immutable: there is no patch and no public delete route."""

    @abstractmethod
    def insert(self, record: SettlementRecord) -> SettlementRecord: ...

    @abstractmethod
    def query(self, flt: SettlementFilter) -> list[SettlementRecord]: ...


class GroupTable(ABC):

    @abstractmethod
    def insert(self, record: GroupRecord) -> GroupRecord: ...

    @abstractmethod
    def query(self, flt: GroupFilter) -> list[GroupRecord]: ...

    @abstractmethod
    def patch(self, group_id: str, fields: dict[str, Any]) -> bool: ...

    @abstractmethod
    def delete(self, flt: GroupFilter) -> int: ...

    def get(self, group_id: str) -> GroupRecord | None:
        rows = self.query(GroupFilter(id=group_id))
        return rows[0] if rows else None


class LedgerStore(ABC):
    """Bundle of the three ledger tables handed to service functions."""

    expenses: ExpenseTable
    settlements: SettlementTable
    groups: GroupTable

    @abstractmethod
    def delete_group_with_expenses(self, group_id: str) -> int:
        """
        Removes a group and every expense scoped to it in one atomic write.

        Returns the number of expenses removed. Settlements are left alone.
        """


class UserDirectory(ABC):
    """
    External user directory.

    provision_invited_user is idempotent by mobile number: inviting a mobile
    number that already belongs to a user renames that user and returns it.
    """

    @abstractmethod
    def find_by_id(self, user_id: str) -> UserRecord | None: ...

    @abstractmethod
    def provision_invited_user(self, name: str, mobile: str | None = None) -> UserRecord: ...

    @abstractmethod
    def set_push_token(self, user_id: str, push_token: str) -> UserRecord | None: ...
