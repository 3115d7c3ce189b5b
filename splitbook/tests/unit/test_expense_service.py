"""
Unit tests for expense_service: authorization, persistence through the store
interface and best-effort notifications.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from splitbook.app.errors import ErrorCode, Forbidden, NotFound, UpstreamFailure, ValidationFailure
from splitbook.app.services import expense_service
from splitbook.app.store.records import (
    ExpensePatch,
    GroupRecord,
    SplitDetail,
    SplitType,
)
from splitbook.tests.unit.fakes import FakeDirectory, FakeLedgerStore


@pytest.fixture
def store():
    store = FakeLedgerStore()
    store.groups.insert(GroupRecord(
        id="g1",
        name="Flat",
        created_by="u1",
        members=["u1", "u2", "u3"],
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    ))
    return store


@pytest.fixture
def directory():
    directory = FakeDirectory("u1", "u2", "u3", "u4")
    directory.users["u2"].push_token = "ExponentPushToken[u2-device]"
    directory.users["u3"].push_token = "ExponentPushToken[u3-device]"
    return directory


def _create(store, directory, caller="u1", notifier=None, **overrides):
    values = dict(
        title="Groceries",
        amount=Decimal("300"),
        date=date(2026, 1, 15),
        category="Food",
        split_between=["u1", "u2", "u3"],
    )
    values.update(overrides)
    return expense_service.create_expense(
        store, directory, caller, ExpensePatch(**values), notifier=notifier,
    )


# ── create ─────────────────────────────────────────────────────────────────

class TestCreate:

    def test_persists_normalized_expense(self, store, directory):
        expense = _create(store, directory)

        stored = store.expenses.get(expense.id)
        assert stored.paid_by == "u1"
        assert stored.split_between == ["u1", "u2", "u3"]
        assert stored.split_type == SplitType.EQUAL
        assert stored.created_at is not None

    def test_validation_failure_writes_nothing(self, store, directory):
        with pytest.raises(ValidationFailure):
            _create(store, directory, amount=Decimal("-1"))

        assert store.expenses.rows == {}

    def test_plain_receipt_url_is_stored_trimmed(self, store, directory):
        expense = _create(store, directory, receipt_url="  https://cdn.example.com/r.jpg ")

        assert expense.receipt_url == "https://cdn.example.com/r.jpg"

    def test_notifies_every_participant_except_creator(self, store, directory):
        notifier = MagicMock()

        expense = _create(store, directory, notifier=notifier)

        addresses = [c.args[0] for c in notifier.notify.call_args_list]
        assert addresses == ["ExponentPushToken[u2-device]", "ExponentPushToken[u3-device]"]
        _, title, body, metadata = notifier.notify.call_args_list[0].args
        assert title == "New Expense Added"
        assert body == 'U1 added "Groceries" (₹300). Pay ₹100.00.'
        assert metadata == {"expenseId": expense.id}

    def test_unequal_notification_quotes_detail_share(self, store, directory):
        notifier = MagicMock()

        _create(
            store, directory, notifier=notifier,
            amount=Decimal("90"),
            split_between=["u1", "u2"],
            split_type=SplitType.UNEQUAL,
            split_details=[
                SplitDetail(user_id="u1", amount=Decimal("30")),
                SplitDetail(user_id="u2", amount=Decimal("60")),
            ],
        )

        body = notifier.notify.call_args.args[2]
        assert body.endswith("Pay ₹60.00.")

    def test_notification_failure_does_not_fail_create(self, store, directory):
        notifier = MagicMock()
        notifier.notify.side_effect = [RuntimeError("push down"), None]

        expense = _create(store, directory, notifier=notifier)

        assert store.expenses.get(expense.id) is not None
        assert notifier.notify.call_count == 2

    def test_creator_lookup_failure_does_not_fail_create(self, store, directory):
        notifier = MagicMock()
        real_find = directory.find_by_id

        def flaky_find(user_id):
            if user_id == "u1" and store.expenses.rows:
                raise UpstreamFailure("directory down")
            return real_find(user_id)

        directory.find_by_id = flaky_find

        expense = _create(store, directory, notifier=notifier)

        assert list(store.expenses.rows) == [expense.id]
        body = notifier.notify.call_args_list[0].args[2]
        assert body.startswith('Someone added "Groceries"')

    def test_participants_without_push_token_are_skipped(self, store, directory):
        notifier = MagicMock()

        _create(store, directory, notifier=notifier, split_between=["u1", "u4"])

        notifier.notify.assert_not_called()


# ── update ─────────────────────────────────────────────────────────────────

class TestUpdate:

    def test_payer_can_patch_fields(self, store, directory):
        expense = _create(store, directory)

        updated = expense_service.update_expense(
            store, directory, expense.id, "u1",
            ExpensePatch(title="Weekly groceries", amount=Decimal("330")),
        )

        assert updated.title == "Weekly groceries"
        assert updated.amount == Decimal("330")
        assert updated.category == "Food"

    def test_non_payer_is_forbidden(self, store, directory):
        expense = _create(store, directory)

        with pytest.raises(Forbidden) as exc_info:
            expense_service.update_expense(
                store, directory, expense.id, "u2", ExpensePatch(title="Mine now"),
            )

        assert exc_info.value.code == ErrorCode.NOT_EXPENSE_PAYER
        assert store.expenses.get(expense.id).title == "Groceries"

    def test_missing_expense(self, store, directory):
        with pytest.raises(NotFound) as exc_info:
            expense_service.update_expense(store, directory, "nope", "u1", ExpensePatch(title="x"))

        assert exc_info.value.code == ErrorCode.EXPENSE_NOT_FOUND

    def test_empty_receipt_url_clears_receipt(self, store, directory):
        expense = _create(store, directory, receipt_url="https://cdn.example.com/r.jpg")

        updated = expense_service.update_expense(
            store, directory, expense.id, "u1", ExpensePatch(receipt_url=""),
        )

        assert updated.receipt_url is None

    def test_absent_receipt_url_keeps_receipt(self, store, directory):
        expense = _create(store, directory, receipt_url="https://cdn.example.com/r.jpg")

        updated = expense_service.update_expense(
            store, directory, expense.id, "u1", ExpensePatch(category="Household"),
        )

        assert updated.receipt_url == "https://cdn.example.com/r.jpg"


# ── delete / get / list ────────────────────────────────────────────────────

class TestDeleteAndRead:

    def test_payer_can_delete(self, store, directory):
        expense = _create(store, directory)

        expense_service.delete_expense(store, expense.id, "u1")

        assert store.expenses.get(expense.id) is None

    def test_participant_cannot_delete(self, store, directory):
        expense = _create(store, directory)

        with pytest.raises(Forbidden):
            expense_service.delete_expense(store, expense.id, "u2")

        assert store.expenses.get(expense.id) is not None

    def test_participant_can_view(self, store, directory):
        expense = _create(store, directory)

        assert expense_service.get_expense(store, expense.id, "u3").id == expense.id

    def test_group_member_outside_split_can_view(self, store, directory):
        expense = _create(store, directory, group_id="g1", split_between=["u1", "u2"])

        assert expense_service.get_expense(store, expense.id, "u3").id == expense.id

    def test_outsider_cannot_view(self, store, directory):
        expense = _create(store, directory)

        with pytest.raises(Forbidden):
            expense_service.get_expense(store, expense.id, "u4")

    def test_list_is_newest_first_and_caller_scoped(self, store, directory):
        older = _create(store, directory, date=date(2026, 1, 1))
        newer = _create(store, directory, date=date(2026, 2, 1), split_between=["u1", "u2"])
        _create(store, directory, caller="u4", split_between=["u4"])

        listed = expense_service.list_expenses(store, "u2")

        assert [e.id for e in listed] == [newer.id, older.id]

    def test_group_listing_requires_membership(self, store, directory):
        _create(store, directory, group_id="g1")

        assert len(expense_service.list_group_expenses(store, "g1", "u3")) == 1
        with pytest.raises(Forbidden):
            expense_service.list_group_expenses(store, "g1", "u4")
