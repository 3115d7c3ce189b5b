"""Unit tests for settlement_service."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from splitbook.app.errors import ErrorCode, Forbidden, NotFound, ValidationFailure
from splitbook.app.services import settlement_service
from splitbook.app.store.records import GroupRecord
from splitbook.tests.unit.fakes import FakeDirectory, FakeLedgerStore


@pytest.fixture
def store():
    store = FakeLedgerStore()
    store.groups.insert(GroupRecord(id="g1", name="Flat", created_by="u1", members=["u1", "u2", "u3"]))
    return store


@pytest.fixture
def directory():
    return FakeDirectory("u1", "u2", "u3", "u4")


def test_records_settlement_between_parties(store, directory):
    settlement = settlement_service.create_settlement(
        store, directory, "u2", "u2", "u1", Decimal("100"), note="  cash  ",
    )

    stored = store.settlements.rows[settlement.id]
    assert stored.amount == Decimal("100")
    assert stored.created_by == "u2"
    assert stored.note == "cash"
    assert stored.settled_at.tzinfo is not None


def test_naive_settled_at_is_treated_as_utc(store, directory):
    settlement = settlement_service.create_settlement(
        store, directory, "u1", "u2", "u1", Decimal("10"),
        settled_at=datetime(2026, 1, 5, 9, 30),
    )

    assert settlement.settled_at == datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc)


def test_self_settlement_is_rejected(store, directory):
    with pytest.raises(ValidationFailure) as exc_info:
        settlement_service.create_settlement(store, directory, "u1", "u1", "u1", Decimal("10"))

    assert exc_info.value.code == ErrorCode.SELF_SETTLEMENT
    assert store.settlements.rows == {}


def test_unknown_party_is_not_found(store, directory):
    with pytest.raises(NotFound) as exc_info:
        settlement_service.create_settlement(store, directory, "u1", "u1", "ghost", Decimal("10"))

    assert exc_info.value.code == ErrorCode.USER_NOT_FOUND


def test_third_party_cannot_record_unscoped_settlement(store, directory):
    with pytest.raises(Forbidden) as exc_info:
        settlement_service.create_settlement(store, directory, "u3", "u2", "u1", Decimal("10"))

    assert exc_info.value.code == ErrorCode.NOT_SETTLEMENT_PARTY


def test_group_member_may_record_for_others(store, directory):
    settlement = settlement_service.create_settlement(
        store, directory, "u3", "u2", "u1", Decimal("10"), group_id="g1",
    )

    assert settlement.group_id == "g1"
    assert settlement.created_by == "u3"


def test_group_scoped_party_must_be_member(store, directory):
    with pytest.raises(Forbidden) as exc_info:
        settlement_service.create_settlement(
            store, directory, "u1", "u1", "u4", Decimal("10"), group_id="g1",
        )

    assert exc_info.value.code == ErrorCode.NOT_GROUP_MEMBER


def test_unknown_group_is_not_found(store, directory):
    with pytest.raises(NotFound) as exc_info:
        settlement_service.create_settlement(
            store, directory, "u1", "u1", "u2", Decimal("10"), group_id="nope",
        )

    assert exc_info.value.code == ErrorCode.GROUP_NOT_FOUND


def test_list_returns_callers_settlements_newest_first(store, directory):
    older = settlement_service.create_settlement(
        store, directory, "u1", "u1", "u2", Decimal("5"),
        settled_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )
    newer = settlement_service.create_settlement(
        store, directory, "u2", "u2", "u1", Decimal("7"),
        settled_at=datetime(2026, 2, 1, tzinfo=timezone.utc),
    )
    settlement_service.create_settlement(store, directory, "u3", "u3", "u4", Decimal("1"))

    listed = settlement_service.list_settlements(store, "u1")

    assert [s.id for s in listed] == [newer.id, older.id]


def test_list_with_group_requires_membership(store, directory):
    with pytest.raises(Forbidden):
        settlement_service.list_settlements(store, "u4", group_id="g1")
