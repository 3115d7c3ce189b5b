"""
tests/integration/test_groups_api.py — Group endpoints end to end.

Endpoints covered:
  POST   /groups      → 201
  GET    /groups      → 200
  GET    /groups/:id  → 200 / 403 / 404
  PATCH  /groups/:id  → 200 / 403
  DELETE /groups/:id  → 200 with deletedExpensesCount, then 404
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from splitbook.app.errors import UpstreamFailure
from splitbook.app.extensions import db
from splitbook.app.store.sql_store import SqlLedgerStore

from .conftest import auth_headers, make_expense, make_group, seed_user, settle


class TestCreateAndRead:

    def test_creator_is_first_member(self, app, client):
        a, b = seed_user(app, "Asha"), seed_user(app, "Ben")

        group = make_group(client, app, a, [b, a], name="  Flatmates ")

        assert group["name"] == "Flatmates"
        assert group["created_by"] == a
        assert group["members"] == [a, b]

    def test_blank_name_is_400(self, app, client):
        a = seed_user(app)

        resp = client.post("/api/v1/groups", json={"name": "   "}, headers=auth_headers(app, a))

        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "name"

    def test_unknown_member_is_404(self, app, client):
        a = seed_user(app)

        resp = client.post(
            "/api/v1/groups",
            json={"name": "Trip", "members": ["missing-user"]},
            headers=auth_headers(app, a),
        )

        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "USER_NOT_FOUND"

    def test_list_only_shows_callers_groups(self, app, client):
        a, b, c = seed_user(app, "Asha"), seed_user(app, "Ben"), seed_user(app, "Chen")
        make_group(client, app, a, [b], name="Shared")
        make_group(client, app, c, [], name="Solo")

        listed = client.get("/api/v1/groups", headers=auth_headers(app, b)).get_json()["data"]

        assert [g["name"] for g in listed] == ["Shared"]

    def test_non_member_read_is_403(self, app, client):
        a, c = seed_user(app, "Asha"), seed_user(app, "Chen")
        group = make_group(client, app, a, [])

        resp = client.get(f"/api/v1/groups/{group['id']}", headers=auth_headers(app, c))

        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "NOT_GROUP_MEMBER"


class TestUpdate:

    def test_creator_renames_and_adds_members(self, app, client):
        a, b, c = seed_user(app, "Asha"), seed_user(app, "Ben"), seed_user(app, "Chen")
        group = make_group(client, app, a, [b])

        resp = client.patch(
            f"/api/v1/groups/{group['id']}",
            json={"name": "Renamed", "members": [c]},
            headers=auth_headers(app, a),
        )

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["name"] == "Renamed"
        assert data["members"] == [a, b, c]

    def test_member_update_is_403(self, app, client):
        a, b = seed_user(app, "Asha"), seed_user(app, "Ben")
        group = make_group(client, app, a, [b])

        resp = client.patch(
            f"/api/v1/groups/{group['id']}",
            json={"name": "Mine"},
            headers=auth_headers(app, b),
        )

        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "NOT_GROUP_CREATOR"


class TestDelete:

    def test_delete_cascades_expenses(self, app, client):
        a, b = seed_user(app, "Asha"), seed_user(app, "Ben")
        group = make_group(client, app, a, [b])
        expense_ids = []
        for title in ("Rent", "Power", "Water"):
            resp = make_expense(client, app, a, [a, b], title=title, group_id=group["id"])
            assert resp.status_code == 201
            expense_ids.append(resp.get_json()["data"]["id"])
        make_expense(client, app, a, [a, b], title="Personal")
        assert settle(client, app, b, b, a, "50.00", group_id=group["id"]).status_code == 201

        resp = client.delete(f"/api/v1/groups/{group['id']}", headers=auth_headers(app, a))

        assert resp.status_code == 200
        assert resp.get_json()["data"] == {
            "deleted": True,
            "group_id": group["id"],
            "deletedExpensesCount": 3,
        }
        assert client.get(f"/api/v1/groups/{group['id']}", headers=auth_headers(app, a)).status_code == 404

        remaining = client.get("/api/v1/expenses", headers=auth_headers(app, a)).get_json()["data"]
        assert [e["title"] for e in remaining] == ["Personal"]

        settlements = client.get("/api/v1/expenses/settlements", headers=auth_headers(app, a)).get_json()["data"]
        assert len(settlements) == 1

        for expense_id in expense_ids:
            gone = client.get(f"/api/v1/expenses/{expense_id}", headers=auth_headers(app, a))
            assert gone.status_code == 404
            assert gone.get_json()["error"]["code"] == "EXPENSE_NOT_FOUND"

    def test_failed_commit_keeps_group_and_expenses(self, app, client):
        a, b = seed_user(app, "Asha"), seed_user(app, "Ben")
        group = make_group(client, app, a, [b])
        make_expense(client, app, a, [a, b], title="Rent", group_id=group["id"])

        with app.app_context():
            store = SqlLedgerStore(db.session)
            failure = OperationalError("COMMIT", {}, Exception("disk I/O error"))
            with patch.object(db.session, "commit", side_effect=failure):
                with pytest.raises(UpstreamFailure):
                    store.delete_group_with_expenses(group["id"])

        assert client.get(f"/api/v1/groups/{group['id']}", headers=auth_headers(app, a)).status_code == 200
        remaining = client.get("/api/v1/expenses", headers=auth_headers(app, a)).get_json()["data"]
        assert [e["title"] for e in remaining] == ["Rent"]

    def test_member_delete_is_403(self, app, client):
        a, b = seed_user(app, "Asha"), seed_user(app, "Ben")
        group = make_group(client, app, a, [b])

        resp = client.delete(f"/api/v1/groups/{group['id']}", headers=auth_headers(app, b))

        assert resp.status_code == 403
