"""
tests/integration/test_expenses_api.py — Expense endpoints end to end.

Endpoints covered:
  POST   /expenses       → 201
  GET    /expenses       → 200 (caller scoped, ?groupId=)
  GET    /expenses/:id   → 200 / 403 / 404
  PATCH  /expenses/:id   → 200 / 403
  DELETE /expenses/:id   → 200 / 403

Amounts appear as strings in JSON, never as JS numbers.
"""

from __future__ import annotations

from .conftest import auth_headers, make_expense, make_group, seed_user, token_for


def _three_users(app):
    return seed_user(app, "Asha"), seed_user(app, "Ben"), seed_user(app, "Chen")


# ═══════════════════════════════════════════════════════════════════════════
# Authentication
# ═══════════════════════════════════════════════════════════════════════════

class TestAuthentication:

    def test_missing_token_is_401(self, client):
        resp = client.get("/api/v1/expenses")

        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    def test_garbage_token_is_401(self, client):
        resp = client.get("/api/v1/expenses", headers={"Authorization": "Bearer not.a.jwt"})

        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_expired_token_is_401(self, app, client):
        from datetime import timedelta

        user = seed_user(app)
        token = token_for(app, user, expires_in=timedelta(seconds=-30))

        resp = client.get("/api/v1/expenses", headers={"Authorization": f"Bearer {token}"})

        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_EXPIRED"


# ═══════════════════════════════════════════════════════════════════════════
# Create
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateExpense:

    def test_equal_expense_returns_201(self, app, client):
        a, b, c = _three_users(app)

        resp = make_expense(client, app, a, [a, b, c])

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["warnings"] == []
        data = body["data"]
        assert data["amount"] == "300.00"
        assert data["paid_by"] == a
        assert data["split_type"] == "EQUAL"
        assert data["split_between"] == [a, b, c]
        assert data["split_details"] is None
        assert data["date"] == "2026-01-15"

    def test_unequal_expense_keeps_details_in_participant_order(self, app, client):
        a, b, _ = _three_users(app)

        resp = make_expense(
            client, app, a, [a, b],
            amount="90.00",
            split_type="UNEQUAL",
            split_details=[{"user_id": b, "amount": "60.00"}, {"user_id": a, "amount": "30.00"}],
        )

        assert resp.status_code == 201
        details = resp.get_json()["data"]["split_details"]
        assert details == [{"user_id": a, "amount": "30.00"}, {"user_id": b, "amount": "60.00"}]

    def test_invited_user_is_added_to_split(self, app, client):
        a, _, _ = _three_users(app)

        resp = make_expense(
            client, app, a, [a],
            invited_users=[{"name": "Dana", "mobile": "+91 98765 43210"}],
        )

        assert resp.status_code == 201
        split = resp.get_json()["data"]["split_between"]
        assert len(split) == 2 and split[0] == a

    def test_sum_mismatch_is_422(self, app, client):
        a, b, _ = _three_users(app)

        resp = make_expense(
            client, app, a, [a, b],
            amount="90.00",
            split_type="UNEQUAL",
            split_details=[{"user_id": a, "amount": "30.00"}, {"user_id": b, "amount": "50.00"}],
        )

        assert resp.status_code == 422
        error = resp.get_json()["error"]
        assert error["code"] == "SPLIT_SUM_MISMATCH"
        assert error["category"] == "VALIDATION_FAILURE"

    def test_amount_precision_is_400(self, app, client):
        a, b, _ = _three_users(app)

        resp = make_expense(client, app, a, [a, b], amount="10.001")

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_AMOUNT_PRECISION"

    def test_missing_title_is_400(self, app, client):
        a, _, _ = _three_users(app)

        resp = client.post(
            "/api/v1/expenses",
            json={"amount": "5.00", "date": "2026-01-01", "category": "Food", "split_between": [a]},
            headers=auth_headers(app, a),
        )

        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "MISSING_FIELD"
        assert error["field"] == "title"

    def test_blank_title_is_422(self, app, client):
        a, _, _ = _three_users(app)

        resp = make_expense(client, app, a, [a], title="   ")

        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "BLANK_FIELD"

    def test_unknown_participant_is_404(self, app, client):
        a, _, _ = _three_users(app)

        resp = make_expense(client, app, a, [a, "00000000-0000-0000-0000-000000000000"])

        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "USER_NOT_FOUND"

    def test_group_outsider_participant_is_403(self, app, client):
        a, b, c = _three_users(app)
        group = make_group(client, app, a, [b])

        resp = make_expense(client, app, a, [a, c], group_id=group["id"])

        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "SPLIT_USER_NOT_MEMBER"

    def test_nothing_persisted_on_failure(self, app, client):
        a, b, _ = _three_users(app)

        make_expense(client, app, a, [a, b], amount="-5.00")

        listed = client.get("/api/v1/expenses", headers=auth_headers(app, a)).get_json()["data"]
        assert listed == []


# ═══════════════════════════════════════════════════════════════════════════
# Read
# ═══════════════════════════════════════════════════════════════════════════

class TestReadExpenses:

    def test_list_is_caller_scoped(self, app, client):
        a, b, c = _three_users(app)
        make_expense(client, app, a, [a, b], title="Shared")
        make_expense(client, app, c, [c], title="Private")

        listed = client.get("/api/v1/expenses", headers=auth_headers(app, b)).get_json()["data"]

        assert [e["title"] for e in listed] == ["Shared"]

    def test_list_by_group_requires_membership(self, app, client):
        a, b, c = _three_users(app)
        group = make_group(client, app, a, [b])
        make_expense(client, app, a, [a, b], group_id=group["id"])

        member = client.get(f"/api/v1/expenses?groupId={group['id']}", headers=auth_headers(app, b))
        outsider = client.get(f"/api/v1/expenses?groupId={group['id']}", headers=auth_headers(app, c))

        assert member.status_code == 200
        assert len(member.get_json()["data"]) == 1
        assert outsider.status_code == 403

    def test_get_by_participant_and_outsider(self, app, client):
        a, b, c = _three_users(app)
        expense_id = make_expense(client, app, a, [a, b]).get_json()["data"]["id"]

        assert client.get(f"/api/v1/expenses/{expense_id}", headers=auth_headers(app, b)).status_code == 200
        assert client.get(f"/api/v1/expenses/{expense_id}", headers=auth_headers(app, c)).status_code == 403

    def test_get_unknown_is_404(self, app, client):
        a, _, _ = _three_users(app)

        resp = client.get("/api/v1/expenses/does-not-exist", headers=auth_headers(app, a))

        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "EXPENSE_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# Update and delete
# ═══════════════════════════════════════════════════════════════════════════

class TestUpdateAndDelete:

    def test_payer_patches_split(self, app, client):
        a, b, c = _three_users(app)
        expense_id = make_expense(client, app, a, [a, b]).get_json()["data"]["id"]

        resp = client.patch(
            f"/api/v1/expenses/{expense_id}",
            json={"split_between": [a, b, c], "title": "Bigger dinner"},
            headers=auth_headers(app, a),
        )

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["title"] == "Bigger dinner"
        assert data["split_between"] == [a, b, c]
        assert data["amount"] == "300.00"

    def test_patch_to_unequal_then_back_to_equal(self, app, client):
        a, b, _ = _three_users(app)
        expense_id = make_expense(client, app, a, [a, b], amount="90.00").get_json()["data"]["id"]

        unequal = client.patch(
            f"/api/v1/expenses/{expense_id}",
            json={
                "split_type": "UNEQUAL",
                "split_details": [{"user_id": a, "amount": "30.00"}, {"user_id": b, "amount": "60.00"}],
            },
            headers=auth_headers(app, a),
        )
        equal = client.patch(
            f"/api/v1/expenses/{expense_id}",
            json={"split_type": "EQUAL"},
            headers=auth_headers(app, a),
        )

        assert unequal.status_code == 200
        assert unequal.get_json()["data"]["split_details"][1] == {"user_id": b, "amount": "60.00"}
        assert equal.status_code == 200
        assert equal.get_json()["data"]["split_details"] is None

    def test_non_payer_patch_is_403(self, app, client):
        a, b, _ = _three_users(app)
        expense_id = make_expense(client, app, a, [a, b]).get_json()["data"]["id"]

        resp = client.patch(
            f"/api/v1/expenses/{expense_id}",
            json={"title": "Hijacked"},
            headers=auth_headers(app, b),
        )

        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "NOT_EXPENSE_PAYER"

    def test_payer_deletes(self, app, client):
        a, b, _ = _three_users(app)
        expense_id = make_expense(client, app, a, [a, b]).get_json()["data"]["id"]

        resp = client.delete(f"/api/v1/expenses/{expense_id}", headers=auth_headers(app, a))

        assert resp.status_code == 200
        assert resp.get_json()["data"] == {"deleted": True, "expense_id": expense_id}
        gone = client.get(f"/api/v1/expenses/{expense_id}", headers=auth_headers(app, a))
        assert gone.status_code == 404

    def test_participant_delete_is_403(self, app, client):
        a, b, _ = _three_users(app)
        expense_id = make_expense(client, app, a, [a, b]).get_json()["data"]["id"]

        resp = client.delete(f"/api/v1/expenses/{expense_id}", headers=auth_headers(app, b))

        assert resp.status_code == 403
