"""
routes/expenses.py — Expense, settlement, balance and analytics handlers.

Layer rules:
  - Parse, validate, call ONE service, return envelope.
  - No business logic. No DB queries. No commits (the store commits each
    mutating call itself).
  - _serialize_expense() is a pure data-shape helper, not business logic.

Endpoints (url_prefix=/api/v1/expenses):
  GET    /expenses                    → 200  caller's expenses (?groupId= for one group)
  POST   /expenses                    → 201  create expense
  GET    /expenses/balance            → 200  unwindowed balance summary
  GET    /expenses/analytics/summary  → 200  windowed analytics (?timeFilter=&groupId=)
  POST   /expenses/settlements        → 201  record a settlement
  GET    /expenses/settlements        → 200  caller's settlements (?groupId=)
  GET    /expenses/:id                → 200  one expense
  PATCH  /expenses/:id                → 200  partial update (payer only)
  DELETE /expenses/:id                → 200  delete (payer only)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from splitbook.app.extensions import get_directory, get_store, notifier, receipts
from splitbook.app.middleware.auth_middleware import require_auth
from splitbook.app.schemas.analytics_schema import AnalyticsQuerySchema
from splitbook.app.schemas.expense_schema import CreateExpenseSchema, PatchExpenseSchema
from splitbook.app.schemas.settlement_schema import (
    CreateSettlementSchema,
    ListSettlementsQuerySchema,
)
from splitbook.app.services import (
    analytics_service,
    balance_service,
    expense_service,
    settlement_service,
)
from splitbook.app.store.records import ExpensePatch, ExpenseRecord, SettlementRecord

expenses_bp = Blueprint("expenses", __name__)


# ── Serialization helpers ──────────────────────────────────────────────────
# Pure data-shaping with no DB access. Amounts serialize as strings.

def _serialize_expense(expense: ExpenseRecord) -> dict:
    return {
        "id": expense.id,
        "title": expense.title,
        "amount": expense.amount,
        "date": expense.date.isoformat(),
        "category": expense.category,
        "receipt_url": expense.receipt_url,
        "group_id": expense.group_id,
        "paid_by": expense.paid_by,
        "split_type": expense.split_type.value,
        "split_between": list(expense.split_between),
        "split_details": (
            [{"user_id": d.user_id, "amount": d.amount} for d in expense.split_details]
            if expense.split_details is not None else None
        ),
        "created_at": expense.created_at.isoformat() if expense.created_at else None,
        "updated_at": expense.updated_at.isoformat() if expense.updated_at else None,
    }


def _serialize_settlement(settlement: SettlementRecord) -> dict:
    return {
        "id": settlement.id,
        "from_user_id": settlement.from_user_id,
        "to_user_id": settlement.to_user_id,
        "amount": settlement.amount,
        "group_id": settlement.group_id,
        "note": settlement.note,
        "settled_at": settlement.settled_at.isoformat(),
        "created_at": settlement.created_at.isoformat(),
        "created_by": settlement.created_by,
    }


# ── Expense collection ─────────────────────────────────────────────────────

@expenses_bp.route("", methods=["GET"])
@require_auth
def list_expenses():
    """GET /expenses — caller's expenses, or one group's with ?groupId=."""
    group_id = request.args.get("groupId")
    store = get_store()
    if group_id:
        expenses = expense_service.list_group_expenses(store, group_id, g.user_id)
    else:
        expenses = expense_service.list_expenses(store, g.user_id)
    return jsonify({
        "data": [_serialize_expense(e) for e in expenses],
        "warnings": [],
    }), 200


@expenses_bp.route("", methods=["POST"])
@require_auth
def create_expense():
    data = CreateExpenseSchema().load(request.get_json(force=True) or {})
    expense = expense_service.create_expense(
        store=get_store(),
        directory=get_directory(),
        caller_id=g.user_id,
        patch=ExpensePatch.from_dict(data),
        notifier=notifier,
        receipts=receipts,
    )
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 201


# ── Summaries ──────────────────────────────────────────────────────────────

@expenses_bp.route("/balance", methods=["GET"])
@require_auth
def get_balance():
    summary = balance_service.get_user_balance(get_store(), g.user_id)
    return jsonify({"data": summary.to_dict(), "warnings": []}), 200


@expenses_bp.route("/analytics/summary", methods=["GET"])
@require_auth
def get_analytics_summary():
    query = AnalyticsQuerySchema().load(request.args)
    summary = analytics_service.get_analytics_summary(
        get_store(),
        g.user_id,
        time_filter=query["time_filter"],
        group_id=query["group_id"],
    )
    return jsonify({"data": summary, "warnings": []}), 200


# ── Settlements ────────────────────────────────────────────────────────────

@expenses_bp.route("/settlements", methods=["POST"])
@require_auth
def create_settlement():
    data = CreateSettlementSchema().load(request.get_json(force=True) or {})
    settlement = settlement_service.create_settlement(
        store=get_store(),
        directory=get_directory(),
        caller_id=g.user_id,
        from_user_id=data["from_user_id"],
        to_user_id=data["to_user_id"],
        amount=data["amount"],
        group_id=data["group_id"],
        settled_at=data["settled_at"],
        note=data["note"],
    )
    return jsonify({"data": _serialize_settlement(settlement), "warnings": []}), 201


@expenses_bp.route("/settlements", methods=["GET"])
@require_auth
def list_settlements():
    query = ListSettlementsQuerySchema().load(request.args)
    settlements = settlement_service.list_settlements(
        get_store(), g.user_id, group_id=query["group_id"],
    )
    return jsonify({
        "data": [_serialize_settlement(s) for s in settlements],
        "warnings": [],
    }), 200


# ── Expense-ID routes ──────────────────────────────────────────────────────

@expenses_bp.route("/<string:expense_id>", methods=["GET"])
@require_auth
def get_expense(expense_id: str):
    expense = expense_service.get_expense(get_store(), expense_id, g.user_id)
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200


@expenses_bp.route("/<string:expense_id>", methods=["PATCH"])
@require_auth
def update_expense(expense_id: str):
    """
    PATCH /expenses/:id — Partial update by the payer.
    Absent fields keep their stored values; the merged expense is re-validated.
    """
    data = PatchExpenseSchema().load(request.get_json(force=True) or {})
    expense = expense_service.update_expense(
        store=get_store(),
        directory=get_directory(),
        expense_id=expense_id,
        caller_id=g.user_id,
        patch=ExpensePatch.from_dict(data),
        receipts=receipts,
    )
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200


@expenses_bp.route("/<string:expense_id>", methods=["DELETE"])
@require_auth
def delete_expense(expense_id: str):
    expense_service.delete_expense(get_store(), expense_id, g.user_id)
    return jsonify({
        "data": {
            "deleted": True,
            "expense_id": expense_id,
        },
        "warnings": [],
    }), 200
