"""
routes/groups.py — Group route handlers.

Layer rules:
  - Parse, validate, call ONE service, return envelope.
  - No business logic. No DB queries.

Endpoints (url_prefix=/api/v1/groups):
  POST   /groups      → 201  create group (caller is creator and first member)
  GET    /groups      → 200  groups the caller created or belongs to
  GET    /groups/:id  → 200  one group (members only)
  PATCH  /groups/:id  → 200  rename and/or add members (creator only)
  DELETE /groups/:id  → 200  delete with expense cascade (creator only)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from splitbook.app.extensions import get_directory, get_store
from splitbook.app.middleware.auth_middleware import require_auth
from splitbook.app.schemas.group_schema import CreateGroupSchema, UpdateGroupSchema
from splitbook.app.services import group_service
from splitbook.app.store.records import GroupRecord

groups_bp = Blueprint("groups", __name__)


def _serialize_group(group: GroupRecord) -> dict:
    return {
        "id": group.id,
        "name": group.name,
        "created_by": group.created_by,
        "members": list(group.members),
        "created_at": group.created_at.isoformat() if group.created_at else None,
    }


@groups_bp.route("", methods=["POST"])
@require_auth
def create_group():
    data = CreateGroupSchema().load(request.get_json(force=True) or {})
    group = group_service.create_group(
        store=get_store(),
        directory=get_directory(),
        caller_id=g.user_id,
        name=data["name"],
        members=data["members"],
        invited_users=data["invited_users"],
    )
    return jsonify({"data": _serialize_group(group), "warnings": []}), 201


@groups_bp.route("", methods=["GET"])
@require_auth
def list_groups():
    groups = group_service.list_groups(get_store(), g.user_id)
    return jsonify({"data": [_serialize_group(gr) for gr in groups], "warnings": []}), 200


@groups_bp.route("/<string:group_id>", methods=["GET"])
@require_auth
def get_group(group_id: str):
    group = group_service.get_group(get_store(), group_id, g.user_id)
    return jsonify({"data": _serialize_group(group), "warnings": []}), 200


@groups_bp.route("/<string:group_id>", methods=["PATCH"])
@require_auth
def update_group(group_id: str):
    data = UpdateGroupSchema().load(request.get_json(force=True) or {})
    group = group_service.update_group(
        store=get_store(),
        directory=get_directory(),
        group_id=group_id,
        caller_id=g.user_id,
        name=data.get("name"),
        members=data.get("members"),
        invited_users=data["invited_users"],
    )
    return jsonify({"data": _serialize_group(group), "warnings": []}), 200


@groups_bp.route("/<string:group_id>", methods=["DELETE"])
@require_auth
def delete_group(group_id: str):
    """DELETE /groups/:id — removes the group and every expense scoped to it."""
    deleted_expenses = group_service.delete_group(get_store(), group_id, g.user_id)
    return jsonify({
        "data": {
            "deleted": True,
            "group_id": group_id,
            "deletedExpensesCount": deleted_expenses,
        },
        "warnings": [],
    }), 200
