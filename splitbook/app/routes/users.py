"""
routes/users.py — User directory route handlers.

Endpoints (url_prefix=/api/v1/users):
  GET   /users/me              → 200  the caller's directory entry
  POST  /users/invite          → 201  invite a person by name and mobile
  POST  /users/:id/push-token  → 200  register the caller's device push token
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from splitbook.app.extensions import get_directory
from splitbook.app.middleware.auth_middleware import require_auth
from splitbook.app.schemas.user_schema import InviteUserSchema, PushTokenSchema
from splitbook.app.services import user_service
from splitbook.app.store.records import UserRecord

users_bp = Blueprint("users", __name__)


def _serialize_user(user: UserRecord) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "mobile": user.mobile,
        "email": user.email,
    }


@users_bp.route("/me", methods=["GET"])
@require_auth
def get_me():
    user = user_service.get_user(get_directory(), g.user_id)
    return jsonify({"data": _serialize_user(user), "warnings": []}), 200


@users_bp.route("/invite", methods=["POST"])
@require_auth
def invite_user():
    invited = InviteUserSchema().load(request.get_json(force=True) or {})
    user = user_service.invite_user(get_directory(), invited.name, invited.mobile)
    return jsonify({"data": _serialize_user(user), "warnings": []}), 201


@users_bp.route("/<string:user_id>/push-token", methods=["POST"])
@require_auth
def register_push_token(user_id: str):
    data = PushTokenSchema().load(request.get_json(force=True) or {})
    user_service.register_push_token(get_directory(), user_id, g.user_id, data["push_token"])
    return jsonify({"data": {"registered": True}, "warnings": []}), 200
