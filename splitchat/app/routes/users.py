"""
routes/users.py — User route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/users):
  POST  /users              → 201  register a username (+ payment handle)
  GET   /users/:username    → 200  public profile
  PATCH /users/:username    → 200  update own payment handle / picture
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from splitchat.app.extensions import db
from splitchat.app.middleware.identity_middleware import require_user
from splitchat.app.schemas.user_schema import CreateUserSchema, UpdateUserSchema
from splitchat.app.services import user_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/", methods=["POST"])
def create_user():
    """POST /users — No identity header needed; this is how a username comes to exist."""
    data = CreateUserSchema().load(request.get_json(force=True) or {})
    data["username"] = data["username"].strip()
    user = user_service.create_user(data, session=db.session)
    db.session.commit()
    return jsonify({"data": user_service.serialize_user(user), "warnings": []}), 201


@users_bp.route("/<username>", methods=["GET"])
@require_user
def get_user(username: str):
    user = user_service.get_user_or_404(username, session=db.session)
    return jsonify({"data": user_service.serialize_user(user), "warnings": []}), 200


@users_bp.route("/<username>", methods=["PATCH"])
@require_user
def update_user(username: str):
    """PATCH /users/:username — Callers may only edit their own profile."""
    data = UpdateUserSchema().load(request.get_json(force=True) or {})
    user = user_service.update_user(
        username=username,
        caller=g.username,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": user_service.serialize_user(user), "warnings": []}), 200
