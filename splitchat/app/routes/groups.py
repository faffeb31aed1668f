"""
routes/groups.py — Group and membership route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/groups):
  POST   /groups                          → 201  create group (caller is admin)
  GET    /groups/:id                      → 200  group, members and current event
  POST   /groups/:id/members              → 201  add member (admin only)
  DELETE /groups/:id/members/:username    → 200  remove member (admin or self)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from splitchat.app.extensions import db
from splitchat.app.middleware.identity_middleware import require_user
from splitchat.app.relay import relay
from splitchat.app.schemas.group_schema import AddMemberSchema, CreateGroupSchema
from splitchat.app.schemas.ledger_schema import dump_group_state
from splitchat.app.services import event_service, group_service, user_service

groups_bp = Blueprint("groups", __name__)


@groups_bp.route("/", methods=["POST"])
@require_user
def create_group():
    """POST /groups — Create a new group. Caller becomes admin and first member."""
    data = CreateGroupSchema().load(request.get_json(force=True) or {})
    group = group_service.create_group(
        name=data["name"].strip(),
        admin_username=g.username,
        session=db.session,
    )
    db.session.commit()
    state = event_service.get_group_state(group.id, session=db.session)
    return jsonify({"data": dump_group_state(state), "warnings": []}), 201


@groups_bp.route("/<group_id>", methods=["GET"])
@require_user
def get_group(group_id: str):
    """GET /groups/:id — Full group state. Caller must be a member."""
    state = event_service.get_state_for(group_id, caller=g.username, session=db.session)
    return jsonify({"data": dump_group_state(state), "warnings": []}), 200


@groups_bp.route("/<group_id>/members", methods=["POST"])
@require_user
def add_member(group_id: str):
    """POST /groups/:id/members — Add a user to the group. Admin only."""
    data = AddMemberSchema().load(request.get_json(force=True) or {})
    user = group_service.add_member(
        group_id=group_id,
        caller=g.username,
        username=data["username"].strip(),
        session=db.session,
    )
    db.session.commit()
    _publish_members(group_id)
    return jsonify({
        "data": {"group_id": group_id, **user_service.serialize_user(user)},
        "warnings": [],
    }), 201


@groups_bp.route("/<group_id>/members/<username>", methods=["DELETE"])
@require_user
def remove_member(group_id: str, username: str):
    """DELETE /groups/:id/members/:username — Admin removes anyone; a member removes self."""
    group_service.remove_member(
        group_id=group_id,
        caller=g.username,
        username=username,
        session=db.session,
    )
    db.session.commit()
    _publish_members(group_id)
    return jsonify({
        "data": {
            "removed": True,
            "group_id": group_id,
            "username": username,
        },
        "warnings": [],
    }), 200


def _publish_members(group_id: str) -> None:
    """Sends the committed member list to clients watching the group."""
    state = event_service.get_group_state(group_id, session=db.session)
    relay.publish_members(state, origin=g.username)
