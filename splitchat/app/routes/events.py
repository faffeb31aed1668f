"""
routes/events.py — Event (outing) route handlers.

Every mutation is broadcast to the group's room through the relay AFTER the
commit, so clients only ever hear about persisted state.

Endpoints (base url_prefix=/api/v1/groups):
  PUT    /groups/:id/event            → 201 new event | 200 replaced
  GET    /groups/:id/event            → 200  current event (resync snapshot)
  DELETE /groups/:id/event            → 200  cancel (archive) the current event
  GET    /groups/:id/events/archive   → 200  cancelled events
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from splitchat.app.extensions import db
from splitchat.app.middleware.identity_middleware import require_user
from splitchat.app.relay import relay
from splitchat.app.schemas.event_schema import SetEventSchema, to_event
from splitchat.app.schemas.ledger_schema import dump_event
from splitchat.app.services import event_service

events_bp = Blueprint("events", __name__)


@events_bp.route("/<group_id>/event", methods=["PUT"])
@require_user
def set_event(group_id: str):
    """
    PUT /groups/:id/event

    Without `id` this opens a new event (409 if one is open). With `id` the
    payload replaces the stored event wholesale.
    """
    data = SetEventSchema().load(request.get_json(force=True) or {})

    if data["id"] is None:
        command = event_service.create_event(
            group_id=group_id,
            caller=g.username,
            data={**data, "title": data["title"].strip()},
            session=db.session,
        )
        changed, status = True, 201
    else:
        command, changed = event_service.replace_event(
            group_id=group_id,
            caller=g.username,
            event=to_event(data),
            session=db.session,
        )
        status = 200

    db.session.commit()
    if changed:
        relay.publish(command, origin=g.username)
    return jsonify({"data": dump_event(command.event), "warnings": []}), status


@events_bp.route("/<group_id>/event", methods=["GET"])
@require_user
def get_event(group_id: str):
    """GET /groups/:id/event — data is null when no event is open."""
    state = event_service.get_state_for(group_id, caller=g.username, session=db.session)
    return jsonify({"data": dump_event(state.event), "warnings": []}), 200


@events_bp.route("/<group_id>/event", methods=["DELETE"])
@require_user
def cancel_event(group_id: str):
    """DELETE /groups/:id/event — Archives the event; its expenses are kept."""
    command, warnings = event_service.cancel_event(
        group_id=group_id,
        caller=g.username,
        session=db.session,
    )
    db.session.commit()
    if not warnings:
        relay.publish(command, origin=g.username)
    return jsonify({"data": {"cancelled": not warnings}, "warnings": warnings}), 200


@events_bp.route("/<group_id>/events/archive", methods=["GET"])
@require_user
def list_archived_events(group_id: str):
    archived = event_service.list_archived_events(
        group_id=group_id,
        caller=g.username,
        session=db.session,
    )
    return jsonify({
        "data": [
            {
                **dump_event(item["event"]),
                "cancelled_at": item["cancelled_at"].isoformat(),
            }
            for item in archived
        ],
        "warnings": [],
    }), 200
