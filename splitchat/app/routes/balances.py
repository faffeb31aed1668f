"""
routes/balances.py — Balance route handlers.

Balances are derived, never stored: each request recomputes the summary
from the current event's entries.

Endpoints (base url_prefix=/api/v1/groups):
  GET /groups/:id/balances  → 200  per-member summary + the caller's own view
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from splitchat.app.extensions import db
from splitchat.app.middleware.identity_middleware import require_user
from splitchat.app.services import balance_service, event_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/<group_id>/balances", methods=["GET"])
@require_user
def get_balances(group_id: str):
    """
    GET /groups/:id/balances

    Membership is enforced inside event_service.get_balances(), which also
    asserts sum(paid) == sum(owed) and raises INTERNAL_ERROR (500) otherwise.
    """
    summary = event_service.get_balances(
        group_id=group_id,
        caller=g.username,
        session=db.session,
    )
    return jsonify({
        "data": {
            "members": balance_service.serialize_summary(summary),
            "me": balance_service.serialize_view(
                balance_service.summary_for(g.username, summary)
            ),
        },
        "warnings": [],
    }), 200
