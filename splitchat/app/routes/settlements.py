"""
routes/settlements.py — Settlement and payment-link route handlers.

Settlement is debtor-confirmed: the caller states they paid `to`, and every
entry they owe `to` in the current event is cleared in one transaction.
Nothing to settle is a 200 with a NOTHING_TO_SETTLE warning.

Endpoints (base url_prefix=/api/v1/groups):
  POST /groups/:id/settlements              → 200  settle caller → to
  GET  /groups/:id/payment-link?to=<user>   → 200  Venmo deep link
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from splitchat.app.extensions import db
from splitchat.app.middleware.identity_middleware import require_user
from splitchat.app.relay import relay
from splitchat.app.schemas.settlement_schema import PaymentLinkQuerySchema, SettleSchema
from splitchat.app.services import event_service

settlements_bp = Blueprint("settlements", __name__)


@settlements_bp.route("/<group_id>/settlements", methods=["POST"])
@require_user
def settle(group_id: str):
    data = SettleSchema().load(request.get_json(force=True) or {})
    result = event_service.settle(
        group_id=group_id,
        caller=g.username,
        to_user=data["to"].strip(),
        session=db.session,
    )
    db.session.commit()
    if result.changed:
        relay.publish(result.batch, origin=g.username)
    return jsonify({
        "data": {
            "from": g.username,
            "to": data["to"].strip(),
            "amount": result.amount,
            "settled_expense_ids": list(result.settled_ids),
        },
        "warnings": result.notices,
    }), 200


@settlements_bp.route("/<group_id>/payment-link", methods=["GET"])
@require_user
def payment_link(group_id: str):
    """
    GET /groups/:id/payment-link?to=<username>

    422 PAYMENT_HANDLE_MISSING when the payee has no payment handle.
    """
    query = PaymentLinkQuerySchema().load(request.args.to_dict())
    result = event_service.payment_link(
        group_id=group_id,
        caller=g.username,
        to_user=query["to"].strip(),
        template=current_app.config["PAYMENT_LINK_TEMPLATE"],
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
