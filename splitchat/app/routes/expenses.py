"""
routes/expenses.py — Expense route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, publish, return envelope.
  - No business logic. No DB queries. No bare SQL.

Not-found on PATCH / DELETE is not an error: the ledger treats it as a
benign no-op (a peer may already have removed the entry), so these return
200 with an EXPENSE_NOT_FOUND warning.

Endpoints (base url_prefix=/api/v1/groups):
  POST   /groups/:id/expenses                 → 201  add expense entry(ies)
  PATCH  /groups/:id/expenses/:expense_id     → 200  edit item name / amount
  DELETE /groups/:id/expenses/:expense_id     → 200  remove entry
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from splitchat.app.extensions import db
from splitchat.app.middleware.identity_middleware import require_user
from splitchat.app.relay import relay
from splitchat.app.schemas.expense_schema import CreateExpenseSchema, PatchExpenseSchema
from splitchat.app.schemas.ledger_schema import dump_expense
from splitchat.app.services import event_service

expenses_bp = Blueprint("expenses", __name__)


@expenses_bp.route("/<group_id>/expenses", methods=["POST"])
@require_user
def create_expense(group_id: str):
    """
    POST /groups/:id/expenses

    A `split_between` body is normalised into one entry per debtor, so data
    is always a list of created entries. A retried request with a known id
    creates nothing and carries a DUPLICATE_EXPENSE warning per skipped entry.
    """
    expense = CreateExpenseSchema().load(request.get_json(force=True) or {})
    commands, warnings = event_service.add_expense(
        group_id=group_id,
        caller=g.username,
        expense=expense,
        session=db.session,
    )
    db.session.commit()
    for command in commands:
        relay.publish(command, origin=g.username)
    return jsonify({
        "data": [dump_expense(c.expense) for c in commands],
        "warnings": warnings,
    }), 201


@expenses_bp.route("/<group_id>/expenses/<expense_id>", methods=["PATCH"])
@require_user
def edit_expense(group_id: str, expense_id: str):
    data = PatchExpenseSchema().load(request.get_json(force=True) or {})
    if "item_name" in data:
        data["item_name"] = data["item_name"].strip()

    command, changed, warnings = event_service.edit_expense(
        group_id=group_id,
        caller=g.username,
        expense_id=expense_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    if changed:
        relay.publish(command, origin=g.username)
    return jsonify({
        "data": {"expense_id": expense_id, "updated": changed},
        "warnings": warnings,
    }), 200


@expenses_bp.route("/<group_id>/expenses/<expense_id>", methods=["DELETE"])
@require_user
def delete_expense(group_id: str, expense_id: str):
    command, changed, warnings = event_service.delete_expense(
        group_id=group_id,
        caller=g.username,
        expense_id=expense_id,
        session=db.session,
    )
    db.session.commit()
    if changed:
        relay.publish(command, origin=g.username)
    return jsonify({
        "data": {"expense_id": expense_id, "deleted": changed},
        "warnings": warnings,
    }), 200
