"""
ledger/commands.py — Mutation commands and their wire representation.

Every change to a group's ledger is a command. The same command object is
  1. applied to the local LedgerStore (optimistically),
  2. serialised with to_message() and handed to the transport,
  3. rebuilt with from_message() on every peer and applied to their store,
  4. persisted by the server relay through event_service.apply_command().
Local and remote changes therefore share one code path.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from splitchat.app.ledger.types import Event, Expense
from splitchat.app.schemas.ledger_schema import (
    EventSchema,
    ExpenseSchema,
    MutationMessageSchema,
    UpdateExpensePayloadSchema,
    dump_event,
    dump_expense,
)


@dataclass(frozen=True)
class SetEvent:
    group_id: str
    event: Event | None

    kind = "set_event"


@dataclass(frozen=True)
class AddExpense:
    group_id: str
    expense: Expense

    kind = "add_expense"


@dataclass(frozen=True)
class UpdateExpense:
    group_id: str
    expense_id: str
    item_name: str | None = None
    amount: Decimal | None = None

    kind = "update_expense"


@dataclass(frozen=True)
class RemoveExpense:
    group_id: str
    expense_id: str

    kind = "remove_expense"


@dataclass(frozen=True)
class ApplyBatch:
    """Several commands on one group that must land as a single snapshot."""
    group_id: str
    commands: tuple

    kind = "batch"


Command = Union[SetEvent, AddExpense, UpdateExpense, RemoveExpense, ApplyBatch]


# ── Serialisation ──────────────────────────────────────────────────────────

def _payload(command: Command) -> dict:
    if isinstance(command, SetEvent):
        return {"event": dump_event(command.event)}
    if isinstance(command, AddExpense):
        return {"expense": dump_expense(command.expense)}
    if isinstance(command, UpdateExpense):
        return {
            "expense_id": command.expense_id,
            "item_name": command.item_name,
            "amount": None if command.amount is None else str(command.amount),
        }
    if isinstance(command, RemoveExpense):
        return {"expense_id": command.expense_id}
    if isinstance(command, ApplyBatch):
        return {
            "commands": [
                {"kind": c.kind, "payload": _payload(c)} for c in command.commands
            ],
        }
    raise TypeError(f"Unknown ledger command: {command!r}")


def to_message(command: Command, origin: str | None = None) -> dict:
    """Builds the `ledger-mutation` envelope for a command."""
    return {
        "group_id": command.group_id,
        "kind": command.kind,
        "payload": _payload(command),
        "origin": origin,
    }


def _command(group_id: str, kind: str, payload: dict) -> Command:
    if kind == "set_event":
        raw = payload.get("event")
        event = None if raw is None else EventSchema().load(raw)
        return SetEvent(group_id, event)
    if kind == "add_expense":
        return AddExpense(group_id, ExpenseSchema().load(payload["expense"]))
    if kind == "update_expense":
        data = UpdateExpensePayloadSchema().load(payload)
        return UpdateExpense(group_id, **data)
    if kind == "remove_expense":
        return RemoveExpense(group_id, str(payload["expense_id"]))
    if kind == "batch":
        return ApplyBatch(
            group_id,
            tuple(
                _command(group_id, item["kind"], item["payload"])
                for item in payload["commands"]
            ),
        )
    raise ValueError(f"Unknown mutation kind: {kind!r}")


def from_message(message: dict) -> Command:
    """
    Rebuilds a command from a `ledger-mutation` envelope.

    Raises marshmallow.ValidationError (or KeyError/ValueError for a broken
    nested payload) if the message is malformed. Callers on the inbound path
    log and drop such messages.
    """
    envelope = MutationMessageSchema().load(message)
    return _command(envelope["group_id"], envelope["kind"], envelope["payload"])
