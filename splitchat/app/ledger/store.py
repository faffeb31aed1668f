"""
ledger/store.py — Per-group ledger state container.

LedgerStore holds one immutable GroupState per group and replaces it
wholesale on every successful mutation. Subscribers receive the new snapshot
and recompute whatever they derive from it (balances, views).

Mutation semantics are chosen for replay from an at-least-once transport:
  - set_event      replaces the event wholesale; same payload twice is a no-op
  - add_expense    rejected when there is no active event or the id is known
  - update_expense no-op when the entry is missing or nothing changes
  - remove_expense no-op when the entry is missing
Every mutator returns True only if the snapshot changed. Callers (the
gateway) broadcast only on True.

No I/O here. Broadcasting is the gateway's job; persistence is the server's.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from typing import Callable

from splitchat.app.ledger.commands import (
    AddExpense,
    ApplyBatch,
    Command,
    RemoveExpense,
    SetEvent,
    UpdateExpense,
)
from splitchat.app.ledger.types import Event, Expense, GroupState, dedupe_members


Listener = Callable[[GroupState], None]


def _new_expense_id() -> str:
    return uuid.uuid4().hex


def assign_ids(command: Command, new_id: Callable[[], str] = _new_expense_id) -> Command:
    """
    Gives every id-less expense in `command` a fresh id: the added entry of
    an AddExpense and each entry of a SetEvent's event. Batches recurse.
    Commands that need no ids come back unchanged (same object).
    """
    if isinstance(command, AddExpense) and not command.expense.id:
        return replace(command, expense=replace(command.expense, id=new_id()))
    if isinstance(command, SetEvent) and command.event is not None:
        if all(e.id for e in command.event.expenses):
            return command
        expenses = (e if e.id else replace(e, id=new_id()) for e in command.event.expenses)
        return replace(command, event=command.event.with_expenses(expenses))
    if isinstance(command, ApplyBatch):
        return replace(command, commands=tuple(assign_ids(c, new_id) for c in command.commands))
    return command


# ── Pure transitions ───────────────────────────────────────────────────────
# Each returns the SAME object when the command does not change the state,
# so `new is old` is the change test.

def _set_event(state: GroupState, command: SetEvent) -> GroupState:
    if state.event == command.event:
        return state
    return replace(state, event=command.event)


def _add_expense(state: GroupState, command: AddExpense) -> GroupState:
    event = state.event
    if event is None:
        return state
    if event.find(command.expense.id) is not None:
        return state
    return replace(state, event=event.with_expenses(event.expenses + (command.expense,)))


def _update_expense(state: GroupState, command: UpdateExpense) -> GroupState:
    event = state.event
    if event is None:
        return state
    current = event.find(command.expense_id)
    if current is None:
        return state

    updated = replace(
        current,
        item_name=current.item_name if command.item_name is None else command.item_name,
        amount=current.amount if command.amount is None else command.amount,
    )
    if updated.item_name == current.item_name and updated.amount == current.amount:
        return state

    return replace(
        state,
        event=event.with_expenses(
            updated if e.id == command.expense_id else e for e in event.expenses
        ),
    )


def _remove_expense(state: GroupState, command: RemoveExpense) -> GroupState:
    event = state.event
    if event is None or event.find(command.expense_id) is None:
        return state
    return replace(
        state,
        event=event.with_expenses(e for e in event.expenses if e.id != command.expense_id),
    )


def transition(state: GroupState, command: Command) -> GroupState:
    """Applies one command to a snapshot. Pure; never mutates `state`."""
    if isinstance(command, SetEvent):
        return _set_event(state, command)
    if isinstance(command, AddExpense):
        return _add_expense(state, command)
    if isinstance(command, UpdateExpense):
        return _update_expense(state, command)
    if isinstance(command, RemoveExpense):
        return _remove_expense(state, command)
    if isinstance(command, ApplyBatch):
        result = state
        for inner in command.commands:
            result = transition(result, inner)
        return result
    raise TypeError(f"Unknown ledger command: {command!r}")


# ── Store ──────────────────────────────────────────────────────────────────

class LedgerStore:

    def __init__(self, id_factory: Callable[[], str] = _new_expense_id) -> None:
        self._groups: dict[str, GroupState] = {}
        self._listeners: list[Listener] = []
        self._new_id = id_factory

    # ── Reads ──────────────────────────────────────────────────────────────

    def get(self, group_id: str) -> GroupState | None:
        return self._groups.get(group_id)

    def get_event(self, group_id: str) -> Event | None:
        state = self._groups.get(group_id)
        return state.event if state is not None else None

    def has_group(self, group_id: str) -> bool:
        return group_id in self._groups

    # ── Subscriptions ──────────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Registers a listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, state: GroupState) -> None:
        self._groups[state.group_id] = state
        for listener in list(self._listeners):
            listener(state)

    # ── Group-level state ──────────────────────────────────────────────────

    def load_group(self, state: GroupState) -> bool:
        """Installs or replaces a group's full state (join, resync)."""
        state = replace(state, members=dedupe_members(state.members))
        if self._groups.get(state.group_id) == state:
            return False
        self._publish(state)
        return True

    def set_members(self, group_id: str, members) -> bool:
        state = self._groups.get(group_id)
        if state is None:
            return False
        members = dedupe_members(members)
        if state.members == members:
            return False
        self._publish(replace(state, members=members))
        return True

    def drop_group(self, group_id: str) -> bool:
        return self._groups.pop(group_id, None) is not None

    # ── Commands ───────────────────────────────────────────────────────────

    def prepare(self, command: Command) -> Command:
        """Assigns ids to expenses that arrive without one."""
        return assign_ids(command, self._new_id)

    def apply(self, command: Command) -> bool:
        """
        Applies a command (or a batch, as one snapshot). Returns True if the
        group's state changed. Commands for groups not held here are ignored.
        """
        state = self._groups.get(command.group_id)
        if state is None:
            return False
        new_state = transition(state, self.prepare(command))
        if new_state is state:
            return False
        self._publish(new_state)
        return True

    def apply_batch(self, group_id: str, commands) -> bool:
        """Applies several commands to one group as a single snapshot."""
        return self.apply(ApplyBatch(group_id, tuple(commands)))

    # ── Mutators ───────────────────────────────────────────────────────────

    def set_event(self, group_id: str, event: Event | None) -> bool:
        return self.apply(SetEvent(group_id, event))

    def add_expense(self, group_id: str, expense: Expense) -> bool:
        return self.apply(AddExpense(group_id, expense))

    def update_expense(
            self,
            group_id: str,
            expense_id: str,
            item_name: str | None = None,
            amount=None,
    ) -> bool:
        return self.apply(UpdateExpense(group_id, expense_id, item_name, amount))

    def remove_expense(self, group_id: str, expense_id: str) -> bool:
        return self.apply(RemoveExpense(group_id, expense_id))
