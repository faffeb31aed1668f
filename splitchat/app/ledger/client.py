"""
ledger/client.py — The ledger as seen by one signed-in user.

LedgerClient is the surface the UI layer talks to. It owns the user's
LedgerStore and LedgerGateway, validates input before anything touches the
store, and wraps every mutation result in a LedgerOutcome:

    LedgerOutcome(changed, notices, data)

Errors vs notices:
  - Invalid input raises (marshmallow ValidationError for field-level
    problems, AppError for membership / business rules). Nothing is mutated.
  - Benign no-ops (unknown expense, no active event, nothing to settle) and
    broadcast failures come back as notices.

Legacy even splits: add_expense(split_between=[...]) never creates an
EvenSplit entry. The split is normalised at creation into one SingleDebtor
entry per debtor other than the payer, with shares from split_evenly().
EvenSplit entries received from peers or a snapshot are still fully
supported.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Callable

from splitchat.app.errors import AppError, ErrorCode, NoticeCode, notice
from splitchat.app.ledger import rules
from splitchat.app.ledger.commands import (
    AddExpense,
    ApplyBatch,
    Command,
    RemoveExpense,
    SetEvent,
    UpdateExpense,
)
from splitchat.app.ledger.gateway import LedgerGateway
from splitchat.app.ledger.store import LedgerStore
from splitchat.app.ledger.transport import Transport
from splitchat.app.ledger.types import Event, Expense, GroupState
from splitchat.app.schemas.ledger_schema import (
    ExpenseSchema,
    UpdateExpensePayloadSchema,
)
from splitchat.app.services import balance_service, settlement_service


@dataclass(frozen=True)
class LedgerOutcome:
    changed: bool
    notices: list[dict] = field(default_factory=list)
    data: Any = None


class LedgerClient:

    def __init__(
            self,
            username: str,
            transport: Transport,
            fetch_state: Callable[[str], GroupState | None] | None = None,
            store: LedgerStore | None = None,
            payment_link_template: str = settlement_service.DEFAULT_PAYMENT_LINK_TEMPLATE,
    ) -> None:
        self.username = username
        self.store = store if store is not None else LedgerStore()
        self.gateway = LedgerGateway(self.store, transport, username, fetch_state)
        self._payment_link_template = payment_link_template

    # ── Groups ─────────────────────────────────────────────────────────────

    def open_group(self, state: GroupState) -> None:
        self.gateway.watch_group(state)

    def close_group(self, group_id: str) -> None:
        self.gateway.unwatch_group(group_id)

    def _state(self, group_id: str) -> GroupState:
        if not self.store.has_group(group_id):
            raise AppError(
                ErrorCode.GROUP_NOT_FOUND,
                f"Group {group_id} is not open.",
                404,
            )
        return self.store.get(group_id)

    # ── Reads ──────────────────────────────────────────────────────────────

    def current_event(self, group_id: str) -> Event | None:
        return self._state(group_id).event

    def balance_summary(self, group_id: str) -> dict:
        return balance_service.summarize_group(self._state(group_id))

    def my_summary(self, group_id: str) -> dict:
        return balance_service.summary_for(self.username, self.balance_summary(group_id))

    # ── Events ─────────────────────────────────────────────────────────────

    def create_event(
            self,
            group_id: str,
            title: str,
            date: str = "",
            description: str = "",
    ) -> LedgerOutcome:
        state = self._state(group_id)
        if state.event is not None:
            raise AppError(
                ErrorCode.EVENT_ALREADY_OPEN,
                f"'{state.event.title}' is still open. Cancel it before starting a new event.",
                409,
            )
        if not title or not title.strip():
            raise AppError(ErrorCode.MISSING_FIELD, "An event needs a title.", 400, field="title")

        event = Event(
            id=uuid.uuid4().hex,
            title=title.strip(),
            date=date,
            description=description.strip(),
        )
        return self._execute(SetEvent(group_id, event), data=event)

    def set_event(self, group_id: str, event: Event | None) -> LedgerOutcome:
        self._state(group_id)
        return self._execute(SetEvent(group_id, event), data=event)

    def cancel_event(self, group_id: str) -> LedgerOutcome:
        if self._state(group_id).event is None:
            return LedgerOutcome(False, [
                notice(NoticeCode.NO_ACTIVE_EVENT, "There is no event to cancel."),
            ])
        return self._execute(SetEvent(group_id, None))

    # ── Expenses ───────────────────────────────────────────────────────────

    def add_expense(
            self,
            group_id: str,
            item_name: str,
            amount,
            payer: str,
            debtor: str | None = None,
            split_between: list[str] | None = None,
    ) -> LedgerOutcome:
        """
        Adds one SingleDebtor entry, or, with split_between, one entry per
        debtor other than the payer. data = the created Expense list.
        """
        state = self._state(group_id)
        expense: Expense = ExpenseSchema().load({
            "item_name": item_name,
            "amount": str(amount),
            "payer": payer,
            "debtor": debtor,
            "split_between": split_between,
            "added_by": self.username,
        })

        entries = rules.prepare_new_expense(state, expense)

        if state.event is None:
            return LedgerOutcome(False, [
                notice(NoticeCode.NO_ACTIVE_EVENT, "Start an event before adding expenses."),
            ])

        commands = [self.store.prepare(AddExpense(group_id, e)) for e in entries]
        command = commands[0] if len(commands) == 1 else ApplyBatch(group_id, tuple(commands))
        return self._execute(command, data=[c.expense for c in commands])

    def update_expense(
            self,
            group_id: str,
            expense_id: str,
            item_name: str | None = None,
            amount=None,
    ) -> LedgerOutcome:
        state = self._state(group_id)
        changes = UpdateExpensePayloadSchema().load({
            "expense_id": expense_id,
            "item_name": item_name.strip() if item_name is not None else None,
            "amount": None if amount is None else str(amount),
        })
        if changes["item_name"] is not None and not changes["item_name"]:
            raise AppError(ErrorCode.INVALID_FIELD, "Item name must not be blank.", 400, field="item_name")

        current = state.event.find(expense_id) if state.event is not None else None
        if current is None:
            return self._not_found(expense_id)

        outcome = self._execute(UpdateExpense(group_id, **changes))
        if not outcome.changed:
            return LedgerOutcome(False, [notice(NoticeCode.UNCHANGED, "Nothing to update.")])
        return outcome

    def remove_expense(self, group_id: str, expense_id: str) -> LedgerOutcome:
        state = self._state(group_id)
        if state.event is None or state.event.find(expense_id) is None:
            return self._not_found(expense_id)
        return self._execute(RemoveExpense(group_id, expense_id))

    def _not_found(self, expense_id: str) -> LedgerOutcome:
        return LedgerOutcome(False, [
            notice(NoticeCode.EXPENSE_NOT_FOUND, f"Expense {expense_id} is not in this event."),
        ])

    # ── Settlement ─────────────────────────────────────────────────────────

    def settle_payment(self, group_id: str, to_user: str) -> LedgerOutcome:
        """Clears everything the current user owes `to_user` in this event."""
        self._state(group_id)
        result = settlement_service.settle_payment(
            self.store,
            group_id,
            self.username,
            to_user,
            dispatch=self.gateway.execute,
        )
        return LedgerOutcome(result.changed, result.notices, data=result)

    def payment_link(self, group_id: str, to_user: str) -> str:
        state = self._state(group_id)
        member = state.member(to_user)
        title = state.event.title if state.event is not None else ""
        return settlement_service.build_payment_link(
            member.payment_handle if member is not None else None,
            settlement_service.amount_owed(state, self.username, to_user),
            note=f"Payment for {title or 'expenses'}",
            template=self._payment_link_template,
        )

    def confirm_payment(self, group_id: str, to_user: str) -> LedgerOutcome:
        """
        Payment-confirmation flow: builds the link (blocks with
        PAYMENT_HANDLE_MISSING when the payee has no handle), then settles.
        """
        link = self.payment_link(group_id, to_user)
        outcome = self.settle_payment(group_id, to_user)
        return LedgerOutcome(
            outcome.changed,
            outcome.notices,
            data={"link": link, "settlement": outcome.data},
        )

    # ── Dispatch ───────────────────────────────────────────────────────────

    def _execute(self, command: Command, data: Any = None) -> LedgerOutcome:
        changed, notices = self.gateway.execute(command)
        return LedgerOutcome(changed, list(notices), data)
