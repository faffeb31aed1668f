"""
services/settlement_service.py — Settlement (payment confirmation) logic.

Confirming a payment from `from_user` to `to_user` removes every expense
entry where `to_user` is the payer and `from_user` is among the debtors.

Legacy even-split entries are settled for the confirming debtor ONLY:
  - the entry is removed;
  - each remaining debtor (other than the payer) gets a SingleDebtor entry
    carrying exactly the share split_evenly() assigned them, with id
    "<original id>:<username>".
Everybody else's balance is therefore unchanged by the settlement.

All resulting commands are applied as ONE ApplyBatch so subscribers never
observe a half-settled state.

Confirmation is debtor-only. There is no receipt check on the payee's side;
the payment itself happens out-of-band through build_payment_link().

Layer rules:
  - No Flask imports. The payment link template is passed in by the caller
    (route or client facade) from config.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable
from urllib.parse import quote

from splitchat.app.errors import AppError, ErrorCode, NoticeCode, notice
from splitchat.app.ledger.commands import AddExpense, ApplyBatch, Command, RemoveExpense
from splitchat.app.ledger.types import (
    CENT,
    ZERO,
    EvenSplit,
    Expense,
    GroupState,
    SingleDebtor,
)
from splitchat.app.services.balance_service import resolve_contributions, split_evenly


DEFAULT_PAYMENT_LINK_TEMPLATE = (
    "https://venmo.com/{handle}?txn=pay&amount={amount}&note={note}"
)


@dataclass(frozen=True)
class SettlementResult:
    changed: bool
    amount: Decimal
    settled_ids: tuple[str, ...] = ()
    notices: list[dict] = field(default_factory=list)
    batch: ApplyBatch | None = None


# ── Private helpers ────────────────────────────────────────────────────────

def _require_distinct(from_user: str, to_user: str) -> None:
    """Raises SELF_SETTLEMENT (422) if both parties are the same user."""
    if from_user == to_user:
        raise AppError(
            ErrorCode.SELF_SETTLEMENT,
            "You cannot settle a payment with yourself.",
            422,
            field="to",
        )


def _selected(state: GroupState, from_user: str, to_user: str) -> list[Expense]:
    if state.event is None:
        return []
    return [
        e for e in state.event.expenses
        if e.payer == to_user and e.owed_by(from_user)
    ]


def _remaining_shares(expense: Expense, from_user: str) -> list[Expense]:
    """
    SingleDebtor replacements for an even-split entry after `from_user`
    settles. Self-loop and zero shares are not carried over.
    """
    replacements = []
    for debtor, share in split_evenly(
            expense.amount,
            expense.debtors.usernames,
            expense.payer,
    ):
        if debtor in (from_user, expense.payer) or share <= ZERO:
            continue
        replacements.append(
            Expense(
                item_name=expense.item_name,
                amount=share,
                payer=expense.payer,
                debtors=SingleDebtor(debtor),
                id=f"{expense.id}:{debtor}",
                added_by=expense.added_by,
                timestamp=expense.timestamp,
            )
        )
    return replacements


# ── Public service functions ───────────────────────────────────────────────

def amount_owed(state: GroupState, from_user: str, to_user: str) -> Decimal:
    """
    Gross amount `from_user` owes `to_user` in the active event, i.e. what a
    settlement between them would clear. Not netted against the reverse
    direction.
    """
    total = ZERO
    for expense in _selected(state, from_user, to_user):
        for _, debtor, amount, _ in resolve_contributions(expense):
            if debtor == from_user:
                total += amount
    return total


def plan_settlement(state: GroupState, from_user: str, to_user: str) -> list[Command]:
    """
    Pure. Returns the commands that settle `from_user` → `to_user`, in
    application order. Empty when there is nothing to settle.
    """
    _require_distinct(from_user, to_user)

    commands: list[Command] = []
    for expense in _selected(state, from_user, to_user):
        commands.append(RemoveExpense(state.group_id, expense.id))
        if isinstance(expense.debtors, EvenSplit):
            commands.extend(
                AddExpense(state.group_id, replacement)
                for replacement in _remaining_shares(expense, from_user)
            )
    return commands


def settle_payment(
        store,
        group_id: str,
        from_user: str,
        to_user: str,
        dispatch: Callable[[Command], tuple] | None = None,
) -> SettlementResult:
    """
    Settles everything `from_user` owes `to_user` in the group's active event.

    `dispatch` applies the batch; it must return (changed, notices). The
    client facade passes LedgerGateway.execute so the settlement is also
    broadcast. Without it the batch is applied to `store` directly.

    Raises SELF_SETTLEMENT (422). Nothing to settle is a notice, not an error.
    """
    _require_distinct(from_user, to_user)

    state = store.get(group_id)
    commands = plan_settlement(state, from_user, to_user) if state is not None else []
    if not commands:
        return SettlementResult(
            changed=False,
            amount=ZERO,
            notices=[
                notice(
                    NoticeCode.NOTHING_TO_SETTLE,
                    f"{from_user} owes {to_user} nothing in this event.",
                )
            ],
        )

    amount = amount_owed(state, from_user, to_user)
    settled_ids = tuple(c.expense_id for c in commands if isinstance(c, RemoveExpense))
    batch = ApplyBatch(group_id, tuple(commands))

    if dispatch is None:
        changed, notices = store.apply_batch(group_id, commands), []
    else:
        changed, notices = dispatch(batch)

    return SettlementResult(
        changed=changed,
        amount=amount,
        settled_ids=settled_ids,
        notices=list(notices),
        batch=batch,
    )


def build_payment_link(
        handle: str | None,
        amount: Decimal,
        note: str = "",
        template: str = DEFAULT_PAYMENT_LINK_TEMPLATE,
) -> str:
    """
    Fills the payment deep-link template. Raises PAYMENT_HANDLE_MISSING (422)
    when the recipient has no payment handle; this is the one settlement
    error that blocks the UI flow.

    Example: build_payment_link("bob-v", Decimal("12.5"), "Payment for Dinner")
             → "https://venmo.com/bob-v?txn=pay&amount=12.50&note=Payment%20for%20Dinner"
    """
    if not handle or not handle.strip():
        raise AppError(
            ErrorCode.PAYMENT_HANDLE_MISSING,
            "The recipient has not set a payment handle.",
            422,
            field="to",
        )
    return template.format(
        handle=quote(handle.strip(), safe=""),
        amount=str(Decimal(amount).quantize(CENT)),
        note=quote(note, safe=""),
    )
