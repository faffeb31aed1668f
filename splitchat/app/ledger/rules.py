"""
ledger/rules.py — Creation rules for new expense entries.

Shared by LedgerClient (client side) and event_service (HTTP side) so both
entry points reject and normalise identically:

  PAYER_NOT_MEMBER (422)   payer is not in the group
  DEBTOR_NOT_MEMBER (422)  a debtor is not in the group
  SELF_DEBT (422)          the only debtor is the payer

An even split is normalised into one SingleDebtor entry per debtor other
than the payer; shares come from balance_service.split_evenly().
"""

from __future__ import annotations

from decimal import Decimal

from splitchat.app.errors import AppError, ErrorCode
from splitchat.app.ledger.types import Expense, GroupState, SingleDebtor
from splitchat.app.services.balance_service import split_evenly


def require_member(state: GroupState, username: str, code: str, field: str) -> None:
    if username not in state.usernames:
        raise AppError(
            code,
            f"{username} is not a member of this group.",
            422,
            field=field,
        )


def prepare_new_expense(state: GroupState, expense: Expense) -> list[Expense]:
    """
    Validates a freshly entered expense against the group and returns the
    SingleDebtor entries to insert. Raises AppError; never returns [].
    """
    require_member(state, expense.payer, ErrorCode.PAYER_NOT_MEMBER, "payer")
    for username in expense.debtors.usernames:
        require_member(state, username, ErrorCode.DEBTOR_NOT_MEMBER, "debtor")

    if isinstance(expense.debtors, SingleDebtor):
        entries = [] if expense.debtors.username == expense.payer else [expense]
    else:
        usernames = list(dict.fromkeys(expense.debtors.usernames))
        entries = [
            Expense(
                item_name=expense.item_name,
                amount=share,
                payer=expense.payer,
                debtors=SingleDebtor(username),
                added_by=expense.added_by,
                timestamp=expense.timestamp,
            )
            for username, share in split_evenly(expense.amount, usernames, expense.payer)
            if username != expense.payer and share > Decimal("0")
        ]

    if not entries:
        raise AppError(
            ErrorCode.SELF_DEBT,
            "You cannot owe money to yourself.",
            422,
            field="debtor",
        )
    return entries
