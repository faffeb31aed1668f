"""
services/balance_service.py — Balance computation for an event's expenses.

This file is the SINGLE SOURCE OF TRUTH for how balances are derived. The
client facade, the HTTP balances route and the settlement coordinator all
call into it; the formula must not be reimplemented elsewhere.

Layer rules:
  - No Flask imports, no SQLAlchemy. Works on ledger types only.
  - Balances are never persisted. compute_balance_summary() is a full
    recompute from the expense list on every call; at a handful of expenses
    per event there is nothing worth caching.

Rounding rule for even splits:
  - Each share is amount / n rounded DOWN to 0.01.
  - The remainder (at most n-1 cents) is added to the payer's share when the
    payer is in the split list, otherwise to the first debtor in list order.
  - Guarantees: sum(shares) == amount exactly.

Conservation:
  - sum(paid) == sum(owed) for every summary. A contribution is counted on
    both sides or on neither (self-loops and non-members are skipped).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_DOWN
from typing import Iterable, NamedTuple

from splitchat.app.errors import AppError, ErrorCode
from splitchat.app.ledger.types import CENT, ZERO, EvenSplit, Expense, GroupState


class Contribution(NamedTuple):
    payer: str
    debtor: str
    amount: Decimal
    expense: Expense


@dataclass(frozen=True)
class OwedItem:
    expense_id: str
    item_name: str
    amount: Decimal


@dataclass
class OwedBy:
    total: Decimal = ZERO
    items: list[OwedItem] = field(default_factory=list)


@dataclass
class MemberBalance:
    paid: Decimal = ZERO     # fronted on others' behalf
    owed: Decimal = ZERO     # owed to others
    owes_to: dict[str, Decimal] = field(default_factory=dict)
    is_owed_by: dict[str, OwedBy] = field(default_factory=dict)


# ── Even split ─────────────────────────────────────────────────────────────

def split_evenly(
        amount: Decimal,
        usernames: Iterable[str],
        payer: str,
) -> list[tuple[str, Decimal]]:
    """
    Canonical even split. Returns [(username, share), ...] in input order.

    Example: 10.00 between [a, b, c] paid by x → a 3.34, b 3.33, c 3.33.
             10.00 between [x, b, c] paid by x → x 3.34, b 3.33, c 3.33.
    """
    usernames = list(usernames)
    n = len(usernames)
    if n == 0:
        return []

    base = (amount / Decimal(n)).quantize(CENT, rounding=ROUND_DOWN)
    remainder = amount - (base * n)

    shares = [[username, base] for username in usernames]
    if remainder > ZERO:
        target = next((s for s in shares if s[0] == payer), shares[0])
        target[1] += remainder

    # Must always hold; a failure here is a programming error.
    total = sum((s[1] for s in shares), ZERO)
    if total != amount:
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            f"Even split produced sum {total} for amount {amount}. "
            f"This is a bug — please report it.",
            500,
        )

    return [(username, share) for username, share in shares]


# ── Contributions ──────────────────────────────────────────────────────────

def resolve_contributions(expense: Expense) -> list[Contribution]:
    """
    Flattens one expense into (payer, debtor, amount) triples, whichever
    debtor model it uses. Self-loops are still present here; the summary
    skips them.
    """
    if isinstance(expense.debtors, EvenSplit):
        return [
            Contribution(expense.payer, debtor, share, expense)
            for debtor, share in split_evenly(
                expense.amount,
                expense.debtors.usernames,
                expense.payer,
            )
        ]
    return [Contribution(expense.payer, expense.debtors.username, expense.amount, expense)]


# ── Summary ────────────────────────────────────────────────────────────────

def compute_balance_summary(
        expenses: Iterable[Expense],
        usernames: Iterable[str],
) -> dict[str, MemberBalance]:
    """
    Canonical balance computation.

    Returns {username: MemberBalance} for every current member. Contributions
    are skipped when payer == debtor or when either party is no longer a
    member (an expense may outlive a membership).
    """
    summary: dict[str, MemberBalance] = {u: MemberBalance() for u in usernames}

    for expense in expenses:
        for payer, debtor, amount, _ in resolve_contributions(expense):
            if payer == debtor:
                continue
            if payer not in summary or debtor not in summary:
                continue

            summary[payer].paid += amount
            summary[debtor].owed += amount

            owes_to = summary[debtor].owes_to
            owes_to[payer] = owes_to.get(payer, ZERO) + amount

            owed_by = summary[payer].is_owed_by.setdefault(debtor, OwedBy())
            owed_by.total += amount
            owed_by.items.append(OwedItem(expense.id, expense.item_name, amount))

    return summary


def summarize_group(state: GroupState) -> dict[str, MemberBalance]:
    """Summary for a group's active event; every member at zero if none."""
    expenses = state.event.expenses if state.event is not None else ()
    return compute_balance_summary(expenses, [m.username for m in state.members])


def assert_conserved(summary: dict[str, MemberBalance]) -> None:
    """
    Raises INTERNAL_ERROR (500) if sum(paid) != sum(owed).
    A mismatch means the summary was built from inconsistent data.
    """
    paid = sum((b.paid for b in summary.values()), ZERO)
    owed = sum((b.owed for b in summary.values()), ZERO)
    if paid != owed:
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            f"Balance integrity check failed: paid {paid} != owed {owed}.",
            500,
        )


def summary_for(username: str, summary: dict[str, MemberBalance]) -> dict:
    """
    The current user's slice of a summary: who they owe, who owes them.
    Only non-zero counterparties are listed.
    """
    balance = summary.get(username, MemberBalance())
    debts = [
        {"to": other, "amount": amount}
        for other, amount in balance.owes_to.items()
        if amount > ZERO
    ]
    credits = [
        {"from": other, "amount": owed_by.total}
        for other, owed_by in balance.is_owed_by.items()
        if owed_by.total > ZERO
    ]
    return {
        "username": username,
        "total_owed": sum((d["amount"] for d in debts), ZERO),
        "total_owed_to_me": sum((c["amount"] for c in credits), ZERO),
        "debts": debts,
        "credits": credits,
    }


def serialize_summary(summary: dict[str, MemberBalance]) -> dict:
    """JSON shape of a summary. Amounts as strings."""
    return {
        username: {
            "paid": str(b.paid),
            "owed": str(b.owed),
            "owes_to": {other: str(a) for other, a in b.owes_to.items()},
            "is_owed_by": {
                other: {
                    "total": str(owed_by.total),
                    "items": [
                        {
                            "expense_id": item.expense_id,
                            "item_name": item.item_name,
                            "amount": str(item.amount),
                        }
                        for item in owed_by.items
                    ],
                }
                for other, owed_by in b.is_owed_by.items()
            },
        }
        for username, b in summary.items()
    }


def serialize_view(view: dict) -> dict:
    return {
        "username": view["username"],
        "total_owed": str(view["total_owed"]),
        "total_owed_to_me": str(view["total_owed_to_me"]),
        "debts": [{"to": d["to"], "amount": str(d["amount"])} for d in view["debts"]],
        "credits": [{"from": c["from"], "amount": str(c["amount"])} for c in view["credits"]],
    }
