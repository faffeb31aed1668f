"""
ledger/types.py — Immutable value types for the expense ledger.

No Flask, no SQLAlchemy, no I/O. Everything here is a frozen dataclass so a
GroupState snapshot handed to a subscriber can never be mutated behind the
store's back; mutators build new snapshots with dataclasses.replace().

Debtors are a tagged variant:
  SingleDebtor(username)      — primary model, one debtor per entry
  EvenSplit(usernames)        — legacy model, amount divided evenly
Consumers never branch on the variant themselves; they go through
balance_service.resolve_contributions() or Debtors.usernames.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Union


CENT = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class SingleDebtor:
    username: str

    @property
    def usernames(self) -> tuple[str, ...]:
        return (self.username,)


@dataclass(frozen=True)
class EvenSplit:
    usernames: tuple[str, ...]


Debtors = Union[SingleDebtor, EvenSplit]


@dataclass(frozen=True)
class Member:
    username: str
    is_admin: bool = False
    profile_picture: str | None = None
    payment_handle: str | None = None   # Venmo username


@dataclass(frozen=True)
class Expense:
    item_name: str
    amount: Decimal
    payer: str
    debtors: Debtors
    id: str | None = None
    added_by: str | None = None
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
        compare=False,
    )

    def owed_by(self, username: str) -> bool:
        """True if `username` is in this entry's debtor set."""
        return username in self.debtors.usernames


@dataclass(frozen=True)
class Event:
    id: str
    title: str
    date: str = ""
    description: str = ""
    expenses: tuple[Expense, ...] = ()

    def find(self, expense_id: str) -> Expense | None:
        return next((e for e in self.expenses if e.id == expense_id), None)

    def with_expenses(self, expenses) -> "Event":
        return replace(self, expenses=tuple(expenses))


@dataclass(frozen=True)
class GroupState:
    group_id: str
    name: str = ""
    admin: str | None = None
    members: tuple[Member, ...] = ()
    event: Event | None = None

    @property
    def usernames(self) -> frozenset[str]:
        return frozenset(m.username for m in self.members)

    def member(self, username: str) -> Member | None:
        return next((m for m in self.members if m.username == username), None)


def dedupe_members(members) -> tuple[Member, ...]:
    """
    Returns members with unique usernames, keeping the LAST occurrence's data
    at the position of the FIRST occurrence (membership is a set).
    """
    order: list[str] = []
    latest: dict[str, Member] = {}
    for m in members:
        if m.username not in latest:
            order.append(m.username)
        latest[m.username] = m
    return tuple(latest[u] for u in order)
