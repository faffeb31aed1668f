"""
tests/unit/conftest.py — Builders shared by the ledger unit tests.

Unit test constraints:
  - No database, no Flask application, no network.
  - Ledger values are built directly from the frozen types in ledger/types.py.

Plain functions (not fixtures) so tests can call them with any arguments.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from splitchat.app.ledger.store import LedgerStore
from splitchat.app.ledger.transport import SocketHub
from splitchat.app.ledger.types import (
    EvenSplit,
    Event,
    Expense,
    GroupState,
    Member,
    SingleDebtor,
)


GROUP_ID = "g1"


def expense(
    expense_id: str | None,
    payer: str,
    amount: str,
    debtor: str | None = None,
    split_between: list[str] | None = None,
    item_name: str = "Item",
) -> Expense:
    debtors = SingleDebtor(debtor) if debtor is not None else EvenSplit(tuple(split_between))
    return Expense(
        item_name=item_name,
        amount=Decimal(amount),
        payer=payer,
        debtors=debtors,
        id=expense_id,
        added_by=payer,
    )


def event(*expenses: Expense, event_id: str = "e1", title: str = "Dinner") -> Event:
    return Event(id=event_id, title=title, expenses=tuple(expenses))


def group_state(
    *usernames: str,
    event: Event | None = None,
    handles: dict[str, str] | None = None,
    group_id: str = GROUP_ID,
) -> GroupState:
    handles = handles or {}
    return GroupState(
        group_id=group_id,
        name="Trip",
        admin=usernames[0] if usernames else None,
        members=tuple(
            Member(
                username=u,
                is_admin=i == 0,
                payment_handle=handles.get(u),
            )
            for i, u in enumerate(usernames)
        ),
        event=event,
    )


def echo_relay(hub: SocketHub) -> None:
    """
    Minimal server side: room membership plus re-broadcast of every mutation
    to the group room, skipping the sender. No persistence.
    """
    hub.on("join", lambda sid, room: hub.enter_room(sid, room))
    hub.on("leave", lambda sid, room: hub.leave_room(sid, room))
    hub.on(
        "ledger-mutation",
        lambda sid, message: hub.emit(
            "ledger-mutation",
            message,
            room=f"group:{message['group_id']}",
            skip_sid=sid,
        ),
    )


@pytest.fixture
def store():
    return LedgerStore()


@pytest.fixture
def hub():
    hub = SocketHub()
    echo_relay(hub)
    return hub
