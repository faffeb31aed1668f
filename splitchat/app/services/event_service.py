"""
services/event_service.py — Backing store for group ledgers.

Mirrors the LedgerStore mutators 1:1 against the database, with the same
no-op semantics, so a command replayed from a client leaves the backing
store exactly as the clients' stores:

  set_event        wholesale replace of the active event; None cancels it
  append_expense   INSERT only; a known expense id is a no-op
  update_expense   partial UPDATE; missing entry is a no-op
  remove_expense   DELETE; missing entry is a no-op
  apply_command    dispatches any ledger command (batches included)

Each mutator returns True if a row changed. The caller-facing functions
(create_event, add_expense, edit_expense, delete_expense, settle) add the
membership checks and input rules for the HTTP API and return the commands
the route must broadcast after commit.

Event cancellation archives instead of deleting: the event row gets
`cancelled_at`, its expense rows stay. A cancelled event is never returned
as the group's current event again unless it is explicitly set back.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's (or relay's) responsibility — only flush here.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

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
from splitchat.app.ledger.store import assign_ids
from splitchat.app.ledger.types import (
    EvenSplit,
    Event,
    Expense,
    GroupState,
    Member,
    SingleDebtor,
)
from splitchat.app.models.event import Event as EventRow
from splitchat.app.models.expense import Expense as ExpenseRow
from splitchat.app.models.group import Group
from splitchat.app.models.membership import Membership
from splitchat.app.models.user import User
from splitchat.app.services import balance_service, settlement_service


# ── Private helpers ────────────────────────────────────────────────────────

def _get_group_or_404(group_id: str, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def _require_member(group_id: str, username: str, session: Session) -> None:
    """Raises FORBIDDEN (403) if `username` is not a member of the group."""
    membership = session.execute(
        select(Membership)
        .join(User, User.id == Membership.user_id)
        .where(
            Membership.group_id == group_id,
            User.username == username,
        )
    ).scalar_one_or_none()

    if membership is None:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )


def _active_event(group_id: str, session: Session) -> EventRow | None:
    return session.execute(
        select(EventRow)
        .where(
            EventRow.group_id == group_id,
            EventRow.cancelled_at.is_(None),
        )
        .order_by(EventRow.id.desc())
    ).scalars().first()


def _find_expense(group_id: str, expense_id: str, session: Session) -> ExpenseRow | None:
    """The entry with this id in the group's ACTIVE event, if any."""
    event_row = _active_event(group_id, session)
    if event_row is None:
        return None
    return session.execute(
        select(ExpenseRow).where(
            ExpenseRow.event_id == event_row.id,
            ExpenseRow.expense_id == expense_id,
        )
    ).scalar_one_or_none()


def _to_expense(row: ExpenseRow) -> Expense:
    debtors = (
        EvenSplit(tuple(row.split_between))
        if row.split_between is not None
        else SingleDebtor(row.debtor)
    )
    return Expense(
        item_name=row.item_name,
        amount=Decimal(row.amount),
        payer=row.payer,
        debtors=debtors,
        id=row.expense_id,
        added_by=row.added_by,
        timestamp=row.created_at,
    )


def _to_event(row: EventRow) -> Event:
    return Event(
        id=row.event_id,
        title=row.title,
        date=row.date,
        description=row.description,
        expenses=tuple(_to_expense(e) for e in row.expenses),
    )


def _write_expense(row: ExpenseRow, expense: Expense) -> None:
    """Copies an Expense onto a row. Exactly one debtor column is set."""
    row.item_name = expense.item_name
    row.amount = expense.amount
    row.payer = expense.payer
    row.added_by = expense.added_by
    if isinstance(expense.debtors, EvenSplit):
        row.debtor = None
        row.split_between = list(expense.debtors.usernames)
    else:
        row.debtor = expense.debtors.username
        row.split_between = None
    if expense.timestamp is not None:
        row.created_at = expense.timestamp


def _replace_expenses(event_row: EventRow, expenses, session: Session) -> None:
    """
    Makes the event's rows match `expenses` exactly. Rows are updated in
    place where ids match; deletes are flushed before inserts so the
    (event_id, expense_id) constraint never sees two rows.
    """
    wanted = {e.id: e for e in expenses}
    existing = {row.expense_id: row for row in event_row.expenses}

    for expense_id, row in existing.items():
        if expense_id not in wanted:
            event_row.expenses.remove(row)
            session.delete(row)
    session.flush()

    for expense in expenses:
        row = existing.get(expense.id)
        if row is None:
            row = ExpenseRow(expense_id=expense.id)
            event_row.expenses.append(row)
        _write_expense(row, expense)


# ── Backing-store mutators ─────────────────────────────────────────────────

def set_event(group_id: str, event: Event | None, session: Session) -> bool:
    """
    Wholesale replace of the group's active event. None cancels (archives)
    the active event. Setting the same event twice is a no-op.
    """
    _get_group_or_404(group_id, session)
    current = _active_event(group_id, session)
    now = datetime.now(timezone.utc)

    if event is None:
        if current is None:
            return False
        current.cancelled_at = now
        session.flush()
        return True

    if current is not None and _to_event(current) == event:
        return False

    if current is not None and current.event_id != event.id:
        # archived before another row becomes active (idx_events_active)
        current.cancelled_at = now
        session.flush()

    row = current if current is not None and current.event_id == event.id else None
    if row is None:
        row = session.execute(
            select(EventRow).where(
                EventRow.group_id == group_id,
                EventRow.event_id == event.id,
            )
        ).scalar_one_or_none()
    if row is None:
        row = EventRow(group_id=group_id, event_id=event.id)
        session.add(row)

    row.cancelled_at = None
    row.title = event.title
    row.date = event.date
    row.description = event.description
    try:
        session.flush()
    except IntegrityError:
        # another request opened an event between our read and this write
        session.rollback()
        raise AppError(
            ErrorCode.EVENT_ALREADY_OPEN,
            "Another event was opened for this group. Reload and try again.",
            409,
        )

    _replace_expenses(row, event.expenses, session)
    session.flush()
    return True


def append_expense(group_id: str, expense: Expense, session: Session) -> bool:
    """INSERT-only. No active event or a known id → no-op (False)."""
    event_row = _active_event(group_id, session)
    if event_row is None:
        return False

    expense_id = expense.id or uuid.uuid4().hex
    exists = session.execute(
        select(ExpenseRow.id).where(
            ExpenseRow.event_id == event_row.id,
            ExpenseRow.expense_id == expense_id,
        )
    ).scalar_one_or_none()
    if exists is not None:
        return False

    row = ExpenseRow(expense_id=expense_id)
    _write_expense(row, expense)
    event_row.expenses.append(row)
    session.flush()
    return True


def update_expense(
        group_id: str,
        expense_id: str,
        session: Session,
        item_name: str | None = None,
        amount: Decimal | None = None,
) -> bool:
    row = _find_expense(group_id, expense_id, session)
    if row is None:
        return False

    changed = False
    if item_name is not None and item_name != row.item_name:
        row.item_name = item_name
        changed = True
    if amount is not None and Decimal(amount) != Decimal(row.amount):
        row.amount = amount
        changed = True

    if changed:
        session.flush()
    return changed


def remove_expense(group_id: str, expense_id: str, session: Session) -> bool:
    row = _find_expense(group_id, expense_id, session)
    if row is None:
        return False
    # delete-orphan cascade issues the DELETE
    row.event.expenses.remove(row)
    session.flush()
    return True


def apply_command(command: Command, session: Session) -> bool:
    """Persists any ledger command. A batch is applied in order, in one transaction."""
    if isinstance(command, SetEvent):
        return set_event(command.group_id, command.event, session)
    if isinstance(command, AddExpense):
        return append_expense(command.group_id, command.expense, session)
    if isinstance(command, UpdateExpense):
        return update_expense(
            command.group_id,
            command.expense_id,
            session,
            item_name=command.item_name,
            amount=command.amount,
        )
    if isinstance(command, RemoveExpense):
        return remove_expense(command.group_id, command.expense_id, session)
    if isinstance(command, ApplyBatch):
        changed = False
        for inner in command.commands:
            changed = apply_command(inner, session) or changed
        return changed
    raise TypeError(f"Unknown ledger command: {command!r}")


# ── Reads ──────────────────────────────────────────────────────────────────

def get_group_state(group_id: str, session: Session) -> GroupState:
    """Authoritative snapshot of a group; what clients resync from."""
    group = _get_group_or_404(group_id, session)

    users = session.execute(
        select(User)
        .join(Membership, User.id == Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.joined_at.asc(), Membership.id.asc())
    ).scalars().all()

    event_row = _active_event(group_id, session)
    return GroupState(
        group_id=group.id,
        name=group.name,
        admin=group.admin.username,
        members=tuple(
            Member(
                username=u.username,
                is_admin=u.id == group.admin_user_id,
                profile_picture=u.profile_picture,
                payment_handle=u.payment_handle,
            )
            for u in users
        ),
        event=_to_event(event_row) if event_row is not None else None,
    )


def get_balances(group_id: str, caller: str, session: Session) -> dict:
    """Balance summary for the active event. Caller must be a member."""
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller, session)

    summary = balance_service.summarize_group(get_group_state(group_id, session))
    balance_service.assert_conserved(summary)
    return summary


def list_archived_events(group_id: str, caller: str, session: Session) -> list[dict]:
    """Cancelled events, most recent first, with their expense history."""
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller, session)

    rows = session.execute(
        select(EventRow)
        .where(
            EventRow.group_id == group_id,
            EventRow.cancelled_at.is_not(None),
        )
        .order_by(EventRow.cancelled_at.desc(), EventRow.id.desc())
    ).scalars().all()
    return [{"event": _to_event(row), "cancelled_at": row.cancelled_at} for row in rows]


# ── Caller-facing operations (HTTP API) ────────────────────────────────────

def get_state_for(group_id: str, caller: str, session: Session) -> GroupState:
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller, session)
    return get_group_state(group_id, session)


def create_event(group_id: str, caller: str, data: dict, session: Session) -> SetEvent:
    """
    Opens a new event. Raises EVENT_ALREADY_OPEN (409) if one is active;
    replacing an event wholesale goes through replace_event().
    """
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller, session)

    current = _active_event(group_id, session)
    if current is not None:
        raise AppError(
            ErrorCode.EVENT_ALREADY_OPEN,
            f"'{current.title}' is still open. Cancel it before starting a new event.",
            409,
        )

    event = Event(
        id=data.get("id") or uuid.uuid4().hex,
        title=data["title"],
        date=data.get("date", ""),
        description=data.get("description", ""),
    )
    command = SetEvent(group_id, event)
    set_event(group_id, event, session)
    return command


def replace_event(group_id: str, caller: str, event: Event, session: Session) -> tuple[SetEvent, bool]:
    """
    Wholesale setEvent from a full event payload. Entries without an id are
    given one here, so the stored rows and the broadcast command agree.
    """
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller, session)
    command = assign_ids(SetEvent(group_id, event))
    return command, set_event(group_id, command.event, session)


def cancel_event(group_id: str, caller: str, session: Session) -> tuple[SetEvent, list[dict]]:
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller, session)
    command = SetEvent(group_id, None)
    if not set_event(group_id, None, session):
        return command, [notice(NoticeCode.NO_ACTIVE_EVENT, "There is no event to cancel.")]
    return command, []


def add_expense(
        group_id: str,
        caller: str,
        expense: Expense,
        session: Session,
) -> tuple[list[AddExpense], list[dict]]:
    """
    Validates and inserts a new expense (normalising an even split into
    SingleDebtor entries). Returns the AddExpense commands to broadcast and
    any warnings.

    A client-supplied id makes the request safe to retry: split entries get
    "<id>:<debtor>" ids, and an entry whose id already exists is skipped
    with a DUPLICATE_EXPENSE warning.

    Raises:
      AppError(NO_ACTIVE_EVENT, 422)
      AppError(PAYER_NOT_MEMBER / DEBTOR_NOT_MEMBER / SELF_DEBT, 422)
    """
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller, session)

    state = get_group_state(group_id, session)
    if state.event is None:
        raise AppError(
            ErrorCode.NO_ACTIVE_EVENT,
            "Start an event before adding expenses.",
            422,
        )

    commands, warnings = [], []
    for entry in rules.prepare_new_expense(state, expense):
        if entry.id is None:
            entry_id = (
                f"{expense.id}:{entry.debtors.username}"
                if expense.id
                else uuid.uuid4().hex
            )
        else:
            entry_id = entry.id
        entry = replace(entry, id=entry_id, added_by=entry.added_by or caller)

        if append_expense(group_id, entry, session):
            commands.append(AddExpense(group_id, entry))
        else:
            warnings.append(notice(
                NoticeCode.DUPLICATE_EXPENSE,
                f"Expense {entry_id} already exists; nothing was added.",
            ))
    return commands, warnings


def edit_expense(
        group_id: str,
        caller: str,
        expense_id: str,
        data: dict,
        session: Session,
) -> tuple[UpdateExpense, bool, list[dict]]:
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller, session)

    command = UpdateExpense(
        group_id,
        expense_id,
        item_name=data.get("item_name"),
        amount=data.get("amount"),
    )
    if _find_expense(group_id, expense_id, session) is None:
        return command, False, [_not_found(expense_id)]
    if not apply_command(command, session):
        return command, False, [notice(NoticeCode.UNCHANGED, "Nothing to update.")]
    return command, True, []


def delete_expense(
        group_id: str,
        caller: str,
        expense_id: str,
        session: Session,
) -> tuple[RemoveExpense, bool, list[dict]]:
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller, session)

    command = RemoveExpense(group_id, expense_id)
    if not remove_expense(group_id, expense_id, session):
        return command, False, [_not_found(expense_id)]
    return command, True, []


def _not_found(expense_id: str) -> dict:
    return notice(NoticeCode.EXPENSE_NOT_FOUND, f"Expense {expense_id} is not in the current event.")


class _BackingLedger:
    """Adapts the session to the get/apply_batch surface settle_payment() expects."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, group_id: str) -> GroupState:
        return get_group_state(group_id, self._session)

    def apply_batch(self, group_id: str, commands) -> bool:
        return apply_command(ApplyBatch(group_id, tuple(commands)), self._session)


def settle(
        group_id: str,
        caller: str,
        to_user: str,
        session: Session,
) -> settlement_service.SettlementResult:
    """
    Settles everything `caller` owes `to_user`, in one transaction.
    The result's batch is what the route broadcasts after commit.
    """
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller, session)
    return settlement_service.settle_payment(
        _BackingLedger(session),
        group_id,
        caller,
        to_user,
    )


def payment_link(
        group_id: str,
        caller: str,
        to_user: str,
        template: str,
        session: Session,
) -> dict:
    state = get_state_for(group_id, caller, session)
    member = state.member(to_user)
    if member is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"{to_user} is not a member of this group.",
            404,
            field="to",
        )

    amount = settlement_service.amount_owed(state, caller, to_user)
    title = state.event.title if state.event is not None else ""
    link = settlement_service.build_payment_link(
        member.payment_handle,
        amount,
        note=f"Payment for {title or 'expenses'}",
        template=template,
    )
    return {"to": to_user, "amount": amount, "link": link}
