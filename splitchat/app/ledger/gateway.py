"""
ledger/gateway.py — Event propagation between a LedgerStore and a transport.

Outbound (execute):
    local store first, then best-effort broadcast. A command that does not
    change local state is not broadcast. A transport failure is logged and
    reported as a BROADCAST_FAILED notice; the local change is kept and is
    NOT rolled back (peers converge on their next resync).

Inbound (`ledger-mutation`):
    messages for groups this gateway displays are rebuilt into commands and
    applied through the same store entry point as local mutations. Messages
    for other groups are ignored; malformed messages are logged and dropped.

Inbound (`group-members`):
    the server's membership list after an add or remove. It replaces the
    displayed group's members; a list without this user closes the group.

Connection lifecycle:
    on every connect the gateway (re)joins `user:<username>` and
    `group:<id>` for each displayed group. On a REconnect it also resyncs
    each displayed group from `fetch_state`. Mutations missed while offline
    are not replayed; the snapshot replaces them.
"""

from __future__ import annotations

import logging
from typing import Callable, NamedTuple

from marshmallow import ValidationError

from splitchat.app.errors import NoticeCode, TransportError, notice
from splitchat.app.ledger.commands import Command, from_message, to_message
from splitchat.app.ledger.store import LedgerStore
from splitchat.app.ledger.transport import Transport
from splitchat.app.ledger.types import GroupState
from splitchat.app.schemas.ledger_schema import MemberSchema


logger = logging.getLogger(__name__)

MUTATION_EVENT = "ledger-mutation"
MEMBERS_EVENT = "group-members"


def user_room(username: str) -> str:
    return f"user:{username}"


def group_room(group_id: str) -> str:
    return f"group:{group_id}"


class Dispatch(NamedTuple):
    changed: bool
    notices: list


class LedgerGateway:

    def __init__(
            self,
            store: LedgerStore,
            transport: Transport,
            username: str,
            fetch_state: Callable[[str], GroupState | None] | None = None,
    ) -> None:
        self.store = store
        self.transport = transport
        self.username = username
        self._fetch_state = fetch_state
        self._groups: dict[str, None] = {}
        self._has_connected = False

        transport.on(MUTATION_EVENT, self._on_mutation)
        transport.on(MEMBERS_EVENT, self._on_members)
        transport.on("connect", self._on_connect)
        if transport.connected:
            self._on_connect(None)

    @property
    def watched_groups(self) -> list[str]:
        return list(self._groups)

    # ── Displayed groups ───────────────────────────────────────────────────

    def watch_group(self, state: GroupState) -> None:
        """Loads a group into the store and subscribes to its room."""
        self.store.load_group(state)
        if state.group_id in self._groups:
            return
        self._groups[state.group_id] = None
        if self.transport.connected:
            self._join(group_room(state.group_id))

    def unwatch_group(self, group_id: str) -> None:
        watched = group_id in self._groups
        self._groups.pop(group_id, None)
        if watched and self.transport.connected:
            try:
                self.transport.leave_room(group_room(group_id))
            except TransportError as exc:
                logger.warning("Could not leave room for group %s: %s", group_id, exc)
        self.store.drop_group(group_id)

    # ── Outbound ───────────────────────────────────────────────────────────

    def execute(self, command: Command) -> Dispatch:
        """
        Applies `command` locally and broadcasts it if state changed.
        Returns (changed, notices).
        """
        command = self.store.prepare(command)
        if not self.store.apply(command):
            return Dispatch(False, [])

        try:
            self.transport.emit(MUTATION_EVENT, to_message(command, origin=self.username))
        except TransportError as exc:
            logger.warning(
                "Broadcast of %s for group %s failed: %s",
                command.kind,
                command.group_id,
                exc,
            )
            return Dispatch(True, [
                notice(
                    NoticeCode.BROADCAST_FAILED,
                    "Saved locally, but other members were not notified.",
                )
            ])
        return Dispatch(True, [])

    # ── Inbound ────────────────────────────────────────────────────────────

    def _on_mutation(self, message) -> None:
        group_id = message.get("group_id") if isinstance(message, dict) else None
        if group_id not in self._groups:
            return

        try:
            command = from_message(message)
        except (ValidationError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Dropped malformed mutation for group %s: %s", group_id, exc)
            return

        self.store.apply(command)

    def _on_members(self, message) -> None:
        group_id = message.get("group_id") if isinstance(message, dict) else None
        if group_id not in self._groups:
            return

        try:
            members = MemberSchema(many=True).load(message.get("members"))
        except (ValidationError, TypeError) as exc:
            logger.warning("Dropped malformed member list for group %s: %s", group_id, exc)
            return

        if all(m.username != self.username for m in members):
            logger.info("%s is no longer a member of group %s; closing it", self.username, group_id)
            self.unwatch_group(group_id)
            return
        self.store.set_members(group_id, members)

    # ── Connection lifecycle ───────────────────────────────────────────────

    def _on_connect(self, _payload) -> None:
        reconnect = self._has_connected
        self._has_connected = True

        self._join(user_room(self.username))
        for group_id in list(self._groups):
            self._join(group_room(group_id))

        if reconnect:
            for group_id in list(self._groups):
                self.resync(group_id)

    def _join(self, room: str) -> None:
        try:
            self.transport.join_room(room)
        except TransportError as exc:
            logger.warning("Could not join room %s: %s", room, exc)

    def resync(self, group_id: str) -> bool:
        """
        Replaces a displayed group's state with an authoritative snapshot.
        Returns True if the local state changed.
        """
        if self._fetch_state is None:
            logger.info("No state source configured; group %s not resynced", group_id)
            return False

        try:
            state = self._fetch_state(group_id)
        except Exception:
            logger.exception("Resync of group %s failed", group_id)
            return False

        if state is None:
            logger.info("Group %s no longer exists; dropping it", group_id)
            self._groups.pop(group_id, None)
            self.store.drop_group(group_id)
            return True

        changed = self.store.load_group(state)
        logger.debug("Resynced group %s (changed=%s)", group_id, changed)
        return changed
