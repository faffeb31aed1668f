"""
relay.py — Server side of the ledger transport.

LedgerRelay owns one SocketHub per Flask app and handles three client events:

  join / leave        room membership (`user:<username>`, `group:<id>`)
  ledger-mutation     persist through event_service.apply_command(), then
                      re-emit to the group room, skipping the sender, ONLY if
                      the backing store changed. Replays therefore stop here.
                      Entries that arrive without an id get one first, and
                      the re-emitted command carries it.

HTTP routes call relay.publish(command) after their commit so that clients
watching the group see REST-initiated changes too. Membership changes go out
as `group-members` (relay.publish_members); clients cannot send those.

Pattern (same as extensions.py):
    relay = LedgerRelay()      # module level, no app attached
    relay.init_app(app)        # inside create_app()
"""

from __future__ import annotations

import logging

from flask import Flask, current_app
from marshmallow import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from splitchat.app.errors import AppError
from splitchat.app.extensions import db
from splitchat.app.ledger.commands import Command, from_message, to_message
from splitchat.app.ledger.gateway import MEMBERS_EVENT, MUTATION_EVENT, group_room
from splitchat.app.ledger.store import assign_ids
from splitchat.app.ledger.transport import SocketHub
from splitchat.app.ledger.types import GroupState
from splitchat.app.schemas.ledger_schema import dump_member
from splitchat.app.services import event_service


logger = logging.getLogger(__name__)

_EXTENSION_KEY = "ledger_relay"


class LedgerRelay:

    def __init__(self, app: Flask | None = None) -> None:
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask, hub: SocketHub | None = None) -> SocketHub:
        hub = hub if hub is not None else SocketHub()
        app.extensions[_EXTENSION_KEY] = hub

        hub.on("join", lambda sid, room: self._on_join(hub, sid, room))
        hub.on("leave", lambda sid, room: self._on_leave(hub, sid, room))
        hub.on(MUTATION_EVENT, lambda sid, message: self._on_mutation(app, hub, sid, message))
        return hub

    def hub_for(self, app: Flask | None = None) -> SocketHub:
        app = app if app is not None else current_app
        return app.extensions[_EXTENSION_KEY]

    # ── Outbound (HTTP routes) ─────────────────────────────────────────────

    def publish(self, command: Command, origin: str | None = None) -> int:
        """Broadcasts a committed command to the group's room."""
        return self.hub_for().emit(
            MUTATION_EVENT,
            to_message(command, origin=origin),
            room=group_room(command.group_id),
        )

    def publish_members(self, state: GroupState, origin: str | None = None) -> int:
        """Broadcasts a group's committed membership list to its room."""
        return self.hub_for().emit(
            MEMBERS_EVENT,
            {
                "group_id": state.group_id,
                "members": [dump_member(m) for m in state.members],
                "origin": origin,
            },
            room=group_room(state.group_id),
        )

    # ── Client events ──────────────────────────────────────────────────────

    def _on_join(self, hub: SocketHub, sid: str, room) -> None:
        if not isinstance(room, str) or not room:
            logger.warning("Ignoring join with invalid room %r from %s", room, sid)
            return
        hub.enter_room(sid, room)

    def _on_leave(self, hub: SocketHub, sid: str, room) -> None:
        if isinstance(room, str):
            hub.leave_room(sid, room)

    def _on_mutation(self, app: Flask, hub: SocketHub, sid: str, message) -> None:
        try:
            command = assign_ids(from_message(message))
        except (ValidationError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Dropped malformed mutation from %s: %s", sid, exc)
            return

        with app.app_context():
            try:
                changed = event_service.apply_command(command, db.session)
                db.session.commit()
            except AppError as exc:
                db.session.rollback()
                logger.warning(
                    "Rejected %s for group %s from %s: %s",
                    command.kind,
                    command.group_id,
                    sid,
                    exc.message,
                )
                return
            except SQLAlchemyError:
                db.session.rollback()
                logger.exception(
                    "Persisting %s for group %s failed",
                    command.kind,
                    command.group_id,
                )
                return

        if changed:
            hub.emit(
                MUTATION_EVENT,
                to_message(command, origin=message.get("origin")),
                room=group_room(command.group_id),
                skip_sid=sid,
            )


relay = LedgerRelay()
