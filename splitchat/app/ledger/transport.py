"""
ledger/transport.py — Room-based pub/sub transport.

The gateway talks to a Transport; anything socket.io-shaped satisfies it:

    join_room(room)          ask the server to put this connection in a room
    leave_room(room)
    emit(event, payload)     send to the server
    on(event, handler)       handler(payload) for server → client messages
    connected                bool

SocketHub / HubClient are the in-process implementation used by the server
relay and by tests. Semantics follow socket.io:
  - delivery is synchronous and in send order (per-connection FIFO);
  - a server disconnect drops every room membership of that connection, so
    clients rejoin their rooms from their `connect` handler;
  - a handler that raises is logged and skipped; other receivers still get
    the message.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from typing import Any, Callable, Protocol

from splitchat.app.errors import TransportError


logger = logging.getLogger(__name__)

ClientHandler = Callable[[Any], None]
ServerHandler = Callable[[str, Any], None]


class Transport(Protocol):

    @property
    def connected(self) -> bool: ...

    def join_room(self, room: str) -> None: ...

    def leave_room(self, room: str) -> None: ...

    def emit(self, event: str, payload: Any) -> None: ...

    def on(self, event: str, handler: ClientHandler) -> None: ...


def _call_safely(handler, event: str, *args) -> None:
    try:
        handler(*args)
    except Exception:
        logger.exception("Handler for %r failed", event)


# ── Server side ────────────────────────────────────────────────────────────

class SocketHub:

    def __init__(self) -> None:
        self._handlers: dict[str, list[ServerHandler]] = defaultdict(list)
        self._clients: dict[str, HubClient] = {}
        # dict-as-ordered-set: delivery order follows join order
        self._rooms: dict[str, dict[str, None]] = defaultdict(dict)

    def on(self, event: str, handler: ServerHandler) -> None:
        self._handlers[event].append(handler)

    def connect(self) -> "HubClient":
        client = HubClient(self, uuid.uuid4().hex)
        self._attach(client)
        return client

    # ── Rooms ──────────────────────────────────────────────────────────────

    def enter_room(self, sid: str, room: str) -> None:
        if sid in self._clients:
            self._rooms[room][sid] = None

    def leave_room(self, sid: str, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.pop(sid, None)
            if not members:
                del self._rooms[room]

    def rooms(self, sid: str) -> set[str]:
        return {room for room, members in self._rooms.items() if sid in members}

    def room_members(self, room: str) -> list[str]:
        return list(self._rooms.get(room, ()))

    # ── Delivery ───────────────────────────────────────────────────────────

    def emit(
            self,
            event: str,
            payload: Any,
            room: str | None = None,
            to: str | None = None,
            skip_sid: str | None = None,
    ) -> int:
        """
        Sends to one connection (`to`), a room, or everybody. Returns the
        number of connections the message was handed to.
        """
        if to is not None:
            targets = [to]
        elif room is not None:
            targets = self.room_members(room)
        else:
            targets = list(self._clients)

        delivered = 0
        for sid in targets:
            if sid == skip_sid:
                continue
            client = self._clients.get(sid)
            if client is None:
                continue
            client._receive(event, payload)
            delivered += 1
        return delivered

    # ── Connection lifecycle (called by HubClient) ─────────────────────────

    def _attach(self, client: "HubClient") -> None:
        self._clients[client.sid] = client
        client._connected = True
        self._dispatch(client.sid, "connect", None)

    def _detach(self, sid: str) -> None:
        for room in list(self._rooms):
            self.leave_room(sid, room)
        self._clients.pop(sid, None)
        self._dispatch(sid, "disconnect", None)

    def _dispatch(self, sid: str, event: str, payload: Any) -> None:
        handlers = self._handlers.get(event)
        if not handlers:
            if event not in ("connect", "disconnect"):
                logger.debug("No server handler for %r from %s", event, sid)
            return
        for handler in list(handlers):
            _call_safely(handler, event, sid, payload)


# ── Client side ────────────────────────────────────────────────────────────

class HubClient:
    """One connection to a SocketHub. Implements Transport."""

    def __init__(self, hub: SocketHub, sid: str) -> None:
        self._hub = hub
        self.sid = sid
        self._handlers: dict[str, list[ClientHandler]] = defaultdict(list)
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def on(self, event: str, handler: ClientHandler) -> None:
        self._handlers[event].append(handler)

    def emit(self, event: str, payload: Any) -> None:
        if not self._connected:
            raise TransportError(f"Cannot emit {event!r}: connection {self.sid} is closed.")
        self._hub._dispatch(self.sid, event, payload)

    def join_room(self, room: str) -> None:
        self.emit("join", room)

    def leave_room(self, room: str) -> None:
        self.emit("leave", room)

    def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        self._hub._detach(self.sid)
        self._fire("disconnect", None)

    def reconnect(self) -> None:
        """Re-attaches with the same sid. Rooms are NOT restored."""
        if self._connected:
            return
        self._hub._attach(self)
        self._fire("connect", None)

    def _receive(self, event: str, payload: Any) -> None:
        if self._connected:
            self._fire(event, payload)

    def _fire(self, event: str, payload: Any) -> None:
        for handler in list(self._handlers.get(event, ())):
            _call_safely(handler, event, payload)
