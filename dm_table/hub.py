"""Room multicast.

Core services talk to players through the Broadcaster protocol. Both calls
only enqueue, so a handler's synchronous section never yields to another
handler while it is emitting.

ConnectionHub is the websocket-backed implementation: one outbox queue per
connection, drained by a writer task owned by the websocket endpoint.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Broadcaster(Protocol):
    def emit(self, room_id: str, event: str, payload: Any, exclude: str | None = None) -> None: ...

    def send(self, connection_id: str, event: str, payload: Any) -> None: ...


class ConnectionHub:
    """Tracks connections and the room each one listens to."""

    def __init__(self) -> None:
        self._outboxes: dict[str, asyncio.Queue] = {}
        self._rooms: dict[str, set[str]] = {}

    def register(self, connection_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._outboxes[connection_id] = queue
        return queue

    def unregister(self, connection_id: str) -> None:
        self._outboxes.pop(connection_id, None)
        for room_id in list(self._rooms):
            self.leave(room_id, connection_id)

    def join(self, room_id: str, connection_id: str) -> None:
        self._rooms.setdefault(room_id, set()).add(connection_id)

    def leave(self, room_id: str, connection_id: str) -> None:
        members = self._rooms.get(room_id)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self._rooms[room_id]

    def connections(self, room_id: str) -> set[str]:
        return set(self._rooms.get(room_id, set()))

    def send(self, connection_id: str, event: str, payload: Any) -> None:
        queue = self._outboxes.get(connection_id)
        if queue is None:
            logger.debug("drop %s for closed connection %s", event, connection_id)
            return
        queue.put_nowait({"event": event, "data": payload})

    def emit(self, room_id: str, event: str, payload: Any, exclude: str | None = None) -> None:
        for connection_id in self._rooms.get(room_id, ()):
            if connection_id != exclude:
                self.send(connection_id, event, payload)


class RoomHub(Broadcaster, Protocol):
    """A Broadcaster that also tracks which room each connection listens to."""

    def join(self, room_id: str, connection_id: str) -> None: ...

    def leave(self, room_id: str, connection_id: str) -> None: ...
