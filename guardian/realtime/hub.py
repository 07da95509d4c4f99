"""
In-process fan-out for the realtime chat channel.

Each socket gets a bounded outbound queue drained by its own writer task,
so a broadcast never awaits a peer. A peer whose queue is full is dropped
rather than allowed to stall the room.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from typing import Any
from uuid import UUID

from fastapi import WebSocket
from pydantic import BaseModel

from guardian import config
from guardian.models.actor import Actor

logger = logging.getLogger(__name__)

# Close code for "try again later" (RFC 6455 registry).
_CLOSE_TRY_AGAIN_LATER = 1013


def frame(event: str, data: Any = None, ref: Any = None) -> dict[str, Any]:
    """Build an outbound frame. Pydantic payloads are serialized with camelCase keys."""
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json", by_alias=True)
    out: dict[str, Any] = {"event": event, "data": data}
    if ref is not None:
        out["ref"] = ref
    return out


class Subscriber:
    """One connected socket: its identity, its rooms, and its send queue."""

    def __init__(self, websocket: WebSocket, actor: Actor | None, queue_size: int | None = None) -> None:
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.actor = actor
        self.rooms: set[UUID] = set()
        self.queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue(
            maxsize=queue_size or config.settings.WS_SEND_QUEUE_SIZE
        )
        self.closed = False
        self._writer: asyncio.Task | None = None

    @property
    def authenticated(self) -> bool:
        return self.actor is not None

    def start(self) -> None:
        self._writer = asyncio.create_task(self._drain())

    def send(self, message: dict[str, Any]) -> bool:
        """Queue a frame without waiting. Returns False if the queue is full or closed."""
        if self.closed:
            return False
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    async def _drain(self) -> None:
        while True:
            message = await self.queue.get()
            if message is None:
                return
            try:
                await self.websocket.send_json(message)
            except Exception as e:
                # Peer went away mid-send; the receive loop will notice.
                logger.debug("ws: send to %s failed: %s", self.id, e)
                self.closed = True
                return

    def close(self) -> None:
        """Stop the writer after it flushes what is already queued."""
        if self._writer is None or self._writer.done():
            self.closed = True
            return
        try:
            self.queue.put_nowait(None)
        except asyncio.QueueFull:
            self._writer.cancel()
        self.closed = True

    async def flush(self) -> None:
        """Wait for the writer to finish. Used on shutdown of a connection."""
        if self._writer is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._writer


class ConnectionHub:
    """Room groups of subscribers."""

    def __init__(self) -> None:
        self._groups: dict[UUID, dict[str, Subscriber]] = {}
        self._closing: set[asyncio.Task] = set()

    def members(self, room_id: UUID) -> list[Subscriber]:
        return list(self._groups.get(room_id, {}).values())

    def join(self, subscriber: Subscriber, room_id: UUID) -> None:
        self._groups.setdefault(room_id, {})[subscriber.id] = subscriber
        subscriber.rooms.add(room_id)

    def leave(self, subscriber: Subscriber, room_id: UUID) -> bool:
        """Unsubscribe. Returns False if the socket was not in the room."""
        subscriber.rooms.discard(room_id)
        group = self._groups.get(room_id)
        if not group or subscriber.id not in group:
            return False
        del group[subscriber.id]
        if not group:
            del self._groups[room_id]
        return True

    def disconnect(self, subscriber: Subscriber) -> list[UUID]:
        """Remove a socket from every room. Returns the rooms it was in."""
        rooms = list(subscriber.rooms)
        for room_id in rooms:
            self.leave(subscriber, room_id)
        return rooms

    def broadcast(self, room_id: UUID, message: dict[str, Any], exclude: Subscriber | None = None) -> int:
        """
        Queue a frame for every subscriber of a room.

        Args:
            room_id: Target room
            message: Frame to deliver
            exclude: Subscriber that should not receive it (the sender)

        Returns:
            Number of subscribers the frame was queued for
        """
        delivered = 0
        for subscriber in self.members(room_id):
            if subscriber is exclude:
                continue
            if subscriber.send(message):
                delivered += 1
            else:
                self._drop(subscriber)
        return delivered

    def evict(self, room_id: UUID, account_id: UUID | None = None) -> int:
        """
        Unsubscribe sockets whose access to a room was revoked.

        Each evicted socket gets a presence `left` frame for itself, and the
        remaining members are told it left. The sockets stay connected.

        Args:
            room_id: Room the access was revoked for
            account_id: Only evict this account's sockets; None evicts everyone

        Returns:
            Number of sockets evicted
        """
        evicted = [
            s for s in self.members(room_id) if account_id is None or (s.actor is not None and s.actor.id == account_id)
        ]
        for subscriber in evicted:
            self.leave(subscriber, room_id)
            if subscriber.actor is None:
                continue
            left = frame("presence", {"userId": str(subscriber.actor.id), "state": "left", "roomId": str(room_id)})
            subscriber.send(left)
            self.broadcast(room_id, left)
        if evicted:
            logger.info("ws: evicted %d socket(s) from room %s", len(evicted), room_id)
        return len(evicted)

    def evict_account(self, account_id: UUID) -> int:
        """Evict an account's sockets from every room, e.g. after it was deleted."""
        return sum(self.evict(room_id, account_id) for room_id in list(self._groups))

    def _drop(self, subscriber: Subscriber) -> None:
        logger.warning("ws: dropping slow subscriber %s", subscriber.id)
        self.disconnect(subscriber)
        subscriber.close()
        task = asyncio.create_task(self._close_socket(subscriber.websocket))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    @staticmethod
    async def _close_socket(websocket: WebSocket) -> None:
        try:
            await websocket.close(code=_CLOSE_TRY_AGAIN_LATER)
        except (RuntimeError, OSError):
            # Already closed
            pass


hub = ConnectionHub()
