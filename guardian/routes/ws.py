"""
WebSocket endpoint for the realtime chat channel.

Accepts connections at /ws/chat. The token comes from the `token` query
parameter or an `Authorization: Bearer` header. A missing or bad token does
not close the socket; it stays connected but every room event is refused.

Protocol:
  Client -> Server:  {"event": "joinRoom",  "data": {"roomId": ...}, "ref": <any>}
                     {"event": "leaveRoom", "data": {"roomId": ...}}
                     {"event": "sendText",  "data": {"roomId", "text", "senderModel", "senderId"}}
                     {"event": "signal",    "data": {"roomId", "senderModel", "senderId", "type", "payload"}}
  Server -> Client:  {"event": "connected", "data": {"authenticated": bool}}
                     {"event": "presence",   "data": {"userId", "state", "roomId"}}
                     {"event": "newMessage", "data": <message>}
                     {"event": "signal",     "data": <signal>}
                     {"event": "ack",   "ref": ..., "data": {"event", "ok": true, ...}}
                     {"event": "error", "ref": ..., "data": {"event", "error", "status"}}
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from guardian import config
from guardian.auth import bearer_token, resolve_actor
from guardian.errors import AppError, Unauthorized
from guardian.models.actor import Actor
from guardian.models.message import MessageResponse, Sender
from guardian.models.realtime import Presence, RoomEvent, SendTextEvent, SignalBroadcast, SignalEvent
from guardian.realtime.hub import Subscriber, frame, hub
from guardian.services.message_log import message_log
from guardian.services.room_registry import room_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])

Handler = Callable[[Subscriber, Any], Awaitable[dict[str, Any]]]


def _require_actor(subscriber: Subscriber) -> Actor:
    if subscriber.actor is None:
        raise Unauthorized("Not authenticated. Reconnect with a valid token.")
    return subscriber.actor


async def _authenticate(websocket: WebSocket) -> Actor | None:
    token = websocket.query_params.get("token") or bearer_token(websocket.headers.get("authorization"))
    if not token:
        return None
    try:
        return await resolve_actor(token)
    except AppError as e:
        logger.info("ws: authentication failed: %s", e.detail)
        return None


# ── handlers ─────────────────────────────────────────────────────────────────


async def _join_room(subscriber: Subscriber, data: Any) -> dict[str, Any]:
    actor = _require_actor(subscriber)
    event = RoomEvent.model_validate(data)

    if config.settings.WS_ENFORCE_ROOM_ACCESS:
        await room_registry.get_room(event.room_id, actor)

    hub.join(subscriber, event.room_id)
    hub.broadcast(event.room_id, frame("presence", Presence(user_id=actor.id, state="joined", room_id=event.room_id)))
    logger.info("ws: %s joined room %s", actor.id, event.room_id)
    return {"roomId": str(event.room_id)}


async def _leave_room(subscriber: Subscriber, data: Any) -> dict[str, Any]:
    event = RoomEvent.model_validate(data)
    if hub.leave(subscriber, event.room_id) and subscriber.actor is not None:
        presence = Presence(user_id=subscriber.actor.id, state="left", room_id=event.room_id)
        hub.broadcast(event.room_id, frame("presence", presence))
    return {"roomId": str(event.room_id)}


async def _send_text(subscriber: Subscriber, data: Any) -> dict[str, Any]:
    actor = _require_actor(subscriber)
    event = SendTextEvent.model_validate(data)

    message = await message_log.send_text(
        event.room_id,
        Sender.from_wire(event.sender_model, event.sender_id),
        event.text,
        actor,
    )
    # Text goes to every subscriber, the sender included.
    hub.broadcast(message.room_id, frame("newMessage", MessageResponse.from_model(message)))
    return {"messageId": str(message.id)}


async def _signal(subscriber: Subscriber, data: Any) -> dict[str, Any]:
    actor = _require_actor(subscriber)
    event = SignalEvent.model_validate(data)

    message = await message_log.send_signal(
        event.room_id,
        Sender.from_wire(event.sender_model, event.sender_id),
        event.type,
        event.payload,
        actor,
    )
    # Signaling goes to the other side only.
    hub.broadcast(message.room_id, frame("signal", SignalBroadcast.from_model(message)), exclude=subscriber)
    return {"messageId": str(message.id)}


_HANDLERS: dict[str, Handler] = {
    "joinRoom": _join_room,
    "leaveRoom": _leave_room,
    "sendText": _send_text,
    "signal": _signal,
}


def _error(event: str | None, ref: Any, detail: Any, status_code: int) -> dict[str, Any]:
    return frame("error", {"event": event, "error": detail, "status": status_code}, ref=ref)


async def _dispatch(subscriber: Subscriber, raw: str) -> None:
    """Run one client frame. Every outcome becomes an ack or error frame."""
    try:
        msg = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("ws: malformed message from client: %r", raw[:200])
        subscriber.send(_error(None, None, "Malformed JSON.", status.HTTP_400_BAD_REQUEST))
        return

    if not isinstance(msg, dict):
        subscriber.send(_error(None, None, "Frames must be JSON objects.", status.HTTP_400_BAD_REQUEST))
        return

    event = msg.get("event")
    ref = msg.get("ref")
    handler = _HANDLERS.get(event) if isinstance(event, str) else None
    if handler is None:
        subscriber.send(_error(event, ref, f"Unknown event: {event}", status.HTTP_400_BAD_REQUEST))
        return

    try:
        result = await handler(subscriber, msg.get("data") or {})
    except AppError as e:
        subscriber.send(_error(event, ref, e.detail, e.status_code))
        return
    except ValidationError as e:
        errors = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]
        subscriber.send(_error(event, ref, errors, status.HTTP_400_BAD_REQUEST))
        return
    except Exception:
        logger.exception("ws: %s handler failed for %s", event, subscriber.id)
        subscriber.send(_error(event, ref, "Internal error.", status.HTTP_500_INTERNAL_SERVER_ERROR))
        return

    subscriber.send(frame("ack", {"event": event, "ok": True, **result}, ref=ref))


@router.websocket("/ws/chat")
async def chat_websocket(websocket: WebSocket) -> None:
    """Realtime chat: room subscriptions, text fan-out, and call signaling."""
    await websocket.accept()
    actor = await _authenticate(websocket)

    subscriber = Subscriber(websocket, actor)
    subscriber.start()
    subscriber.send(frame("connected", {"authenticated": actor is not None}))
    logger.info("ws: connected %s actor=%s", subscriber.id, actor.id if actor else None)

    try:
        while True:
            raw = await websocket.receive_text()
            await _dispatch(subscriber, raw)
            if subscriber.closed:
                break
    except WebSocketDisconnect:
        pass
    finally:
        for room_id in hub.disconnect(subscriber):
            if actor is not None:
                hub.broadcast(room_id, frame("presence", Presence(user_id=actor.id, state="left", room_id=room_id)))
        subscriber.close()
        logger.info("ws: disconnected %s", subscriber.id)
