"""WebSocket event stream delivering realtime updates to a user."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Dict, TypeVar

from fastapi import APIRouter, WebSocket, status
from fastapi.exceptions import HTTPException
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from kindred.realtime.typing import get_typing_store

from app.api.deps import are_friends, get_user_from_token
from app.config import get_settings
from app.database import get_db_session
from app.models import DirectConversation, User
from app.services.events import event_hub
from app.services.notifications import unread_payload
from app.services.presence import (
    broadcast_presence,
    friend_ids,
    mark_offline,
    mark_online,
    presence_payload,
)

router = APIRouter(prefix="/ws", tags=["ws"])

settings = get_settings()

logger = logging.getLogger(__name__)

typing_store = get_typing_store(settings.typing_ttl_seconds)

_typing_timers: set[asyncio.Task[None]] = set()

T = TypeVar("T")


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    ping_payload: Dict[str, Any] | None = None,
) -> AsyncIterator[T]:
    """Yield messages from *receiver* while sending keepalive pings when idle."""

    ping_payload = ping_payload or {"type": "ping"}
    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break

            now = time.monotonic()
            should_ping = False
            if interval <= 0:
                should_ping = True
            else:
                if now - last_activity >= interval and (
                    last_ping_sent is None or now - last_ping_sent >= interval
                ):
                    should_ping = True

            if should_ping:
                if not await safe_send_json(websocket, ping_payload):
                    break
                last_ping_sent = now
            continue
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            raise
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


async def _resolve_user(websocket: WebSocket) -> int | None:
    token = websocket.query_params.get("token")
    if not token:
        auth_header = websocket.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.removeprefix("Bearer ").strip()
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Missing token")
        return None

    try:
        with get_db_session() as db:
            return get_user_from_token(token, db).id
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
        return None


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Safely send JSON data through websocket, handling disconnections gracefully.

    Returns True if message was sent successfully, False otherwise.
    """
    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Failed to send websocket message: %s", e)
        return False


async def _send_error(websocket: WebSocket, detail: str) -> None:
    await safe_send_json(websocket, {"type": "error", "detail": detail})


async def _send_snapshot(user_id: int, websocket: WebSocket) -> None:
    with get_db_session() as db:
        friends = friend_ids(user_id, db)
        users = [db.get(User, friend_id) for friend_id in friends]
        await safe_send_json(
            websocket,
            {
                "type": "snapshot",
                "user_id": user_id,
                "unread": unread_payload(user_id, db),
                "presence": [presence_payload(user) for user in users if user is not None],
            },
        )


async def _set_presence(user_id: int, online: bool) -> None:
    with get_db_session() as db:
        user = db.get(User, user_id)
        if user is None:
            return
        changed = mark_online(user, db) if online else mark_offline(user, db)
        if changed:
            await broadcast_presence(user, db)


def _typing_event(chat_id: int, users: list[dict[str, Any]]) -> dict[str, Any]:
    return {"type": "typing", "chat_id": chat_id, "users": users}


async def _expire_typing_later(chat_id: int, recipient_id: int) -> None:
    await asyncio.sleep(typing_store.ttl + 0.05)
    snapshot, removed = await typing_store.expire(chat_id)
    if removed:
        await event_hub.send(recipient_id, _typing_event(chat_id, snapshot))


async def _handle_typing(user_id: int, websocket: WebSocket, payload: dict[str, Any]) -> None:
    try:
        chat_id = int(payload.get("chat_id"))
    except (TypeError, ValueError):
        await _send_error(websocket, "chat_id is required")
        return
    is_typing = payload.get("is_typing", True)
    if not isinstance(is_typing, bool):
        await _send_error(websocket, "is_typing must be a boolean")
        return

    with get_db_session() as db:
        conversation = db.get(DirectConversation, chat_id)
        if conversation is None or not conversation.has_user(user_id):
            await _send_error(websocket, "Not a chat participant")
            return
        recipient_id = conversation.other_user_id(user_id)
        if not are_friends(user_id, recipient_id, db):
            await _send_error(websocket, "You are no longer friends")
            return
        user = db.get(User, user_id)
        display_name = user.name if user is not None else str(user_id)

    snapshot, changed = await typing_store.set_status(
        chat_id,
        user_id=user_id,
        display_name=display_name,
        is_typing=is_typing,
    )
    if changed:
        await event_hub.send(recipient_id, _typing_event(chat_id, snapshot))
    if is_typing:
        timer = asyncio.create_task(_expire_typing_later(chat_id, recipient_id))
        _typing_timers.add(timer)
        timer.add_done_callback(_typing_timers.discard)


async def _clear_typing(user_id: int) -> None:
    affected = await typing_store.clear_user(user_id)
    if not affected:
        return
    with get_db_session() as db:
        for chat_id, snapshot in affected.items():
            conversation = db.get(DirectConversation, chat_id)
            if conversation is None:
                continue
            await event_hub.send(conversation.other_user_id(user_id), _typing_event(chat_id, snapshot))


@router.websocket("/events")
async def websocket_events(websocket: WebSocket) -> None:
    """Stream chat, presence, typing and call events for the authenticated user."""

    user_id = await _resolve_user(websocket)
    if user_id is None:
        return

    await websocket.accept()
    await event_hub.connect(user_id, websocket)
    try:
        await _set_presence(user_id, online=True)
        await _send_snapshot(user_id, websocket)
        timeout_seconds = settings.websocket_keepalive_timeout_seconds
        ping_interval = settings.websocket_keepalive_ping_interval_seconds
        async for raw_message in iter_keepalive_messages(
            websocket,
            websocket.receive_text,
            timeout_seconds=timeout_seconds,
            ping_interval_seconds=ping_interval,
        ):
            if not raw_message:
                continue
            if raw_message.strip().lower() == "ping":
                await safe_send_json(websocket, {"type": "pong"})
                continue
            try:
                payload = json.loads(raw_message)
            except json.JSONDecodeError:
                await _send_error(websocket, "Invalid payload")
                continue
            if not isinstance(payload, dict):
                await _send_error(websocket, "Invalid payload")
                continue

            message_type = payload.get("type")
            if message_type == "ping":
                await safe_send_json(websocket, {"type": "pong"})
            elif message_type == "pong":
                continue
            elif message_type == "heartbeat":
                await _set_presence(user_id, online=True)
                await safe_send_json(websocket, {"type": "heartbeat_ack"})
            elif message_type == "typing":
                await _handle_typing(user_id, websocket, payload)
            else:
                await _send_error(websocket, "Unsupported message type")
    finally:
        last = await event_hub.disconnect(user_id, websocket)
        if last:
            await _clear_typing(user_id)
            await _set_presence(user_id, online=False)
