"""Per-user event hub for realtime WebSocket delivery."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, Set

from fastapi.websockets import WebSocket, WebSocketState

from app.monitoring.metrics import realtime_connections, realtime_events_total

logger = logging.getLogger(__name__)


class UserEventHub:
    """Tracks the event sockets of every connected user.

    A user may hold several sockets (one per tab or device); events are fanned
    out to all of them.
    """

    def __init__(self) -> None:
        self._connections: Dict[int, Set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, user_id: int, websocket: WebSocket) -> bool:
        """Register a socket and return ``True`` when it is the user's first one."""

        async with self._lock:
            sockets = self._connections[user_id]
            first = not sockets
            sockets.add(websocket)
        realtime_connections.inc()
        return first

    async def disconnect(self, user_id: int, websocket: WebSocket) -> bool:
        """Forget a socket and return ``True`` when the user has none left."""

        async with self._lock:
            sockets = self._connections.get(user_id)
            if not sockets or websocket not in sockets:
                return False
            sockets.discard(websocket)
            if sockets:
                last = False
            else:
                self._connections.pop(user_id, None)
                last = True
        realtime_connections.dec()
        return last

    def is_connected(self, user_id: int) -> bool:
        return bool(self._connections.get(user_id))

    async def send(self, user_id: int, payload: Dict[str, Any]) -> None:
        await self.broadcast([user_id], payload)

    async def broadcast(self, recipients: Iterable[int], payload: Dict[str, Any]) -> None:
        unique_recipients = set(recipients)
        if not unique_recipients:
            return
        async with self._lock:
            targets = [
                list(self._connections.get(recipient_id, set()))
                for recipient_id in unique_recipients
            ]
        event_type = str(payload.get("type", "unknown"))
        for sockets in targets:
            for socket in sockets:
                if socket.application_state != WebSocketState.CONNECTED:
                    continue
                try:
                    await socket.send_json(payload)
                except RuntimeError as exc:
                    logger.debug("Dropping %s event for closed socket: %s", event_type, exc)
                    continue
                realtime_events_total.labels(event_type).inc()


event_hub = UserEventHub()
"""Singleton hub shared by the REST endpoints and the event stream."""
