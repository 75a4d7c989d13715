"""
Real-time notification channel.

Features:
- One room per identity (user or organization id); a room holds every open
  WebSocket of that identity
- Events are JSON `{"event": name, "data": payload}`
- Optional Redis Pub/Sub fan-out so any process (API or ARQ worker) can
  reach sockets held by another API process
- Dead sockets are dropped on send failure
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Protocol
from uuid import UUID

import structlog
from fastapi import Request, WebSocket

from app.core.redis import get_redis

log = structlog.get_logger()

REDIS_NOTIFICATION_CHANNEL = "vc:notifications"


class NotificationChannel(Protocol):
    async def emit(self, identity_id: UUID | str, event: str, payload: dict[str, Any]) -> None:
        ...


class ConnectionManager:
    """
    Manages per-identity WebSocket rooms.

    Local connections are tracked in-memory. With `redis_fanout`, `emit`
    publishes to Redis and the listener started by `start()` delivers to the
    local rooms, so every process sees every event exactly once.
    """

    def __init__(self, redis_fanout: bool = False) -> None:
        self.redis_fanout = redis_fanout
        # identity_id_str -> set[WebSocket]
        self._rooms: dict[str, set[WebSocket]] = {}
        self._listener: asyncio.Task | None = None

    @property
    def rooms(self) -> dict[str, set[WebSocket]]:
        return self._rooms

    async def connect(self, websocket: WebSocket, identity_id: UUID | str) -> None:
        """Register an already accepted WebSocket in its identity room."""
        room = str(identity_id)
        self._rooms.setdefault(room, set()).add(websocket)
        log.info("ws.connected", identity_id=room, sockets=len(self._rooms[room]))

    def disconnect(self, websocket: WebSocket, identity_id: UUID | str) -> None:
        room = str(identity_id)
        sockets = self._rooms.get(room)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self._rooms[room]
        log.info("ws.disconnected", identity_id=room)

    async def emit(self, identity_id: UUID | str, event: str, payload: dict[str, Any]) -> None:
        """Send an event to every socket in the identity's room."""
        message = {"room": str(identity_id), "event": event, "data": payload}
        if self.redis_fanout:
            redis = await get_redis()
            await redis.publish(REDIS_NOTIFICATION_CHANNEL, json.dumps(message))
            return
        await self.deliver_local(message["room"], event, payload)

    async def deliver_local(self, room: str, event: str, payload: dict[str, Any]) -> None:
        sockets = self._rooms.get(room)
        if not sockets:
            return

        msg_text = json.dumps({"event": event, "data": payload})

        dead: list[WebSocket] = []
        for websocket in list(sockets):
            try:
                await websocket.send_text(msg_text)
            except Exception:
                dead.append(websocket)

        for websocket in dead:
            self.disconnect(websocket, room)

    # --- Redis Pub/Sub Listener ---

    async def start(self) -> None:
        if self.redis_fanout and self._listener is None:
            self._listener = asyncio.create_task(self._listen_redis())

    async def stop(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            self._listener = None

    async def _listen_redis(self) -> None:
        """Deliver events published by any process to the local rooms."""
        redis = await get_redis()
        pubsub = redis.pubsub()
        await pubsub.subscribe(REDIS_NOTIFICATION_CHANNEL)

        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                data = json.loads(message["data"])
                await self.deliver_local(data["room"], data["event"], data["data"])
        except asyncio.CancelledError:
            log.info("ws.redis_listener_cancelled")
        finally:
            await pubsub.unsubscribe(REDIS_NOTIFICATION_CHANNEL)
            await pubsub.close()


def get_notifier(request: Request) -> NotificationChannel:
    """FastAPI dependency for the app's notification channel."""
    return request.app.state.notifier
