"""
Real-time notification WebSocket.

WS /ws?token=<jwt> — joins the caller's identity room. The session cookie is
accepted in place of `token`.

Client frames:
- {"type": "ping"} → {"type": "pong"}
- {"type": "upload:progress", "videoId": ..., "progress": 0-100} → relayed
  to the sender's own room as an `upload:progress` event
"""

from __future__ import annotations

import json
from typing import Optional

import pydantic
import structlog
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import authenticate_ws_token
from app.core.database import get_session
from videoconnect_shared.schemas.notifications import EventName, UploadProgressPayload

log = structlog.get_logger()
router = APIRouter()


async def _send_error(websocket: WebSocket, code: str, message: str) -> None:
    await websocket.send_text(json.dumps({"type": "error", "code": code, "message": message}))


@router.websocket("/ws")
async def notifications_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
):
    auth = await authenticate_ws_token(websocket, token, session)
    await websocket.accept()
    if auth is None:
        # Accept first so the client sees the close code rather than a 403
        await websocket.close(code=4001, reason="authentication_failed")
        return

    manager = websocket.app.state.connections
    notifier = websocket.app.state.notifier
    await manager.connect(websocket, auth.account_id)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                frame = json.loads(data)
            except json.JSONDecodeError:
                await _send_error(websocket, "INVALID_JSON", "Could not parse message as JSON.")
                continue
            if not isinstance(frame, dict):
                await _send_error(websocket, "INVALID_FRAME", "Frames must be JSON objects.")
                continue

            frame_type = frame.get("type")

            # --- Ping/Pong ---
            if frame_type == "ping":
                await websocket.send_text(json.dumps({"type": "pong"}))
                continue

            # --- Upload progress relay ---
            if frame_type == EventName.UPLOAD_PROGRESS.value:
                try:
                    payload = UploadProgressPayload.model_validate(frame)
                except pydantic.ValidationError:
                    await _send_error(
                        websocket, "INVALID_PROGRESS", "videoId and progress (0-100) are required."
                    )
                    continue
                await notifier.emit(
                    auth.account_id, EventName.UPLOAD_PROGRESS.value, payload.model_dump(mode="json")
                )
                continue

            await _send_error(websocket, "UNKNOWN_FRAME", f"Unsupported frame type: {frame_type}")
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket, auth.account_id)
