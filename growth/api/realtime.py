"""
growth/api/realtime.py
WebSocket endpoint streaming engagement updates to dashboards.

Read-only socket: clients receive real-time-engagement-update events and may
send {"type": "ping"} to keep the connection alive.
"""

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from datetime import datetime, timezone
from uuid import uuid4
import json
import logging

from growth.core.config import settings
from growth.core.logging import log_event
from growth.features.scoring.container import ScoringContainer, get_container

logger = logging.getLogger(__name__)

router = APIRouter()


def _origin_allowed(origin) -> bool:
    allowed = [o.strip() for o in settings.WS_ALLOWED_ORIGINS.split(",") if o.strip()]
    if not allowed or allowed == ["*"]:
        return True
    return bool(origin) and origin in allowed


@router.websocket("/v1/ws/engagement")
async def engagement_socket(websocket: WebSocket, container: ScoringContainer = Depends(get_container)):
    await websocket.accept()
    request_id = websocket.headers.get("X-Request-Id") or str(uuid4())
    connection_id = str(uuid4())
    channel = settings.ENGAGEMENT_CHANNEL
    hub = container.hub

    origin = websocket.headers.get("origin")
    if not _origin_allowed(origin):
        log_event("info", "ws.origin_blocked", request_id=request_id, event_type="ws.origin_blocked", extra={"origin": origin, "connection_id": connection_id})
        await _reject_and_close(websocket, request_id, "forbidden", "Origin not allowed")
        return

    await hub.register(channel, websocket)
    log_event("info", "ws.connected", request_id=request_id, event_type="ws.connected", extra={"channel": channel, "connection_id": connection_id})

    await websocket.send_json({
        "type": "connected",
        "channel": channel,
        "subscribers": await hub.get_channel_size(channel),
        "ts": datetime.now(timezone.utc).isoformat(),
        "request_id": request_id,
        "connection_id": connection_id,
    })

    try:
        while True:
            raw_message = await websocket.receive_text()
            try:
                data = json.loads(raw_message)
            except ValueError:
                log_event("debug", "ws.invalid_json", request_id=request_id, event_type="ws.invalid_json", extra={"connection_id": connection_id})
                continue

            if isinstance(data, dict) and data.get("type") == "ping":
                await websocket.send_json({
                    "type": "pong",
                    "ts": datetime.now(timezone.utc).isoformat(),
                    "request_id": request_id,
                })
    except WebSocketDisconnect:
        log_event("info", "ws.disconnected", request_id=request_id, event_type="ws.disconnected", extra={"connection_id": connection_id})
    except Exception as e:
        log_event("error", "ws.loop_error", request_id=request_id, event_type="ws.loop_error", extra={"error": str(e), "connection_id": connection_id})
    finally:
        await hub.unregister(channel, websocket)


async def _reject_and_close(websocket: WebSocket, request_id: str, code: str, message: str):
    try:
        await websocket.send_json({
            "type": "error",
            "code": code,
            "message": message,
            "request_id": request_id,
        })
        await websocket.close(code=1008, reason=message)
    except RuntimeError as e:
        logger.debug(f"[WS] close after reject failed: {e}")
