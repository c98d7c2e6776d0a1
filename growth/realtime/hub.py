"""
growth/realtime/hub.py
In-memory pubsub hub for engagement updates.

Single instance fans events out to all WebSocket clients subscribed to a
channel. Dead sockets are pruned on send.
"""

from datetime import datetime, timezone
from typing import Dict, Set
from fastapi import WebSocket
import asyncio
import logging

from growth.core.metrics import (
    ws_active_connections,
    ws_connections_total,
    ws_messages_sent_total,
)

logger = logging.getLogger(__name__)


class BroadcastHub:
    """
    In-memory channel broadcast hub.

    Maps channel -> Set[WebSocket], allows safe concurrent access.
    """

    def __init__(self):
        self._channels: Dict[str, Set[WebSocket]] = {}
        self._global_count: int = 0
        self._lock = asyncio.Lock()

    async def register(self, channel: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._channels.setdefault(channel, set()).add(websocket)
            self._global_count += 1
            ws_connections_total.inc()
            ws_active_connections.set(self._global_count)
            logger.debug(f"[HUB] Registered socket on {channel}. Total: {len(self._channels[channel])}")

    async def unregister(self, channel: str, websocket: WebSocket) -> None:
        async with self._lock:
            sockets = self._channels.get(channel)
            if sockets is None or websocket not in sockets:
                return
            sockets.discard(websocket)
            self._global_count = max(0, self._global_count - 1)
            if not sockets:
                del self._channels[channel]
            ws_active_connections.set(self._global_count)

    async def publish(self, channel: str, event_name: str, payload: dict) -> int:
        """
        Send an event to every subscriber of a channel.

        Returns the number of sockets the message reached.
        """
        async with self._lock:
            sockets = set(self._channels.get(channel, set()))
        if not sockets:
            return 0

        message = {
            "type": event_name,
            "channel": channel,
            "data": payload,
            "ts": datetime.now(timezone.utc).isoformat(),
        }
        delivered = 0
        dead_sockets = []
        for ws in sockets:
            try:
                await ws.send_json(message)
                delivered += 1
                ws_messages_sent_total.inc(labels={"event_name": event_name})
            except Exception as e:
                logger.debug(f"[HUB] Failed to send to socket: {e}")
                dead_sockets.append(ws)

        if dead_sockets:
            async with self._lock:
                live = self._channels.get(channel, set())
                for ws in dead_sockets:
                    if ws in live:
                        live.discard(ws)
                        self._global_count = max(0, self._global_count - 1)
                if channel in self._channels and not live:
                    del self._channels[channel]
                ws_active_connections.set(self._global_count)
            logger.debug(f"[HUB] Pruned {len(dead_sockets)} dead sockets from {channel}")
        return delivered

    async def get_channel_size(self, channel: str) -> int:
        async with self._lock:
            return len(self._channels.get(channel, set()))

    async def reset(self) -> None:
        """FOR TESTING ONLY."""
        async with self._lock:
            self._channels.clear()
            self._global_count = 0
            ws_active_connections.set(0)


# Global singleton hub instance
hub = BroadcastHub()
