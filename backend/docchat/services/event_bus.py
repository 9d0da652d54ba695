from typing import Set
from fastapi import WebSocket
import asyncio
import logging

from docchat.core.events import HostEvent

logger = logging.getLogger(__name__)


class EventBus:
    """Outbound channel to the host frame(s) connected over WebSocket."""

    def __init__(self):
        self.connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self.connections.add(websocket)

    async def disconnect(self, websocket: WebSocket):
        async with self._lock:
            self.connections.discard(websocket)

    async def publish(self, event: HostEvent):
        """Send an event to every connected host."""
        message = event.model_dump_json()
        disconnected = set()

        if not self.connections:
            logger.debug("No host connected; %s not delivered", event.type)

        for ws in self.connections.copy():
            try:
                await ws.send_text(message)
            except Exception:
                disconnected.add(ws)

        if disconnected:
            async with self._lock:
                self.connections -= disconnected
