"""WebSocket broadcasting of autonomous loop events."""

import asyncio
import logging
from typing import Any

from fastapi import WebSocket
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks WebSocket clients and fans messages out to all of them."""

    def __init__(self):
        self.active_connections: list[WebSocket] = []
        self._pending: set[asyncio.Task] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info(f"WebSocket connected. Total: {len(self.active_connections)}")

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
            logger.info(f"WebSocket disconnected. Total: {len(self.active_connections)}")

    async def broadcast_to_all(self, message: dict[str, Any]) -> None:
        disconnected = []

        for websocket in self.active_connections:
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.warning(f"Failed to send to websocket: {e}")
                disconnected.append(websocket)

        for ws in disconnected:
            self.disconnect(ws)

    def relay(self, message_type: str):
        """Build a loop listener that broadcasts its payload as ``message_type``."""

        def handler(payload: BaseModel) -> None:
            if not self.active_connections:
                return
            message = {"type": message_type, **payload.model_dump(mode="json")}
            task = asyncio.get_running_loop().create_task(self.broadcast_to_all(message))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        return handler

    def get_total_connections(self) -> int:
        return len(self.active_connections)
