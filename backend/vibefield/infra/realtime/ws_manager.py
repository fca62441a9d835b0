"""WebSocket connection manager for live presence."""
import logging
from typing import Dict, Iterable, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class WebSocketSessionManager:
    """Tracks open sockets per identity. One identity may have several devices connected."""

    def __init__(self):
        self.connections: Dict[str, Set[WebSocket]] = {}

    async def connect(self, identity_id: str, websocket: WebSocket, already_accepted: bool = False) -> None:
        if not already_accepted:
            await websocket.accept()
        self.connections.setdefault(identity_id, set()).add(websocket)
        logger.info(f"🔵 [WEBSOCKET] {identity_id} connected ({len(self.connections[identity_id])} sockets)")

    async def disconnect(self, identity_id: str, websocket: WebSocket) -> None:
        sockets = self.connections.get(identity_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self.connections[identity_id]
        logger.info(f"🔵 [WEBSOCKET] {identity_id} disconnected")

    def is_connected(self, identity_id: str) -> bool:
        return identity_id in self.connections

    async def send_to_identity(self, identity_id: str, message: dict) -> int:
        """Send to every socket of identity_id. Returns how many sockets received it."""
        sockets = self.connections.get(identity_id)
        if not sockets:
            return 0
        delivered = 0
        dead = []
        for websocket in sockets.copy():
            try:
                await websocket.send_json(message)
                delivered += 1
            except (RuntimeError, ConnectionError) as e:
                logger.warning(f"⚠️ [WEBSOCKET] Connection closed for {identity_id}: {e}")
                dead.append(websocket)
        for websocket in dead:
            await self.disconnect(identity_id, websocket)
        return delivered

    async def send_to_many(self, identity_ids: Iterable[str], message: dict) -> int:
        delivered = 0
        for identity_id in identity_ids:
            delivered += await self.send_to_identity(identity_id, message)
        return delivered


# Global instance
ws_manager = WebSocketSessionManager()
