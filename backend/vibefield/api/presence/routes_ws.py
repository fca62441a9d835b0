"""Live presence WebSocket."""
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from vibefield.infra.realtime.ws_manager import ws_manager
from vibefield.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/presence/ws")
async def presence_socket(websocket: WebSocket):
    """Receives presence_changed events for the caller's friends. Client may send "ping"."""
    identity_id = (websocket.headers.get(settings.identity_header) or "").strip()
    await websocket.accept()
    if not identity_id:
        logger.warning("⚠️ [WEBSOCKET] Connection rejected: no identity header")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Identity required")
        return

    await ws_manager.connect(identity_id, websocket, already_accepted=True)
    try:
        await websocket.send_json({"type": "connection.established", "identity_id": identity_id})
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    except (RuntimeError, ConnectionError) as e:
        logger.warning(f"⚠️ [WEBSOCKET] Connection error for {identity_id}: {e}")
    finally:
        await ws_manager.disconnect(identity_id, websocket)
