"""WebSocket route for the room chat.

One session per accepted socket: frames are handed to the session in receive
order and the session is closed exactly once when the loop ends.
"""
from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from application.services.realtime_service import RealtimeService
from api.dependencies import get_realtime_service
from core.logging_config import get_logger


logger = get_logger(__name__)


router = APIRouter(prefix="/ws", tags=["WebSocket"])


@router.websocket("")
async def websocket_endpoint(
    ws: WebSocket,
    rt: RealtimeService = Depends(get_realtime_service),
) -> None:
    await ws.accept()
    session = await rt.open(ws)
    structlog.contextvars.bind_contextvars(connection_id=session.connection_id)
    try:
        while True:
            raw = await ws.receive_text()
            await session.handle(raw)
    except WebSocketDisconnect:
        pass
    except Exception as exc:
        logger.error("ws_error", error=str(exc), exc_info=True)
    finally:
        await rt.close(session)
        structlog.contextvars.unbind_contextvars("connection_id")
