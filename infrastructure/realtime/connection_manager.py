"""In-process WebSocket connection manager.

Owns the accepted sockets, keyed by connection id, and implements the
application's ``BroadcastPort``. Every connection gets a bounded send queue
drained by its own sender task, so a fan-out only enqueues and never waits on
a slow or dead peer.
"""
from __future__ import annotations

import asyncio
from typing import Dict, Iterable, Set

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from application.ports.realtime import ServerEvent, serialize_event
from core.logging_config import get_logger
from core.config import settings


logger = get_logger(__name__)

_OVERFLOW_POLICIES = {"drop_oldest", "drop_new", "disconnect"}


class ConnectionManager:
    """Manage per-process WebSocket connections and their send queues."""

    def __init__(self, *, queue_max: int | None = None, overflow_policy: str | None = None) -> None:
        self._sockets: Dict[str, WebSocket] = {}
        self._send_queues: Dict[str, asyncio.Queue] = {}
        self._sender_tasks: Dict[str, asyncio.Task] = {}
        self._closing: Set[asyncio.Task] = set()
        self._queue_max = max(1, int(queue_max or settings.REALTIME_WS_SEND_QUEUE_MAX))
        policy = (overflow_policy or settings.REALTIME_WS_SEND_OVERFLOW_POLICY or "drop_oldest").lower()
        if policy not in _OVERFLOW_POLICIES:
            logger.warning("ws_send_queue_policy_invalid", policy=policy, fallback="drop_oldest")
            policy = "drop_oldest"
        self._overflow_policy = policy

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._sockets

    def __len__(self) -> int:
        return len(self._sockets)

    def add(self, connection_id: str, ws: WebSocket) -> None:
        if connection_id in self._sockets:
            return
        q: asyncio.Queue = asyncio.Queue(maxsize=self._queue_max)
        self._sockets[connection_id] = ws
        self._send_queues[connection_id] = q
        self._sender_tasks[connection_id] = asyncio.create_task(
            self._sender_loop(connection_id, ws, q)
        )
        logger.info("ws_connected", connection_id=connection_id, connections=len(self._sockets))

    def remove(self, connection_id: str) -> None:
        """Forget the connection and stop its sender. Idempotent."""
        ws = self._sockets.pop(connection_id, None)
        self._send_queues.pop(connection_id, None)
        task = self._sender_tasks.pop(connection_id, None)
        if task is not None:
            task.cancel()
        if ws is not None:
            logger.info("ws_disconnected", connection_id=connection_id, connections=len(self._sockets))

    async def send(self, connection_id: str, event: ServerEvent) -> None:
        self._enqueue(connection_id, serialize_event(event))

    async def send_many(self, connection_ids: Iterable[str], event: ServerEvent) -> None:
        payload = serialize_event(event)
        for connection_id in connection_ids:
            self._enqueue(connection_id, payload)

    def _enqueue(self, connection_id: str, payload: dict) -> None:
        q = self._send_queues.get(connection_id)
        if q is None:
            return
        try:
            q.put_nowait(payload)
            return
        except asyncio.QueueFull:
            pass

        if self._overflow_policy == "drop_new":
            logger.warning("ws_send_queue_drop_new", connection_id=connection_id)
            return
        if self._overflow_policy == "disconnect":
            logger.warning("ws_send_queue_disconnect", connection_id=connection_id)
            ws = self._sockets.get(connection_id)
            self.remove(connection_id)
            if ws is not None:
                task = asyncio.create_task(self._close_quietly(ws, code=1013))
                self._closing.add(task)
                task.add_done_callback(self._closing.discard)
            return
        # default: drop_oldest
        try:
            q.get_nowait()
            q.task_done()
        except asyncio.QueueEmpty:
            pass
        try:
            q.put_nowait(payload)
        except asyncio.QueueFull:
            logger.warning("ws_send_queue_drop_after_trim", connection_id=connection_id)

    async def _sender_loop(self, connection_id: str, ws: WebSocket, q: asyncio.Queue) -> None:
        try:
            while True:
                payload = await q.get()
                try:
                    if ws.client_state == WebSocketState.CONNECTED:
                        await ws.send_json(payload)
                except Exception as exc:
                    logger.warning("ws_send_failed", connection_id=connection_id, error=str(exc))
                finally:
                    q.task_done()
        except asyncio.CancelledError:  # graceful exit
            return

    @staticmethod
    async def _close_quietly(ws: WebSocket, code: int) -> None:
        try:
            await ws.close(code=code)
        except Exception as exc:  # peer already gone
            logger.debug("ws_close_failed", error=str(exc))
