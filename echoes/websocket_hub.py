from __future__ import annotations

import asyncio
import logging

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class GameWebSocketHub:
    """In-process WebSocket fan-out for the single running game.

    Contract:
      - register connections with `connect(websocket)`.
      - broadcast lightweight events with `broadcast(payload)`, or `broadcast_soon(payload)`
        from synchronous code running on the event loop (state-change listeners).

    Payloads should be JSON-serializable dicts.
    """

    def __init__(self) -> None:
        self._conns: set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task[None]] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._conns.add(websocket)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._conns.discard(websocket)

    @property
    def connection_count(self) -> int:
        return len(self._conns)

    async def broadcast(self, payload: dict[str, object]) -> None:
        async with self._lock:
            conns = list(self._conns)

        if not conns:
            return

        dead: list[WebSocket] = []
        for ws in conns:
            try:
                await ws.send_json(payload)
            except Exception:
                dead.append(ws)

        if dead:
            logger.debug("Dropping %d dead websocket(s)", len(dead))
            async with self._lock:
                for ws in dead:
                    self._conns.discard(ws)

    def broadcast_soon(self, payload: dict[str, object]) -> None:
        """Schedule a broadcast from synchronous code running on the event loop.

        Outside a running loop (e.g. plain unit tests) there is nobody to send to, so this is a no-op.
        """

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.broadcast(payload))
        # Keep a reference until done so the task isn't garbage collected mid-flight.
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


hub = GameWebSocketHub()
