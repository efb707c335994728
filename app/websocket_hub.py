from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class SessionWebSocketHub:
    """Pushes session status events to connected viewers.

    A viewer gets the current status right after connecting, then every event
    broadcast while it stays connected. Sends run concurrently; a viewer whose
    send fails is dropped without delaying the others.
    """

    def __init__(self) -> None:
        self._viewers: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._viewers)

    async def connect(self, websocket: WebSocket, *, hello: Mapping[str, object] | None = None) -> None:
        await websocket.accept()
        if hello is not None:
            await websocket.send_json(dict(hello))
        async with self._lock:
            self._viewers.add(websocket)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._viewers.discard(websocket)

    async def broadcast(self, event: Mapping[str, object]) -> int:
        """Send `event` to every viewer, returns how many got it."""

        async with self._lock:
            viewers = list(self._viewers)
        if not viewers:
            return 0

        payload = dict(event)
        results = await asyncio.gather(*(ws.send_json(payload) for ws in viewers), return_exceptions=True)

        gone = [ws for ws, result in zip(viewers, results) if isinstance(result, Exception)]
        if gone:
            logger.info("Dropping %d viewer(s) after failed sends", len(gone))
            async with self._lock:
                self._viewers.difference_update(gone)
        return len(viewers) - len(gone)


hub = SessionWebSocketHub()
