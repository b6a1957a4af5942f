from __future__ import annotations

import asyncio
import logging

from fastapi import WebSocket


logger = logging.getLogger(__name__)

ROUND_UPDATED = "round_updated"


class RoundWebSocketHub:
    """Fan-out of round events to every connected client.

    There is only ever one live round, so there is a single audience rather than
    one per game. Events carry an action and a game id, never the secret or a
    transcript; clients refetch whatever they are allowed to see.

    If we later run multiple API replicas, this should move to Redis pub/sub.
    """

    def __init__(self) -> None:
        self._clients: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._clients.add(websocket)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._clients.discard(websocket)

    async def publish_round(self, action: str, game_id: int | None) -> None:
        await self.broadcast({"type": ROUND_UPDATED, "action": action, "game_id": game_id})

    async def broadcast(self, payload: dict[str, object]) -> None:
        async with self._lock:
            clients = list(self._clients)

        dead = []
        for ws in clients:
            try:
                await ws.send_json(payload)
            except Exception:
                dead.append(ws)

        if dead:
            logger.debug("Dropping %s closed websocket(s)", len(dead))
            async with self._lock:
                self._clients.difference_update(dead)


hub = RoundWebSocketHub()
