import asyncio
import json
import logging
from typing import Any, Dict, Optional, Set
from collections import defaultdict

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Registry of live connections per user.

    A handle is anything exposing an awaitable ``send_text(str)``; FastAPI's
    WebSocket qualifies. The registry is the only shared mutable state of the
    fan-out path and every mutation happens under ``self.lock``.
    """

    def __init__(self):
        self.active_connections: Dict[int, Set[Any]] = defaultdict(set)
        self._owners: Dict[Any, int] = {}
        self.lock = asyncio.Lock()

    async def register_connection(self, user_id: int, handle: Any) -> None:
        async with self.lock:
            self.active_connections[user_id].add(handle)
            self._owners[handle] = user_id

        logger.info(f"User {user_id} connected. Total connections: {len(self.active_connections[user_id])}")

    async def unregister_connection(self, handle: Any) -> Optional[int]:
        """Drop a handle; returns the user it belonged to, if any"""
        async with self.lock:
            user_id = self._owners.pop(handle, None)
            if user_id is not None:
                self._discard(user_id, handle)

        if user_id is not None:
            logger.info(f"User {user_id} disconnected")
        return user_id

    async def emit_to_user(self, user_id: int, event: str, payload: dict) -> int:
        """Send an event to every connection of a user; returns how many received it"""
        async with self.lock:
            connections = list(self.active_connections.get(user_id, ()))

        if not connections:
            logger.debug(f"No active connections for user {user_id}")
            return 0

        return await self._send_all(connections, self._frame(event, payload))

    async def emit_to_all(self, event: str, payload: dict) -> int:
        async with self.lock:
            connections = [c for conns in self.active_connections.values() for c in conns]

        if not connections:
            return 0

        return await self._send_all(connections, self._frame(event, payload))

    async def _send_all(self, connections: list, message: str) -> int:
        results = await asyncio.gather(
            *(connection.send_text(message) for connection in connections),
            return_exceptions=True,
        )

        delivered = 0
        broken = []
        for connection, result in zip(connections, results):
            if isinstance(result, Exception):
                logger.warning(f"Removing broken connection: {result}")
                broken.append(connection)
            else:
                delivered += 1

        # Remove broken connections
        if broken:
            async with self.lock:
                for connection in broken:
                    user_id = self._owners.pop(connection, None)
                    if user_id is not None:
                        self._discard(user_id, connection)

        return delivered

    def _discard(self, user_id: int, handle: Any) -> None:
        connections = self.active_connections.get(user_id)
        if connections is None:
            return
        connections.discard(handle)
        if not connections:
            del self.active_connections[user_id]

    @staticmethod
    def _frame(event: str, payload: dict) -> str:
        return json.dumps({"event": event, "data": payload}, default=str)

    async def get_connected_users_count(self) -> int:
        async with self.lock:
            return len(self.active_connections)

    async def get_total_connections_count(self) -> int:
        async with self.lock:
            return sum(len(connections) for connections in self.active_connections.values())
