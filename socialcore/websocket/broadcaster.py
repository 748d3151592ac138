import asyncio
import logging
import re
from typing import Any, Optional, Set

from socialcore.exceptions import ValidationError
from socialcore.schemas.notification_schema import NotificationPayload

logger = logging.getLogger(__name__)

EVENT_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9:_-]*$")

NOTIFICATION_EVENT = "notification:new"
NOTIFICATION_RETRACTED_EVENT = "notification:retracted"


def validate_event_name(event: Any) -> str:
    if not isinstance(event, str) or not EVENT_NAME_PATTERN.match(event):
        raise ValidationError(f"Invalid event name: {event!r}")
    return event


class Broadcaster:
    """Fire-and-forget push of events to live connections.

    Built once by the application factory and handed to services. The
    transport (normally a ConnectionManager) can be attached only once;
    later attempts are logged and ignored. Delivery never raises into the
    caller: an offline recipient simply receives nothing.
    """

    def __init__(self):
        self._transport: Optional[Any] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def is_initialized(self) -> bool:
        return self._transport is not None

    def initialize(self, transport: Any) -> bool:
        if self._transport is not None:
            logger.warning("Broadcaster already initialized, keeping the existing transport")
            return False

        self._transport = transport
        logger.info("Broadcaster initialized")
        return True

    async def emit(self, user_id: int, event: str, data: dict) -> int:
        """Deliver an event to one user; returns the number of connections reached"""
        validate_event_name(event)

        if self._transport is None:
            logger.warning(f"Broadcaster not initialized, dropping {event} for user {user_id}")
            return 0

        try:
            return await self._transport.emit_to_user(user_id, event, data)
        except Exception as e:
            logger.error(f"Error delivering {event} to user {user_id}: {e}")
            return 0

    async def emit_to_all(self, event: str, data: dict) -> int:
        validate_event_name(event)

        if self._transport is None:
            logger.warning(f"Broadcaster not initialized, dropping {event}")
            return 0

        try:
            return await self._transport.emit_to_all(event, data)
        except Exception as e:
            logger.error(f"Error delivering {event} to all users: {e}")
            return 0

    async def broadcast(self, payload: NotificationPayload) -> int:
        return await self.emit(payload.recipient_id, NOTIFICATION_EVENT, payload.to_wire())

    def dispatch(self, user_id: int, event: str, data: dict) -> None:
        """Schedule delivery in the background; the caller never waits on the push"""
        validate_event_name(event)

        task = asyncio.create_task(self.emit(user_id, event, data))
        self._pending.add(task)
        task.add_done_callback(self._on_delivery_done)

    def dispatch_notification(self, payload: NotificationPayload) -> None:
        self.dispatch(payload.recipient_id, NOTIFICATION_EVENT, payload.to_wire())

    def _on_delivery_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background delivery failed: {exc}")

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish"""
        while self._pending:
            pending = list(self._pending)
            await asyncio.gather(*pending, return_exceptions=True)
            self._pending.difference_update(pending)

    async def close(self) -> None:
        await self.drain()
        logger.info("Broadcaster closed")
