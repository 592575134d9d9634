"""
Request/response channel between the wake scheduler and the foreground app.

Every request and post is bounded by a timeout; no reply (or no foreground attached)
is reported as None so callers can fall back to their local cache.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

from .messages import BusMessage

logger = logging.getLogger(__name__)

Handler = Callable[[BusMessage], Awaitable[Any]]


class MessageBus:
    async def request(self, message: BusMessage, timeout: float = 1.0) -> Any:
        raise NotImplementedError

    async def post(self, message: BusMessage, timeout: float = 1.0) -> None:
        raise NotImplementedError


class InProcessMessageBus(MessageBus):
    """Bus whose far end is a coroutine handler living in the same event loop."""

    def __init__(self, handler: Optional[Handler] = None):
        self._handler = handler
        self._pending: List[BusMessage] = []

    @property
    def attached(self) -> bool:
        return self._handler is not None

    async def attach(self, handler: Handler) -> None:
        """Connect a foreground handler and flush posts queued while detached."""
        self._handler = handler
        pending, self._pending = self._pending, []
        for message in pending:
            await self.post(message)

    def detach(self) -> None:
        self._handler = None

    async def request(self, message, timeout=1.0):
        if self._handler is None:
            return None
        try:
            return await asyncio.wait_for(self._handler(message), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[Wake] {message.type.value} timed out after {timeout}s")
            return None

    async def post(self, message, timeout=1.0):
        if self._handler is None:
            logger.debug(f"[Wake] No foreground attached, queueing {message.type.value}")
            self._pending.append(message)
            return
        try:
            await asyncio.wait_for(self._handler(message), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[Wake] {message.type.value} post timed out after {timeout}s")
        except Exception as e:
            logger.error(f"[Wake] Foreground failed to handle {message.type.value}: {e!r}")
