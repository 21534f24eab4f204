import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from threadfolio.core.config import settings
from threadfolio.models.appointment import AppointmentPublic

logger = logging.getLogger(__name__)

EVENT_CREATED = "created"
EVENT_UPDATED = "updated"


class AppointmentBroadcaster:
    """Fan-out of appointment change events to the sessions watching a shop.

    Each subscriber gets its own bounded queue. A subscriber that falls behind
    loses messages rather than blocking the publisher; clients recover by
    refetching once their cached range goes stale.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)

    def subscriber_count(self, shop_id: str) -> int:
        return len(self._subscribers.get(shop_id, ()))

    @asynccontextmanager
    async def subscribe(self, shop_id: str) -> AsyncIterator[asyncio.Queue]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers[shop_id].add(queue)
        logger.debug("Stream subscriber added for shop %s", shop_id)
        try:
            yield queue
        finally:
            subscribers = self._subscribers.get(shop_id)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    del self._subscribers[shop_id]
            logger.debug("Stream subscriber removed for shop %s", shop_id)

    async def publish(self, shop_id: str, event: str, appointment: AppointmentPublic) -> int:
        """Queue ``{"event", "appointment"}`` for every subscriber of the shop. Returns deliveries."""
        message = {"event": event, "appointment": appointment.model_dump(mode="json")}
        delivered = 0
        for queue in list(self._subscribers.get(shop_id, ())):
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Stream subscriber for shop %s is full, dropping %s event", shop_id, event)
        return delivered


broadcaster = AppointmentBroadcaster(settings.stream_queue_size)
