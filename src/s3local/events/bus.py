"""In-memory fan-out of dispatch outcomes to observers."""
import asyncio
import uuid
from collections.abc import AsyncIterator

import structlog

from s3local.events.types import DispatchOutcome, OutcomeStatus

logger = structlog.get_logger()

ALL_OUTCOMES = "*"
TOPICS: tuple[str, ...] = (*(status.value for status in OutcomeStatus), ALL_OUTCOMES)


class OutcomeBus:
    """Async bus delivering dispatch outcomes to subscriber queues.

    Subscribers pick a status topic or ``*`` for everything. Full queues
    drop their oldest outcome so a slow observer never stalls dispatch.

    Attributes:
        queue_size: Maximum size of each subscriber queue.
        max_subscribers: Maximum number of concurrent subscribers.
    """

    def __init__(
        self,
        queue_size: int = 100,
        max_subscribers: int = 100,
    ) -> None:
        self._subscribers: dict[str, dict[str, asyncio.Queue[DispatchOutcome]]] = {
            topic: {} for topic in TOPICS
        }
        self._queue_size = queue_size
        self._max_subscribers = max_subscribers
        self._dropped_count = 0
        self._lock = asyncio.Lock()

    @property
    def subscriber_count(self) -> int:
        """Total number of active subscribers across all topics."""
        return sum(len(subs) for subs in self._subscribers.values())

    @property
    def dropped_outcomes(self) -> int:
        """Total number of outcomes dropped due to queue overflow."""
        return self._dropped_count

    async def publish(self, outcome: DispatchOutcome) -> int:
        """Publish an outcome to its status topic and wildcard subscribers.

        Args:
            outcome: Dispatch outcome to publish.

        Returns:
            Number of subscribers that received the outcome.
        """
        delivered = 0
        for topic in (outcome.status.value, ALL_OUTCOMES):
            for queue in list(self._subscribers[topic].values()):
                if queue.full():
                    queue.get_nowait()
                    self._dropped_count += 1
                queue.put_nowait(outcome)
                delivered += 1
        return delivered

    async def subscribe(
        self,
        topic: str = ALL_OUTCOMES,
    ) -> tuple[str, AsyncIterator[DispatchOutcome]]:
        """Subscribe to outcomes on a topic.

        Args:
            topic: Outcome status value, or ``*`` for all outcomes.

        Returns:
            Tuple of (subscriber_id, outcome_iterator).

        Raises:
            ValueError: If the topic is unknown or maximum subscribers reached.
        """
        if topic not in self._subscribers:
            raise ValueError(f"Unknown outcome topic: {topic}")

        async with self._lock:
            if self.subscriber_count >= self._max_subscribers:
                raise ValueError("Maximum subscribers reached")

            subscriber_id = str(uuid.uuid4())
            queue: asyncio.Queue[DispatchOutcome] = asyncio.Queue(maxsize=self._queue_size)
            self._subscribers[topic][subscriber_id] = queue

        async def outcome_iterator() -> AsyncIterator[DispatchOutcome]:
            try:
                while True:
                    yield await queue.get()
            finally:
                await self.unsubscribe(topic, subscriber_id)

        return subscriber_id, outcome_iterator()

    async def unsubscribe(self, topic: str, subscriber_id: str) -> None:
        async with self._lock:
            if self._subscribers.get(topic, {}).pop(subscriber_id, None) is not None:
                logger.debug("outcome_subscriber_removed", subscriber_id=subscriber_id, topic=topic)
