"""SSE stream of dispatch outcomes."""

import asyncio
import contextlib
import json
from collections.abc import AsyncIterator
from datetime import UTC, datetime

import structlog
from sse_starlette import ServerSentEvent

from s3local.events.bus import ALL_OUTCOMES, OutcomeBus

logger = structlog.get_logger()


class OutcomeStreamHub:
    """Streams dispatch outcomes to SSE clients with periodic heartbeats.

    Attributes:
        heartbeat_interval: Seconds between heartbeat events.
    """

    def __init__(self, bus: OutcomeBus, heartbeat_interval: float = 15.0) -> None:
        self._bus = bus
        self._heartbeat_interval = heartbeat_interval
        self._active_connections = 0

    @property
    def active_connections(self) -> int:
        return self._active_connections

    async def create_sse_generator(self, topic: str = ALL_OUTCOMES) -> AsyncIterator[ServerSentEvent]:
        """Create an SSE generator for one client connection.

        Args:
            topic: Outcome status filter.

        Yields:
            Server-sent events for outcomes and heartbeats.
        """
        subscriber_id, outcomes = await self._bus.subscribe(topic)
        self._active_connections += 1
        logger.info("sse_client_connected", subscriber_id=subscriber_id, topic=topic)

        queue: asyncio.Queue = asyncio.Queue(maxsize=10)

        async def pump() -> None:
            async for outcome in outcomes:
                await queue.put(outcome)

        pump_task = asyncio.create_task(pump())
        try:
            while True:
                try:
                    outcome = await asyncio.wait_for(queue.get(), timeout=self._heartbeat_interval)
                except TimeoutError:
                    yield ServerSentEvent(
                        event="heartbeat",
                        data=json.dumps({"timestamp": datetime.now(UTC).isoformat()}),
                    )
                    continue
                yield ServerSentEvent(event=outcome.status.value, data=outcome.model_dump_json())
        finally:
            pump_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pump_task
            self._active_connections -= 1
            logger.info("sse_client_disconnected", subscriber_id=subscriber_id)
