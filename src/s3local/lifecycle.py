"""Shutdown and reload signalling for the running process."""
import asyncio

import structlog

logger = structlog.get_logger()


class ProcessSignals:
    """Coordinates shutdown and reload requests across async tasks.

    Signal handlers call ``trigger_shutdown`` or ``request_reload``;
    long-running tasks wait on the matching coroutine.

    Attributes:
        is_shutting_down: Whether shutdown has been triggered.
    """

    def __init__(self) -> None:
        self._shutdown = asyncio.Event()
        self._reload = asyncio.Event()

    @property
    def is_shutting_down(self) -> bool:
        return self._shutdown.is_set()

    def trigger_shutdown(self) -> None:
        """Signal all waiting tasks to stop. Idempotent."""
        if self._shutdown.is_set():
            return
        logger.info("shutdown_triggered")
        self._shutdown.set()

    def request_reload(self) -> None:
        """Ask the reload loop to rebuild subscriptions.

        Requests arriving while a reload is pending are merged into it.
        """
        logger.info("reload_requested")
        self._reload.set()

    async def wait_for_shutdown(self) -> None:
        await self._shutdown.wait()

    async def wait_for_reload(self) -> bool:
        """Wait for the next reload request.

        Returns:
            True for a reload request, False if shutdown came first.
        """
        reload_task = asyncio.ensure_future(self._reload.wait())
        shutdown_task = asyncio.ensure_future(self._shutdown.wait())
        try:
            await asyncio.wait(
                {reload_task, shutdown_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            reload_task.cancel()
            shutdown_task.cancel()

        if self._shutdown.is_set():
            return False
        self._reload.clear()
        return True
