"""Listener lifecycle between the storage emulator and the event router."""
import threading
from collections.abc import Callable
from enum import Enum
from typing import Protocol

import structlog

from s3local.errors import AlreadyAttachedError, SupervisorClosedError
from s3local.events.registry import Registry
from s3local.events.router import EventRouter
from s3local.events.types import RawNotification

logger = structlog.get_logger()

Listener = Callable[[RawNotification], None]


class NotificationSource(Protocol):
    """Emulator side of the listener contract."""

    def on_notification(self, callback: Listener) -> None: ...

    def remove_listener(self, callback: Listener) -> None: ...

    def close(self) -> None: ...


class SupervisorState(str, Enum):
    """Listener lifecycle states."""

    DETACHED = "detached"
    ATTACHED = "attached"
    CLOSED = "closed"


class DispatchSupervisor:
    """Owns the single listener that feeds emulator notifications to the router.

    The attached registry is the only mutable shared state; it is swapped
    as a whole by ``resubscribe`` and never modified in place.

    Attributes:
        state: Current lifecycle state.
    """

    def __init__(
        self,
        source: NotificationSource,
        router: EventRouter,
        drain_timeout: float = 30.0,
    ) -> None:
        """Initialize supervisor.

        Args:
            source: Emulator emitting raw notifications.
            router: Router bound to each attached registry.
            drain_timeout: Seconds shutdown waits for in-flight invocations.
        """
        self._source = source
        self._router = router
        self._drain_timeout = drain_timeout
        self._lock = threading.Lock()
        self._listener: Listener | None = None
        self._registry: Registry | None = None
        self._state = SupervisorState.DETACHED

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def registry(self) -> Registry | None:
        """Registry bound to the active listener, if attached."""
        return self._registry

    def attach(self, registry: Registry) -> None:
        """Start routing emulator notifications against a registry.

        Raises:
            AlreadyAttachedError: If a listener is already attached.
            SupervisorClosedError: If the supervisor was shut down.
        """
        with self._lock:
            self._ensure_open()
            if self._state is SupervisorState.ATTACHED:
                raise AlreadyAttachedError("Dispatch listener is already attached")
            self._attach(registry)

    def resubscribe(self, registry: Registry) -> None:
        """Replace the active listener with one bound to a new registry.

        Equivalent to ``attach`` when nothing is attached.

        Raises:
            SupervisorClosedError: If the supervisor was shut down.
        """
        with self._lock:
            self._ensure_open()
            self._detach()
            self._attach(registry)
        logger.info("dispatch_resubscribed", subscriptions=len(registry))

    def detach(self) -> None:
        """Stop routing notifications. No-op when nothing is attached."""
        with self._lock:
            self._detach()

    async def shutdown(self) -> None:
        """Detach, wait for in-flight invocations and close the emulator.

        The supervisor cannot be reused afterwards.
        """
        with self._lock:
            if self._state is SupervisorState.CLOSED:
                return
            self._detach()
            self._state = SupervisorState.CLOSED

        await self._router.drain(timeout=self._drain_timeout)
        self._source.close()
        logger.info("dispatch_supervisor_closed")

    def _ensure_open(self) -> None:
        if self._state is SupervisorState.CLOSED:
            raise SupervisorClosedError("Dispatch supervisor has been shut down")

    def _attach(self, registry: Registry) -> None:
        router = self._router

        def listener(notification: RawNotification) -> None:
            router.route(notification, registry)

        self._source.on_notification(listener)
        self._listener = listener
        self._registry = registry
        self._state = SupervisorState.ATTACHED
        logger.debug("dispatch_attached", subscriptions=len(registry))

    def _detach(self) -> None:
        if self._listener is None:
            return
        self._source.remove_listener(self._listener)
        self._listener = None
        self._registry = None
        self._state = SupervisorState.DETACHED
        logger.debug("dispatch_detached")
