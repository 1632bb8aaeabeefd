"""Routing of storage notifications to subscribed handlers."""
import asyncio
import contextlib
import uuid
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import structlog

from s3local.errors import DispatchFailure
from s3local.events.registry import Registry
from s3local.events.rules import event_pattern_matches, keys_match
from s3local.events.types import (
    DispatchOutcome,
    HandlerRef,
    OutcomeStatus,
    RawNotification,
    Subscription,
)

logger = structlog.get_logger()

OutcomeCallback = Callable[[DispatchOutcome], Awaitable[None]]

PRINCIPAL_ID = "S3LOCAL"
HOST_ID = "s3local/0123456789abcdefghijklmnopqrstuvwxyzABCDEFGH="


class Invoker(Protocol):
    """Boundary that runs a handler with an event envelope.

    A handler that raises or times out is reported as ``DispatchFailure``.
    """

    async def invoke(self, handler: HandlerRef, envelope: dict[str, Any]) -> DispatchOutcome: ...


def _event_time(notification: RawNotification) -> str:
    ts = notification.timestamp
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


def _sequencer(notification: RawNotification) -> str:
    return f"{int(notification.timestamp.timestamp() * 1_000_000):018X}"


def build_envelope(
    notification: RawNotification,
    subscription: Subscription,
    region: str = "us-east-1",
) -> dict[str, Any]:
    """Build an S3 event notification payload for one handler.

    The structure follows the published S3 notification schema (version
    2.1) so handlers written against AWS run unmodified.

    Args:
        notification: Triggering storage notification.
        subscription: Matched subscription.
        region: Region reported in the record.

    Returns:
        Event dict with a single entry in ``Records``.
    """
    record = {
        "eventVersion": "2.1",
        "eventSource": "aws:s3",
        "awsRegion": region,
        "eventTime": _event_time(notification),
        "eventName": notification.event_type,
        "userIdentity": {"principalId": PRINCIPAL_ID},
        "requestParameters": {"sourceIPAddress": "127.0.0.1"},
        "responseElements": {
            "x-amz-request-id": uuid.uuid4().hex[:16].upper(),
            "x-amz-id-2": HOST_ID,
        },
        "s3": {
            "s3SchemaVersion": "1.0",
            "configurationId": subscription.handler.function_name,
            "bucket": {
                "name": notification.bucket,
                "ownerIdentity": {"principalId": PRINCIPAL_ID},
                "arn": f"arn:aws:s3:::{notification.bucket}",
            },
            "object": {
                "key": notification.key,
                "size": notification.size,
                "eTag": notification.etag,
                "sequencer": _sequencer(notification),
            },
        },
    }
    return {"Records": [record]}


def match_subscriptions(
    notification: RawNotification,
    registry: Registry,
) -> list[Subscription]:
    """Select subscriptions for a notification, in declaration order.

    A subscription matches when its bucket equals the notification bucket,
    its event pattern matches the event type, and every key matcher
    accepts the key. Names and keys are compared literally.
    """
    return [
        sub
        for sub in registry.for_bucket(notification.bucket)
        if event_pattern_matches(sub.event_pattern, notification.event_type)
        and keys_match(sub.matchers, notification.key)
    ]


class EventRouter:
    """Dispatches notifications to matching handlers.

    Each matched handler is launched as its own task; ``route`` returns
    without waiting for them. Completion order is not guaranteed and a
    failed invocation never affects its siblings.

    Attributes:
        region: Region reported in event envelopes.
    """

    def __init__(
        self,
        invoker: Invoker,
        region: str = "us-east-1",
        on_outcome: OutcomeCallback | None = None,
    ) -> None:
        """Initialize router.

        Args:
            invoker: Handler invocation boundary.
            region: Region reported in event envelopes.
            on_outcome: Async callback receiving every dispatch outcome.
        """
        self._invoker = invoker
        self._on_outcome = on_outcome
        self.region = region
        self._in_flight: set[asyncio.Task[DispatchOutcome]] = set()

    @property
    def in_flight(self) -> int:
        """Number of invocations that have not completed yet."""
        return len(self._in_flight)

    def route(
        self,
        notification: RawNotification,
        registry: Registry,
    ) -> list[asyncio.Task[DispatchOutcome]]:
        """Launch one invocation per matching subscription.

        Must be called from a running event loop.

        Args:
            notification: Storage notification to route.
            registry: Registry snapshot to match against.

        Returns:
            Tasks resolving to each invocation's outcome, in dispatch order.
        """
        matches = match_subscriptions(notification, registry)
        if not matches:
            logger.debug(
                "notification_unmatched",
                bucket=notification.bucket,
                key=notification.key,
                event_type=notification.event_type,
            )
            return []

        loop = asyncio.get_running_loop()
        tasks = []
        for subscription in matches:
            envelope = build_envelope(notification, subscription, self.region)
            logger.info(
                "subscription_matched",
                function=subscription.handler.function_name,
                bucket=notification.bucket,
                key=notification.key,
                event_type=notification.event_type,
            )
            task = loop.create_task(self._dispatch(subscription, notification, envelope))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            tasks.append(task)
        return tasks

    async def _dispatch(
        self,
        subscription: Subscription,
        notification: RawNotification,
        envelope: dict[str, Any],
    ) -> DispatchOutcome:
        handler = subscription.handler
        try:
            outcome = await self._invoker.invoke(handler, envelope)
        except DispatchFailure as e:
            outcome = DispatchOutcome(
                status=OutcomeStatus.TIMED_OUT if e.timed_out else OutcomeStatus.FAILED,
                function_name=handler.function_name,
                request_id=e.request_id,
                reason=e.reason,
                duration_ms=e.duration_ms,
            )
        except Exception as e:
            logger.error(
                "invoker_error",
                function=handler.function_name,
                error=str(e),
                exc_info=True,
            )
            outcome = DispatchOutcome(
                status=OutcomeStatus.FAILED,
                function_name=handler.function_name,
                reason=str(e) or type(e).__name__,
            )

        outcome = outcome.model_copy(
            update={
                "bucket": notification.bucket,
                "key": notification.key,
                "event_type": notification.event_type,
            }
        )
        self._log_outcome(outcome)

        if self._on_outcome is not None:
            try:
                await self._on_outcome(outcome)
            except Exception as e:
                logger.error("outcome_callback_error", error=str(e))

        return outcome

    @staticmethod
    def _log_outcome(outcome: DispatchOutcome) -> None:
        fields = {
            "function": outcome.function_name,
            "request_id": outcome.request_id,
            "bucket": outcome.bucket,
            "key": outcome.key,
            "duration_ms": outcome.duration_ms,
        }
        if outcome.status is OutcomeStatus.COMPLETED:
            logger.info("dispatch_completed", **fields)
        elif outcome.status is OutcomeStatus.TIMED_OUT:
            logger.warning("dispatch_timed_out", **fields)
        else:
            logger.warning("dispatch_failed", reason=outcome.reason, **fields)

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for in-flight invocations to finish.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely.

        Returns:
            True if everything finished, False on timeout.
        """
        if not self._in_flight:
            return True
        pending = set(self._in_flight)
        _, not_done = await asyncio.wait(pending, timeout=timeout)
        if not_done:
            logger.warning("dispatch_drain_timeout", pending=len(not_done))
            for task in not_done:
                task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.gather(*not_done, return_exceptions=True)
            return False
        return True
