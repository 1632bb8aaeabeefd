"""Notification, subscription and dispatch outcome types."""
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

S3_EVENT_TYPES: tuple[str, ...] = (
    "ObjectCreated:Put",
    "ObjectCreated:Post",
    "ObjectCreated:Copy",
    "ObjectCreated:CompleteMultipartUpload",
    "ObjectRemoved:Delete",
    "ObjectRemoved:DeleteMarkerCreated",
    "ObjectRestore:Post",
    "ObjectRestore:Completed",
    "ObjectRestore:Delete",
    "ReducedRedundancyLostObject",
    "Replication:OperationFailedReplication",
    "Replication:OperationMissedThreshold",
    "Replication:OperationReplicatedAfterThreshold",
    "Replication:OperationNotTracked",
    "LifecycleExpiration:Delete",
    "LifecycleExpiration:DeleteMarkerCreated",
    "LifecycleTransition",
    "IntelligentTiering",
    "ObjectTagging:Put",
    "ObjectTagging:Delete",
    "ObjectAcl:Put",
)

DEFAULT_EVENT = "s3:ObjectCreated:*"


class FilterRule(BaseModel):
    """Key filter declared on a notification.

    Attributes:
        prefix: Literal string the object key must start with.
        suffix: Literal string the object key must end with.
    """

    model_config = ConfigDict(frozen=True)

    prefix: str | None = None
    suffix: str | None = None


class AnchoredMatcher(BaseModel):
    """Compiled filter rule anchored at the start and/or end of a key."""

    model_config = ConfigDict(frozen=True)

    prefix: str = ""
    suffix: str = ""

    def matches(self, key: str) -> bool:
        return key.startswith(self.prefix) and key.endswith(self.suffix)

    def __call__(self, key: str) -> bool:
        return self.matches(key)


class NotificationDeclaration(BaseModel):
    """Resolved notification binding from the service definition.

    Attributes:
        function_name: Name of the function to invoke.
        handler: Handler path in ``path/module.function`` form.
        bucket: Literal bucket name.
        event: Provider event-type pattern, e.g. ``s3:ObjectCreated:*``.
        rules: Key filter rules, ANDed together.
        runtime: Runtime of the function, if known.
        timeout: Invocation timeout in seconds, if declared.
    """

    model_config = ConfigDict(frozen=True)

    function_name: str
    handler: str
    bucket: str
    event: str = DEFAULT_EVENT
    rules: tuple[FilterRule, ...] = ()
    runtime: str | None = None
    timeout: float | None = None


@dataclass(frozen=True)
class HandlerRef:
    """Invocable reference to a function handler."""

    function_name: str
    handler: str
    func: Callable[..., Any] = field(compare=False, repr=False)
    timeout: float = 6.0


class Subscription(BaseModel):
    """Compiled binding of bucket, event pattern and key filters to a handler."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    bucket_name: str
    event_pattern: str
    matchers: tuple[AnchoredMatcher, ...] = ()
    handler: HandlerRef


class RawNotification(BaseModel):
    """Storage operation reported by the emulator.

    Attributes:
        bucket: Bucket the object lives in.
        key: Object key.
        event_type: Event type without the ``s3:`` prefix.
        size: Object size in bytes, when known.
        etag: Object entity tag, when known.
        timestamp: Time of the operation (UTC).
    """

    model_config = ConfigDict(frozen=True)

    bucket: str
    key: str
    event_type: str
    size: int = 0
    etag: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class OutcomeStatus(str, Enum):
    """Completion state of one handler invocation."""

    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class DispatchOutcome(BaseModel):
    """Result of invoking one handler for one notification.

    Attributes:
        status: Completion state.
        function_name: Invoked function.
        request_id: Request id passed in the handler context.
        bucket: Bucket of the triggering notification.
        key: Key of the triggering notification.
        event_type: Event type of the triggering notification.
        reason: Failure details for failed or timed out invocations.
        duration_ms: Wall-clock invocation time.
    """

    status: OutcomeStatus
    function_name: str
    request_id: str = ""
    bucket: str = ""
    key: str = ""
    event_type: str = ""
    reason: str | None = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.COMPLETED
