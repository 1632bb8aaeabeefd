"""Registry of compiled notification subscriptions."""
from collections.abc import Callable, Iterable, Iterator

import structlog

from s3local.errors import ConfigurationError
from s3local.events.rules import compile_rules, is_known_event_pattern, normalize_event_type
from s3local.events.types import HandlerRef, NotificationDeclaration, Subscription

logger = structlog.get_logger()

HandlerResolver = Callable[[NotificationDeclaration], HandlerRef]


class Registry:
    """Immutable, ordered snapshot of subscriptions.

    Rebuilt wholesale on reload and never patched in place, so a routing
    pass in flight always sees a consistent set of subscriptions.

    Attributes:
        subscriptions: Subscriptions in declaration order.
        errors: Configuration errors collected for skipped declarations.
    """

    __slots__ = ("_subscriptions", "_errors")

    def __init__(
        self,
        subscriptions: Iterable[Subscription] = (),
        errors: Iterable[ConfigurationError] = (),
    ) -> None:
        self._subscriptions = tuple(subscriptions)
        self._errors = tuple(errors)

    @property
    def subscriptions(self) -> tuple[Subscription, ...]:
        return self._subscriptions

    @property
    def errors(self) -> tuple[ConfigurationError, ...]:
        return self._errors

    def for_bucket(self, bucket: str) -> tuple[Subscription, ...]:
        """Subscriptions bound to a bucket, in declaration order."""
        return tuple(sub for sub in self._subscriptions if sub.bucket_name == bucket)

    def __iter__(self) -> Iterator[Subscription]:
        return iter(self._subscriptions)

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __repr__(self) -> str:
        return f"Registry(subscriptions={len(self._subscriptions)}, errors={len(self._errors)})"


def build_subscription(
    declaration: NotificationDeclaration,
    resolver: HandlerResolver,
) -> Subscription:
    """Compile one declaration into a subscription.

    Args:
        declaration: Resolved notification declaration.
        resolver: Turns the declaration's handler into an invocable reference.

    Returns:
        Compiled subscription.

    Raises:
        ConfigurationError: If the event pattern is not an S3 event type or
            the handler cannot be resolved.
    """
    if not is_known_event_pattern(declaration.event):
        raise ConfigurationError(
            f"Unknown S3 event {declaration.event!r} for function {declaration.function_name}"
        )

    handler = resolver(declaration)
    return Subscription(
        bucket_name=declaration.bucket,
        event_pattern=normalize_event_type(declaration.event),
        matchers=compile_rules(declaration.rules),
        handler=handler,
    )


def build_registry(
    declarations: Iterable[NotificationDeclaration],
    resolver: HandlerResolver,
    *,
    fail_fast: bool = False,
    errors: Iterable[ConfigurationError] = (),
) -> Registry:
    """Build a new registry from resolved declarations.

    Declaration order is preserved. A declaration that fails to compile is
    skipped and recorded in ``Registry.errors`` unless ``fail_fast`` is set.

    Args:
        declarations: Resolved notification declarations.
        resolver: Handler resolver.
        fail_fast: Raise on the first configuration error.
        errors: Errors already collected while reading declarations; they
            are carried into ``Registry.errors`` ahead of compile errors.

    Returns:
        Newly built registry.

    Raises:
        ConfigurationError: On the first bad declaration when fail_fast.
    """
    subscriptions: list[Subscription] = []
    collected: list[ConfigurationError] = list(errors)

    for declaration in declarations:
        try:
            subscriptions.append(build_subscription(declaration, resolver))
        except ConfigurationError as e:
            if fail_fast:
                raise
            logger.warning(
                "subscription_skipped",
                function=declaration.function_name,
                bucket=declaration.bucket,
                event=declaration.event,
                error=str(e),
            )
            collected.append(e)

    logger.info(
        "registry_built",
        subscriptions=len(subscriptions),
        skipped=len(collected),
    )
    return Registry(subscriptions, collected)
