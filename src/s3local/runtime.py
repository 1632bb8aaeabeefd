"""Wiring of storage, subscriptions and dispatch for one process."""
import asyncio

import structlog
from pydantic import ValidationError

from s3local.config import Settings
from s3local.errors import ConfigurationError, S3LocalError
from s3local.events.bus import OutcomeBus
from s3local.events.registry import Registry, build_registry
from s3local.events.router import EventRouter, Invoker
from s3local.events.supervisor import DispatchSupervisor
from s3local.events.types import DispatchOutcome
from s3local.invocation import PythonHandlerResolver, ThreadedInvoker
from s3local.service import ServiceDefinition
from s3local.storage import LocalStorage

logger = structlog.get_logger()


class S3LocalRuntime:
    """Owns the storage emulator and the dispatch pipeline.

    Attributes:
        settings: Effective configuration.
        storage: Directory-backed storage emulator.
        outcomes: Bus publishing every dispatch outcome.
        router: Event router shared by all registries.
        supervisor: Listener lifecycle owner.
    """

    def __init__(self, settings: Settings, invoker: Invoker | None = None) -> None:
        self.settings = settings
        self.storage = LocalStorage(settings.directory)
        self.outcomes = OutcomeBus(
            queue_size=settings.outcome_queue_size,
            max_subscribers=settings.outcome_max_subscribers,
        )
        self.resolver = PythonHandlerResolver(
            settings.service_file.resolve().parent,
            default_timeout=settings.dispatch_timeout,
        )
        self.router = EventRouter(
            invoker or ThreadedInvoker(region=settings.region),
            region=settings.region,
            on_outcome=self._publish_outcome,
        )
        self.supervisor = DispatchSupervisor(
            self.storage,
            self.router,
            drain_timeout=settings.shutdown_timeout,
        )

    async def _publish_outcome(self, outcome: DispatchOutcome) -> None:
        await self.outcomes.publish(outcome)

    def load_service(self) -> ServiceDefinition | None:
        """Read the service file, or None when there is none."""
        if not self.settings.service_file.is_file():
            logger.warning("service_file_missing", path=str(self.settings.service_file))
            return None
        return ServiceDefinition.from_file(self.settings.service_file)

    def build_registry(self) -> Registry:
        """Build a fresh registry from the current service file."""
        service = self.load_service()
        if service is None:
            return Registry()
        service.runtime(self.settings.provided_runtime)
        errors: list[ConfigurationError] | None = None if self.settings.fail_fast else []
        declarations = service.declarations(self.settings.provided_runtime, errors)
        return build_registry(
            declarations,
            self.resolver,
            fail_fast=self.settings.fail_fast,
            errors=errors or (),
        )

    def create_buckets(self) -> list[str]:
        """Create every declared bucket.

        Returns:
            Names of the buckets created.
        """
        service = self.load_service()
        extra = self.settings.buckets
        names = service.bucket_names(extra) if service is not None else list(dict.fromkeys(extra))
        if not names:
            logger.warning("no_buckets_found")
            return []
        for name in names:
            self.storage.create_bucket(name)
        return names

    def remove_buckets(self) -> list[str]:
        """Remove every declared bucket.

        Raises:
            BucketRemovalError: If a bucket cannot be removed.
        """
        service = self.load_service()
        extra = self.settings.buckets
        names = service.bucket_names(extra) if service is not None else list(dict.fromkeys(extra))
        for name in names:
            self.storage.remove_bucket(name)
        return names

    async def start(self) -> None:
        """Create buckets, start watching storage and attach dispatch."""
        self.create_buckets()
        self.supervisor.attach(self.build_registry())
        self.storage.watch(asyncio.get_running_loop(), debounce_ms=self.settings.debounce_ms)
        logger.info(
            "s3local_started",
            directory=str(self.storage.root),
            subscriptions=len(self.supervisor.registry or ()),
        )

    async def reload(self) -> None:
        """Rebuild subscriptions from the service file and swap them in.

        Handler modules are re-imported. A failing rebuild keeps the
        previous subscriptions attached.
        """
        self.resolver.clear()
        try:
            registry = await asyncio.to_thread(self.build_registry)
        except (S3LocalError, ValidationError) as e:
            logger.error("reload_failed", error=str(e))
            return
        self.supervisor.resubscribe(registry)

    async def stop(self) -> None:
        await self.supervisor.shutdown()
        logger.info("s3local_stopped")
