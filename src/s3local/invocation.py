"""In-process invocation of Python function handlers."""
import asyncio
import importlib.util
import inspect
import re
import sys
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Any

import structlog

from s3local.errors import ConfigurationError, DispatchFailure
from s3local.events.types import (
    DispatchOutcome,
    HandlerRef,
    NotificationDeclaration,
    OutcomeStatus,
)

logger = structlog.get_logger()

DEFAULT_TIMEOUT = 6.0
DEFAULT_MEMORY_MB = 1024
HANDLER_PATTERN = re.compile(r"^(?P<module>[\w./-]+)\.(?P<function>\w+)$")


@dataclass
class LambdaContext:
    """Subset of the Lambda context object passed to handlers."""

    function_name: str
    timeout: float
    region: str = "us-east-1"
    memory_limit_in_mb: int = DEFAULT_MEMORY_MB
    function_version: str = "$LATEST"
    aws_request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    _deadline: float = field(default=0.0, repr=False)

    def __post_init__(self) -> None:
        self._deadline = time.monotonic() + self.timeout

    @property
    def invoked_function_arn(self) -> str:
        return f"arn:aws:lambda:{self.region}:000000000000:function:{self.function_name}"

    @property
    def log_group_name(self) -> str:
        return f"/aws/lambda/{self.function_name}"

    @property
    def log_stream_name(self) -> str:
        return f"s3local/{self.aws_request_id}"

    def get_remaining_time_in_millis(self) -> int:
        return max(0, int((self._deadline - time.monotonic()) * 1000))


class PythonHandlerResolver:
    """Resolves ``path/module.function`` handlers relative to a service directory.

    Modules are loaded from source once and cached until ``clear`` is called,
    so a reload picks up edited handler code.
    """

    def __init__(self, service_path: Path, default_timeout: float = DEFAULT_TIMEOUT) -> None:
        self._service_path = Path(service_path)
        self._default_timeout = default_timeout
        self._modules: dict[Path, ModuleType] = {}
        self._lock = threading.Lock()

    def clear(self) -> None:
        """Drop cached handler modules."""
        with self._lock:
            for module in self._modules.values():
                sys.modules.pop(module.__name__, None)
            self._modules.clear()

    def __call__(self, declaration: NotificationDeclaration) -> HandlerRef:
        """Resolve the handler of a declaration.

        Raises:
            ConfigurationError: If the runtime is not Python or the handler
                cannot be loaded as a callable.
        """
        runtime = declaration.runtime
        if runtime is not None and not runtime.startswith("python"):
            raise ConfigurationError(
                f"Function {declaration.function_name} uses runtime {runtime!r}, "
                "only python runtimes can be invoked"
            )

        match = HANDLER_PATTERN.match(declaration.handler)
        if match is None:
            raise ConfigurationError(
                f"Invalid handler {declaration.handler!r} for function {declaration.function_name}"
            )

        module = self._load(self._service_path / f"{match['module']}.py")
        func = getattr(module, match["function"], None)
        if func is None or not callable(func):
            raise ConfigurationError(
                f"Handler {declaration.handler!r} is not a callable in {module.__file__}"
            )

        return HandlerRef(
            function_name=declaration.function_name,
            handler=declaration.handler,
            func=func,
            timeout=declaration.timeout or self._default_timeout,
        )

    def _load(self, path: Path) -> ModuleType:
        path = path.resolve()
        with self._lock:
            cached = self._modules.get(path)
            if cached is not None:
                return cached

            if not path.is_file():
                raise ConfigurationError(f"Handler module not found: {path}")

            name = f"s3local_handler_{uuid.uuid5(uuid.NAMESPACE_URL, str(path)).hex}"
            spec = importlib.util.spec_from_file_location(name, path)
            if spec is None or spec.loader is None:
                raise ConfigurationError(f"Cannot load handler module: {path}")
            module = importlib.util.module_from_spec(spec)
            sys.modules[name] = module
            try:
                spec.loader.exec_module(module)
            except Exception as e:
                sys.modules.pop(name, None)
                raise ConfigurationError(f"Failed to import {path}: {e}") from e

            self._modules[path] = module
            logger.debug("handler_module_loaded", path=str(path))
            return module


class ThreadedInvoker:
    """Runs handlers in worker threads with a per-function timeout.

    Coroutine handlers are awaited on the event loop instead. A timed out
    thread cannot be interrupted; it is left to finish in the background.
    """

    def __init__(self, region: str = "us-east-1") -> None:
        self._region = region

    async def invoke(self, handler: HandlerRef, envelope: dict[str, Any]) -> DispatchOutcome:
        """Invoke a handler with an event envelope.

        Args:
            handler: Resolved handler reference.
            envelope: S3 event notification payload.

        Returns:
            Outcome of the completed invocation.

        Raises:
            DispatchFailure: If the handler raised or exceeded its timeout.
        """
        context = LambdaContext(
            function_name=handler.function_name,
            timeout=handler.timeout,
            region=self._region,
        )
        start = time.perf_counter()

        if inspect.iscoroutinefunction(handler.func):
            call = handler.func(envelope, context)
        else:
            call = asyncio.to_thread(handler.func, envelope, context)

        try:
            await asyncio.wait_for(call, timeout=handler.timeout)
        except TimeoutError as e:
            raise DispatchFailure(
                handler.function_name,
                f"Task timed out after {handler.timeout:.2f} seconds",
                timed_out=True,
                request_id=context.aws_request_id,
                duration_ms=_elapsed_ms(start),
            ) from e
        except Exception as e:
            raise DispatchFailure(
                handler.function_name,
                f"{type(e).__name__}: {e}",
                request_id=context.aws_request_id,
                duration_ms=_elapsed_ms(start),
            ) from e

        return DispatchOutcome(
            status=OutcomeStatus.COMPLETED,
            function_name=handler.function_name,
            request_id=context.aws_request_id,
            duration_ms=_elapsed_ms(start),
        )


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)
