"""Handler resolution and invocation tests."""

import textwrap
from pathlib import Path

import pytest

from s3local.errors import ConfigurationError, DispatchFailure
from s3local.events.types import NotificationDeclaration, OutcomeStatus
from s3local.invocation import LambdaContext, PythonHandlerResolver, ThreadedInvoker

HANDLERS = textwrap.dedent(
    """
    import asyncio
    import time

    calls = []

    def ok(event, context):
        calls.append((event, context.function_name))
        return "ok"

    def broken(event, context):
        raise ValueError("bad image")

    def slow(event, context):
        time.sleep(0.5)

    async def coroutine(event, context):
        await asyncio.sleep(0)
        return event

    not_callable = 42
    """
)


@pytest.fixture
def service_dir(tmp_path: Path) -> Path:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "handlers.py").write_text(HANDLERS)
    return tmp_path


def declare(handler: str, runtime: str | None = "python3.12", timeout: float | None = None) -> NotificationDeclaration:
    return NotificationDeclaration(
        function_name=handler.rsplit(".", 1)[-1],
        handler=handler,
        bucket="b",
        runtime=runtime,
        timeout=timeout,
    )


def test_resolves_handler_in_subdirectory(service_dir: Path) -> None:
    resolver = PythonHandlerResolver(service_dir, default_timeout=3.0)
    ref = resolver(declare("src/handlers.ok"))

    assert ref.function_name == "ok"
    assert ref.timeout == 3.0
    assert ref.func({"Records": []}, LambdaContext("ok", timeout=1.0)) == "ok"


def test_declared_timeout_wins(service_dir: Path) -> None:
    ref = PythonHandlerResolver(service_dir)(declare("src/handlers.ok", timeout=12))
    assert ref.timeout == 12


@pytest.mark.parametrize(
    ("handler", "runtime", "message"),
    [
        ("src/missing.ok", "python3.12", "not found"),
        ("src/handlers.absent", "python3.12", "not a callable"),
        ("src/handlers.not_callable", "python3.12", "not a callable"),
        ("no-function", "python3.12", "Invalid handler"),
        ("src/handlers.ok", "nodejs18.x", "only python runtimes"),
    ],
)
def test_unresolvable_handlers(service_dir: Path, handler: str, runtime: str, message: str) -> None:
    with pytest.raises(ConfigurationError, match=message):
        PythonHandlerResolver(service_dir)(declare(handler, runtime=runtime))


def test_import_error_is_configuration_error(tmp_path: Path) -> None:
    (tmp_path / "broken.py").write_text("raise ImportError('missing dependency')\n")
    with pytest.raises(ConfigurationError, match="missing dependency"):
        PythonHandlerResolver(tmp_path)(declare("broken.main"))


def test_clear_reloads_modified_handlers(tmp_path: Path) -> None:
    module = tmp_path / "handler.py"
    module.write_text("def main(event, context):\n    return 1\n")
    resolver = PythonHandlerResolver(tmp_path)
    assert resolver(declare("handler.main")).func(None, None) == 1

    module.write_text("def main(event, context):\n    return 22\n")
    assert resolver(declare("handler.main")).func(None, None) == 1

    resolver.clear()
    assert resolver(declare("handler.main")).func(None, None) == 22


def test_lambda_context() -> None:
    context = LambdaContext("thumb", timeout=5.0, region="eu-west-1")

    assert context.invoked_function_arn.endswith(":function:thumb")
    assert ":eu-west-1:" in context.invoked_function_arn
    assert context.log_group_name == "/aws/lambda/thumb"
    assert 0 < context.get_remaining_time_in_millis() <= 5000


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["ok", "coroutine"])
async def test_invoke_completes(service_dir: Path, name: str) -> None:
    ref = PythonHandlerResolver(service_dir)(declare(f"src/handlers.{name}"))
    outcome = await ThreadedInvoker().invoke(ref, {"Records": []})

    assert outcome.status is OutcomeStatus.COMPLETED
    assert outcome.function_name == name
    assert outcome.request_id


@pytest.mark.asyncio
async def test_raising_handler_is_dispatch_failure(service_dir: Path) -> None:
    ref = PythonHandlerResolver(service_dir)(declare("src/handlers.broken"))

    with pytest.raises(DispatchFailure) as info:
        await ThreadedInvoker().invoke(ref, {"Records": []})

    assert info.value.function_name == "broken"
    assert info.value.reason == "ValueError: bad image"
    assert not info.value.timed_out
    assert info.value.request_id
    assert isinstance(info.value.__cause__, ValueError)


@pytest.mark.asyncio
async def test_invoke_times_out(service_dir: Path) -> None:
    ref = PythonHandlerResolver(service_dir)(declare("src/handlers.slow", timeout=0.05))

    with pytest.raises(DispatchFailure, match="timed out") as info:
        await ThreadedInvoker().invoke(ref, {"Records": []})

    assert info.value.timed_out
