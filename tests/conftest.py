"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from collections.abc import Callable, Iterator
from typing import Any

import pytest
from fastapi.testclient import TestClient

from s3local.app import create_app
from s3local.config import Settings
from s3local.errors import DispatchFailure
from s3local.events.types import (
    DispatchOutcome,
    FilterRule,
    HandlerRef,
    NotificationDeclaration,
    OutcomeStatus,
    RawNotification,
)


class RecordingInvoker:
    """Invoker double recording every call in dispatch order."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.failing: set[str] = set()

    async def invoke(self, handler: HandlerRef, envelope: dict[str, Any]) -> DispatchOutcome:
        self.calls.append((handler.function_name, envelope))
        if handler.function_name in self.failing:
            raise DispatchFailure(handler.function_name, "handler failed", request_id="req-1")
        return DispatchOutcome(status=OutcomeStatus.COMPLETED, function_name=handler.function_name)

    @property
    def functions(self) -> list[str]:
        return [name for name, _ in self.calls]


class FakeSource:
    """Emulator double with an explicit emit."""

    def __init__(self) -> None:
        self.listeners: list[Callable[[RawNotification], None]] = []
        self.closed = False

    def on_notification(self, callback: Callable[[RawNotification], None]) -> None:
        self.listeners.append(callback)

    def remove_listener(self, callback: Callable[[RawNotification], None]) -> None:
        self.listeners.remove(callback)

    def emit(self, notification: RawNotification) -> None:
        for listener in list(self.listeners):
            listener(notification)

    def close(self) -> None:
        self.closed = True


def stub_resolver(declaration: NotificationDeclaration) -> HandlerRef:
    return HandlerRef(
        function_name=declaration.function_name,
        handler=declaration.handler,
        func=lambda event, context: None,
    )


@pytest.fixture
def invoker() -> RecordingInvoker:
    return RecordingInvoker()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def resolver() -> Callable[[NotificationDeclaration], HandlerRef]:
    return stub_resolver


@pytest.fixture
def make_declaration() -> Callable[..., NotificationDeclaration]:
    """Factory for notification declarations."""

    def factory(
        function_name: str = "fn",
        bucket: str = "b",
        event: str = "s3:ObjectCreated:*",
        rules: tuple[dict[str, str], ...] = (),
        handler: str = "handler.main",
    ) -> NotificationDeclaration:
        return NotificationDeclaration(
            function_name=function_name,
            handler=handler,
            bucket=bucket,
            event=event,
            rules=tuple(FilterRule(**rule) for rule in rules),
        )

    return factory


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Create test settings rooted in a temporary directory."""
    return Settings(
        directory=tmp_path / "buckets",
        service_file=tmp_path / "serverless.yml",
        debug=True,
    )


@pytest.fixture
def client(settings: Settings) -> Iterator[TestClient]:
    """Create test client with the app lifespan running."""
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client
