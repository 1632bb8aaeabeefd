"""Debounced filesystem event delivery tests."""

import asyncio

import pytest
import pytest_asyncio
from watchdog.events import (
    DirModifiedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
)

from s3local.storage.watcher import DebouncingHandler, supersedes


async def collect(handler_events: list[FileSystemEvent], count: int, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while len(handler_events) < count and asyncio.get_running_loop().time() < deadline:
        await asyncio.sleep(0.01)


@pytest_asyncio.fixture
async def debouncer():
    received: list[FileSystemEvent] = []

    async def callback(event: FileSystemEvent) -> None:
        received.append(event)

    handler = DebouncingHandler(asyncio.get_running_loop(), callback, debounce_ms=20)
    yield handler, received
    handler.cancel_all()


def test_supersedes() -> None:
    created = FileCreatedEvent("/b/k")
    modified = FileModifiedEvent("/b/k")
    deleted = FileDeletedEvent("/b/k")

    assert not supersedes(modified, created)
    assert supersedes(deleted, created)
    assert supersedes(created, deleted)
    assert supersedes(modified, modified)


@pytest.mark.asyncio
async def test_create_then_modify_emits_created(debouncer) -> None:
    handler, received = debouncer
    handler.on_any_event(FileCreatedEvent("/root/b/k"))
    handler.on_any_event(FileModifiedEvent("/root/b/k"))

    await collect(received, 1)
    await asyncio.sleep(0.05)

    assert len(received) == 1
    assert isinstance(received[0], FileCreatedEvent)
    assert handler.coalesced_events == 1


@pytest.mark.asyncio
async def test_create_then_delete_emits_deleted(debouncer) -> None:
    handler, received = debouncer
    handler.on_any_event(FileCreatedEvent("/root/b/k"))
    handler.on_any_event(FileDeletedEvent("/root/b/k"))

    await collect(received, 1)

    assert [type(e) for e in received] == [FileDeletedEvent]


@pytest.mark.asyncio
async def test_move_becomes_delete_and_create(debouncer) -> None:
    handler, received = debouncer
    handler.on_any_event(FileMovedEvent("/root/b/old", "/root/b/new"))

    await collect(received, 2)

    by_path = {e.src_path: type(e) for e in received}
    assert by_path == {"/root/b/old": FileDeletedEvent, "/root/b/new": FileCreatedEvent}


@pytest.mark.asyncio
async def test_directories_are_ignored(debouncer) -> None:
    handler, received = debouncer
    handler.on_any_event(DirModifiedEvent("/root/b"))

    await asyncio.sleep(0.1)

    assert received == []


@pytest.mark.asyncio
async def test_editor_style_names_are_delivered(debouncer) -> None:
    handler, received = debouncer
    paths = ["/root/b/report.part", "/root/b/draft~", "/root/b/k.tmp", "/root/b/.DS_Store"]
    for path in paths:
        handler.on_any_event(FileCreatedEvent(path))

    await collect(received, len(paths))

    assert sorted(e.src_path for e in received) == sorted(paths)
