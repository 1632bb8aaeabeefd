"""Debounced watchdog observer over the storage directory."""

import asyncio
import threading
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any

import structlog
from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from s3local.storage.normalizer import event_path

logger = structlog.get_logger()

TRACKED_EVENTS = (FileCreatedEvent, FileModifiedEvent, FileDeletedEvent)

EventCallback = Callable[[FileSystemEvent], Coroutine[Any, Any, None]]


def supersedes(new: FileSystemEvent, stored: FileSystemEvent) -> bool:
    """Whether a new event replaces a pending one for the same path.

    The latest create or delete wins; a modification never hides a pending
    create or delete.
    """
    return not isinstance(new, FileModifiedEvent) or isinstance(stored, FileModifiedEvent)


class DebouncingHandler(FileSystemEventHandler):
    """Watchdog event handler coalescing bursts of events per path.

    Debounced events are delivered to the async callback one at a time,
    so notifications are serialized per storage root.

    Attributes:
        debounce_ms: Debounce window in milliseconds.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        callback: EventCallback,
        debounce_ms: int = 50,
    ) -> None:
        """Initialize debouncing handler.

        Args:
            loop: Event loop for scheduling async callbacks.
            callback: Async function to call with debounced events.
            debounce_ms: Debounce window in milliseconds.
        """
        super().__init__()
        self._loop = loop
        self._callback = callback
        self._debounce_ms = debounce_ms
        self._pending: dict[str, tuple[threading.Timer, FileSystemEvent]] = {}
        self._lock = threading.Lock()
        self._emit_lock = threading.Lock()
        self._coalesced_count = 0

    @property
    def coalesced_events(self) -> int:
        """Number of events coalesced by debouncing."""
        return self._coalesced_count

    def _emit_event(self, path: str) -> None:
        with self._lock:
            entry = self._pending.pop(path, None)
            if entry is None:
                return
            _, event = entry

        logger.debug("watcher_emit", path=path, event_type=event.event_type)
        with self._emit_lock:
            try:
                future = asyncio.run_coroutine_threadsafe(self._callback(event), self._loop)
                future.result(timeout=5.0)
            except Exception as e:
                logger.error("watcher_callback_error", error=str(e), path=path)

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Handle filesystem event with debouncing.

        Args:
            event: Raw watchdog filesystem event.
        """
        if event.is_directory:
            return

        if isinstance(event, FileMovedEvent):
            self.on_any_event(FileDeletedEvent(event.src_path))
            self.on_any_event(FileCreatedEvent(event.dest_path))
            return

        if not isinstance(event, TRACKED_EVENTS):
            return

        path = event_path(event)

        with self._lock:
            existing = self._pending.get(path)
            use_event = event
            if existing is not None:
                timer, stored_event = existing
                timer.cancel()
                if not supersedes(event, stored_event):
                    use_event = stored_event
                self._coalesced_count += 1

            timer = threading.Timer(
                self._debounce_ms / 1000.0,
                self._emit_event,
                args=(path,),
            )
            timer.daemon = True
            self._pending[path] = (timer, use_event)
            timer.start()

    def cancel_all(self) -> None:
        """Cancel all pending timers during shutdown."""
        with self._lock:
            for timer, _ in self._pending.values():
                timer.cancel()
            self._pending.clear()


class StorageWatcher:
    """Watches the storage root recursively for object changes.

    Attributes:
        root: Directory being watched.
    """

    def __init__(
        self,
        root: Path,
        loop: asyncio.AbstractEventLoop,
        on_event: EventCallback,
        debounce_ms: int = 50,
    ) -> None:
        self.root = root
        self._handler = DebouncingHandler(loop, on_event, debounce_ms)
        self._observer: Observer | None = None  # pyright: ignore[reportInvalidTypeForm]

    @property
    def running(self) -> bool:
        return self._observer is not None

    @property
    def coalesced_events(self) -> int:
        return self._handler.coalesced_events

    def start(self) -> None:
        """Start the filesystem observer, creating the root if needed."""
        self.root.mkdir(parents=True, exist_ok=True)

        observer = Observer()
        observer.schedule(self._handler, str(self.root), recursive=True)
        observer.start()
        self._observer = observer
        logger.info("watcher_started", root=str(self.root))

    def stop(self) -> None:
        """Stop the filesystem observer."""
        self._handler.cancel_all()

        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None
            logger.info("watcher_stopped", root=str(self.root))
