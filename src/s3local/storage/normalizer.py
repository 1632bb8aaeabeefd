"""Translation of raw filesystem events into bucket notifications."""
import hashlib
from pathlib import Path

import structlog
from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileSystemEvent,
)

from s3local.events.types import RawNotification

logger = structlog.get_logger()

OBJECT_CREATED = "ObjectCreated:Put"
OBJECT_REMOVED = "ObjectRemoved:Delete"

EVENT_TYPE_MAP: dict[type[FileSystemEvent], str] = {
    FileCreatedEvent: OBJECT_CREATED,
    FileModifiedEvent: OBJECT_CREATED,
    FileDeletedEvent: OBJECT_REMOVED,
}


def event_path(raw_event: FileSystemEvent) -> str:
    """Source path of a watchdog event as a string."""
    src_path = raw_event.src_path
    if isinstance(src_path, str):
        return src_path
    return bytes(src_path).decode("utf-8", errors="replace")


def split_object_path(path: Path, root: Path) -> tuple[str, str] | None:
    """Split a file path below the storage root into bucket and key.

    Args:
        path: Absolute file path.
        root: Storage root directory.

    Returns:
        ``(bucket, key)`` or None for paths outside a bucket.
    """
    try:
        relative = path.relative_to(root)
    except ValueError:
        return None

    parts = relative.parts
    if len(parts) < 2:
        return None
    return parts[0], "/".join(parts[1:])


def file_stats(path: Path) -> tuple[int, str]:
    """Size and MD5 entity tag of a file, or ``(0, "")`` if it is gone."""
    try:
        data = path.read_bytes()
    except OSError:
        return 0, ""
    return len(data), hashlib.md5(data).hexdigest()


def normalize_event(raw_event: FileSystemEvent, root: Path) -> RawNotification | None:
    """Transform a filesystem event into a bucket notification.

    Args:
        raw_event: Watchdog filesystem event.
        root: Storage root directory.

    Returns:
        Notification, or None if the event does not concern an object.
    """
    event_type = EVENT_TYPE_MAP.get(type(raw_event))
    if event_type is None:
        return None

    path = Path(event_path(raw_event))
    location = split_object_path(path, root)
    if location is None:
        logger.debug("event_outside_bucket", path=str(path))
        return None

    bucket, key = location
    size, etag = (0, "") if event_type == OBJECT_REMOVED else file_stats(path)
    return RawNotification(
        bucket=bucket,
        key=key,
        event_type=event_type,
        size=size,
        etag=etag,
    )
