"""Directory-backed bucket storage that emits change notifications."""
import asyncio
import hashlib
import re
import shutil
from collections.abc import Callable
from pathlib import Path

import structlog
from watchdog.events import FileSystemEvent

from s3local.errors import (
    BucketRemovalError,
    InvalidBucketNameError,
    InvalidKeyError,
    KeyConflictError,
    NoSuchBucketError,
    NoSuchKeyError,
)
from s3local.events.types import RawNotification
from s3local.storage.normalizer import normalize_event
from s3local.storage.watcher import StorageWatcher

logger = structlog.get_logger()

BUCKET_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$")
IP_ADDRESS_PATTERN = re.compile(r"^\d+\.\d+\.\d+\.\d+$")
MAX_KEY_LENGTH = 1024

Listener = Callable[[RawNotification], None]


def validate_bucket_name(name: str) -> None:
    """Validate an S3 bucket name.

    Raises:
        InvalidBucketNameError: If the name breaks S3 naming rules.
    """
    if (
        not BUCKET_NAME_PATTERN.match(name)
        or IP_ADDRESS_PATTERN.match(name)
        or ".." in name
    ):
        raise InvalidBucketNameError(name)


def validate_key(key: str) -> None:
    """Validate that an object key maps to a file inside its bucket.

    Raises:
        InvalidKeyError: If the key is empty, too long or escapes the bucket.
    """
    if not key or len(key.encode("utf-8")) > MAX_KEY_LENGTH or key.endswith("/"):
        raise InvalidKeyError(key)
    if any(part in ("", ".", "..") for part in key.split("/")):
        raise InvalidKeyError(key)


class LocalStorage:
    """Buckets as directories under a root, objects as files.

    Change notifications come from a watchdog observer on the root, so
    objects written by other processes trigger handlers too.

    Attributes:
        root: Storage root directory.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root).resolve()
        self._listeners: list[Listener] = []
        self._watcher: StorageWatcher | None = None

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def on_notification(self, callback: Listener) -> None:
        """Register a listener for object notifications."""
        self._listeners.append(callback)

    def remove_listener(self, callback: Listener) -> None:
        """Unregister a listener. Unknown listeners are ignored."""
        if callback in self._listeners:
            self._listeners.remove(callback)

    def emit(self, notification: RawNotification) -> None:
        """Deliver a notification to every registered listener.

        Args:
            notification: Notification to deliver.
        """
        logger.debug(
            "object_notification",
            bucket=notification.bucket,
            key=notification.key,
            event_type=notification.event_type,
            listeners=len(self._listeners),
        )
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception as e:
                logger.error(
                    "listener_error",
                    bucket=notification.bucket,
                    key=notification.key,
                    error=str(e),
                    exc_info=True,
                )

    async def on_filesystem_event(self, raw_event: FileSystemEvent) -> None:
        """Normalize a watched filesystem event and emit it."""
        notification = normalize_event(raw_event, self.root)
        if notification is not None:
            self.emit(notification)

    def watch(self, loop: asyncio.AbstractEventLoop, debounce_ms: int = 50) -> None:
        """Start emitting notifications for changes below the root."""
        if self._watcher is not None:
            return
        self._watcher = StorageWatcher(self.root, loop, self.on_filesystem_event, debounce_ms)
        self._watcher.start()

    def close(self) -> None:
        """Stop watching and drop all listeners."""
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        self._listeners.clear()

    def _bucket_path(self, bucket: str) -> Path:
        validate_bucket_name(bucket)
        return self.root / bucket

    def _object_path(self, bucket: str, key: str) -> Path:
        path = self._bucket_path(bucket)
        if not path.is_dir():
            raise NoSuchBucketError(bucket)
        validate_key(key)
        return path.joinpath(*key.split("/"))

    def bucket_exists(self, bucket: str) -> bool:
        return self._bucket_path(bucket).is_dir()

    def list_buckets(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_dir())

    def create_bucket(self, bucket: str) -> Path:
        """Create a bucket. Creating an existing bucket is a no-op.

        Raises:
            InvalidBucketNameError: If the name is not a valid bucket name.
        """
        path = self._bucket_path(bucket)
        path.mkdir(parents=True, exist_ok=True)
        logger.info("bucket_created", bucket=bucket, path=str(path))
        return path

    def remove_bucket(self, bucket: str) -> None:
        """Remove a bucket together with its objects.

        A bucket that does not exist counts as removed.

        Raises:
            BucketRemovalError: If the bucket exists but cannot be removed.
        """
        path = self._bucket_path(bucket)
        if not path.exists():
            logger.info("bucket_missing", bucket=bucket)
            return

        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            logger.info("bucket_missing", bucket=bucket)
            return
        except OSError as e:
            raise BucketRemovalError(bucket, e.strerror or str(e)) from e
        logger.info("bucket_removed", bucket=bucket)

    def list_objects(self, bucket: str, prefix: str = "") -> list[str]:
        """List object keys in a bucket, sorted, optionally by prefix.

        Raises:
            NoSuchBucketError: If the bucket does not exist.
        """
        path = self._bucket_path(bucket)
        if not path.is_dir():
            raise NoSuchBucketError(bucket)
        keys = (p.relative_to(path).as_posix() for p in path.rglob("*") if p.is_file())
        return sorted(k for k in keys if k.startswith(prefix))

    def put_object(self, bucket: str, key: str, body: bytes) -> str:
        """Store an object and return its entity tag.

        Raises:
            NoSuchBucketError: If the bucket does not exist.
            InvalidKeyError: If the key is not storable.
            KeyConflictError: If the key collides with an object or key prefix.
        """
        path = self._object_path(bucket, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)
        except (FileExistsError, NotADirectoryError, IsADirectoryError) as e:
            raise KeyConflictError(bucket, key) from e
        return hashlib.md5(body).hexdigest()

    def get_object(self, bucket: str, key: str) -> bytes:
        """Read an object.

        Raises:
            NoSuchBucketError: If the bucket does not exist.
            NoSuchKeyError: If the object does not exist.
        """
        path = self._object_path(bucket, key)
        if not path.is_file():
            raise NoSuchKeyError(bucket, key)
        return path.read_bytes()

    def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object. Deleting a missing key succeeds.

        A key that names a prefix of other objects is not an object, so
        deleting it is a no-op as well.

        Raises:
            NoSuchBucketError: If the bucket does not exist.
        """
        path = self._object_path(bucket, key)
        bucket_path = self.root / bucket
        if not path.is_file():
            return
        path.unlink(missing_ok=True)

        parent = path.parent
        while parent != bucket_path and parent.is_dir() and not any(parent.iterdir()):
            parent.rmdir()
            parent = parent.parent
