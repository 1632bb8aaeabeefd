"""Local directory-backed storage emulator."""
from s3local.storage.local import LocalStorage
from s3local.storage.watcher import StorageWatcher

__all__ = ["LocalStorage", "StorageWatcher"]
