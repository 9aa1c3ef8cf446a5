"""Storage backends for dataset files."""

from .adapters import (
    BlobStorage,
    LocalStorage,
    MountedStorage,
    StorageAdapter,
    build_storage,
    to_mount_path,
    to_object_key,
)

__all__ = [
    "StorageAdapter",
    "LocalStorage",
    "MountedStorage",
    "BlobStorage",
    "build_storage",
    "to_mount_path",
    "to_object_key",
]
