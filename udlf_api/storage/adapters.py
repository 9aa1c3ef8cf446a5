"""Storage adapters: local filesystem, mounted bucket, or blob store downloads.

All three share one contract: ``read`` returns the same bytes for the same
object whichever backend reaches it.
"""

import logging
import os
import shutil
import threading
from abc import ABC, abstractmethod
from datetime import timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage as gcs

from ..errors import NotFound, StorageError, Unsupported
from ..settings import Deployment, Settings

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

DEFAULT_SIGNED_URL_TTL = 15 * 60  # seconds
BLOB_ROOT_PREFIX = "app/"


def to_mount_path(value: str, mount_prefix: str) -> str:
    """
    Map a dataset path onto a bucket mounted at ``mount_prefix``.

    ``app/...`` and ``/app/...`` live under ``<mount>/app``; a bare
    ``Datasets/...`` is taken as ``app/Datasets/...``. Anything else,
    including already mapped paths, is returned unchanged.
    """
    prefix = mount_prefix.rstrip("/")
    if value == prefix or value.startswith(prefix + "/"):
        return value
    if value.startswith("app/"):
        return f"{prefix}/{value}"
    if value.startswith("Datasets/"):
        return f"{prefix}/app/{value}"
    if value.startswith("/app/"):
        return f"{prefix}{value}"
    return value


def to_object_key(path: str) -> str:
    """Normalize a dataset path to a blob object key under ``app/``."""
    key = path.lstrip("/")
    if not key.startswith(BLOB_ROOT_PREFIX):
        key = BLOB_ROOT_PREFIX + key
    return key


class StorageAdapter(ABC):
    """Reads dataset files from wherever the deployment keeps them."""

    deployment: Deployment

    @abstractmethod
    def read(self, path: PathLike) -> bytes:
        """Full contents of a file."""

    @abstractmethod
    def exists(self, path: PathLike) -> bool:
        """Whether a file exists."""

    @abstractmethod
    def download(self, path: PathLike, destination: PathLike) -> Path:
        """Copy a file to a local destination and return that path."""

    def read_text(self, path: PathLike) -> str:
        return self.read(path).decode("utf-8", errors="replace")

    def signed_url(self, path: PathLike, ttl: int = DEFAULT_SIGNED_URL_TTL) -> str:
        raise Unsupported(f"Signed URLs are not available for {self.deployment.value} storage")

    def clear_cache(self) -> None:
        """Forget memoized reads (no-op for uncached backends)."""


class LocalStorage(StorageAdapter):
    """Direct filesystem access; relative paths are taken from ``base_path``."""

    deployment = Deployment.LOCAL

    def __init__(self, base_path: Optional[PathLike] = None):
        self.base_path = Path(base_path) if base_path else None

    def resolve(self, path: PathLike) -> Path:
        p = Path(path)
        if not p.is_absolute() and self.base_path is not None:
            p = self.base_path / p
        return p

    def read(self, path: PathLike) -> bytes:
        physical = self.resolve(path)
        try:
            with open(physical, "rb") as f:
                return f.read()
        except FileNotFoundError:
            raise NotFound(f"File not found: {physical}")
        except OSError as e:
            raise StorageError(f"Failed to read {physical}: {e}") from e

    def exists(self, path: PathLike) -> bool:
        try:
            os.stat(self.resolve(path))
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to stat {path}: {e}") from e

    def download(self, path: PathLike, destination: PathLike) -> Path:
        source = self.resolve(path)
        destination = Path(destination)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, destination)
        except FileNotFoundError:
            raise NotFound(f"File not found: {source}")
        except OSError as e:
            raise StorageError(f"Failed to copy {source}: {e}") from e
        return destination


class MountedStorage(LocalStorage):
    """Filesystem access to a bucket mounted under a prefix (e.g. a FUSE mount)."""

    deployment = Deployment.MOUNTED

    def __init__(self, mount_prefix: str, base_path: Optional[PathLike] = None):
        super().__init__(base_path)
        self.mount_prefix = mount_prefix.rstrip("/") or "/"

    def resolve(self, path: PathLike) -> Path:
        return super().resolve(to_mount_path(str(path), self.mount_prefix))


class BlobStorage(StorageAdapter):
    """Google Cloud Storage backend with an in-memory read cache keyed by object key."""

    deployment = Deployment.BLOB

    def __init__(
        self,
        bucket_name: str = "",
        project_id: str = "",
        credentials_file: Optional[str] = None,
        bucket=None,
    ):
        """
        Connect to a bucket.

        Args:
            bucket_name: Bucket to read from
            project_id: Cloud project
            credentials_file: Service account JSON; implicit identity when None
            bucket: Pre-built bucket object (skips client creation)
        """
        if bucket is None:
            if credentials_file:
                client = gcs.Client.from_service_account_json(credentials_file, project=project_id or None)
                logger.info(f"Blob storage initialized with key file: {credentials_file}")
            else:
                client = gcs.Client(project=project_id or None)
                logger.info("Blob storage initialized with default credentials")
            bucket = client.bucket(bucket_name)
            logger.info(f"Blob storage connected to bucket: {bucket_name}")

        self.bucket = bucket
        self._cache: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def object_key(self, path: PathLike) -> str:
        return to_object_key(str(path))

    def read(self, path: PathLike) -> bytes:
        key = self.object_key(path)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        try:
            content = self.bucket.blob(key).download_as_bytes()
        except gcs_exceptions.NotFound:
            raise NotFound(f"File not found: {path}")
        except Exception as e:
            raise StorageError(f"Failed to read {key} from blob store: {e}") from e

        with self._lock:
            self._cache[key] = content
        logger.info(f"Downloaded from blob store: {key}")
        return content

    def exists(self, path: PathLike) -> bool:
        key = self.object_key(path)
        try:
            return bool(self.bucket.blob(key).exists())
        except Exception as e:
            raise StorageError(f"Failed to check {key} in blob store: {e}") from e

    def download(self, path: PathLike, destination: PathLike) -> Path:
        key = self.object_key(path)
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.bucket.blob(key).download_to_filename(str(destination))
        except gcs_exceptions.NotFound:
            raise NotFound(f"File not found: {path}")
        except Exception as e:
            raise StorageError(f"Failed to download {key}: {e}") from e
        logger.info(f"Downloaded {key} to {destination}")
        return destination

    def signed_url(self, path: PathLike, ttl: int = DEFAULT_SIGNED_URL_TTL) -> str:
        key = self.object_key(path)
        try:
            return self.bucket.blob(key).generate_signed_url(
                version="v4",
                method="GET",
                expiration=timedelta(seconds=ttl),
            )
        except Exception as e:
            raise StorageError(f"Failed to sign URL for {key}: {e}") from e

    def list_directory(self, prefix: str = "") -> Tuple[List[str], List[dict]]:
        """
        List one level of the bucket below ``prefix``.

        Returns:
            Tuple of (directory prefixes, file entries with name/size/updated)
        """
        if prefix and not prefix.endswith("/"):
            prefix = prefix + "/"
        try:
            blobs = self.bucket.list_blobs(prefix=prefix or None, delimiter="/")
            files = [
                {"name": b.name, "size": int(b.size or 0), "updated": b.updated}
                for b in blobs
                if b.name != prefix
            ]
            directories = sorted(blobs.prefixes)
        except Exception as e:
            raise StorageError(f"Failed to list {prefix or '/'}: {e}") from e
        return directories, files

    def clear_cache(self) -> None:
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
        logger.info(f"Blob read cache cleared ({count} entries)")


def build_storage(settings: Settings) -> StorageAdapter:
    """Pick the storage adapter for the active deployment."""
    deployment = settings.deployment
    logger.info(f"Storage backend: {deployment.value}")
    if deployment == Deployment.BLOB:
        return BlobStorage(
            bucket_name=settings.gcs_bucket_name,
            project_id=settings.gcs_project_id,
            credentials_file=settings.gcs_credentials_file,
        )
    if deployment == Deployment.MOUNTED:
        return MountedStorage(settings.gcs_mount_path, base_path=settings.app_datasets_path)
    return LocalStorage(base_path=settings.app_datasets_path)
