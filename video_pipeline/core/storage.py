"""Blob store supporting multiple backends.

Supports: local filesystem, S3, MinIO, and other S3-compatible storage.
Keys are flat ``<prefix>/<name>`` strings shared by every component that
points at the same store; there is no per-worker isolation.
"""

import logging
import os
import shutil
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from video_pipeline.core.config import Settings
from video_pipeline.core.exceptions import StoreReadError, StoreWriteError

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

_NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")


@dataclass
class StorageConfig:
    """Storage configuration."""
    backend: str  # local, s3, minio
    bucket: str = ""
    region: str = ""
    access_key: str = ""
    secret_key: str = ""
    endpoint_url: Optional[str] = None
    use_ssl: bool = True
    local_path: str = "./storage"

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageConfig":
        return cls(
            backend=settings.STORAGE_BACKEND,
            bucket=settings.STORAGE_BUCKET,
            region=settings.STORAGE_REGION,
            access_key=settings.STORAGE_ACCESS_KEY,
            secret_key=settings.STORAGE_SECRET_KEY,
            endpoint_url=settings.STORAGE_ENDPOINT_URL,
            use_ssl=settings.STORAGE_USE_SSL,
            local_path=settings.LOCAL_STORAGE_PATH,
        )


class BlobStore(ABC):
    """Abstract base class for blob store backends."""

    @abstractmethod
    def put(self, local_path: PathLike, key: str) -> None:
        """Copy a local file into the store under ``key``.

        Raises:
            StoreWriteError: If the source is unreadable or the write fails
        """

    @abstractmethod
    def get(self, key: str, local_path: PathLike) -> Path:
        """Copy the object named ``key`` to ``local_path``.

        Raises:
            StoreReadError: If the key does not exist or the read fails
        """

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check if an object exists."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete an object; returns False if it was not there."""


def _check_source(local_path: PathLike, key: str) -> Path:
    src = Path(local_path)
    if not src.is_file() or not os.access(src, os.R_OK):
        raise StoreWriteError(f"Source file is not readable: {src}", key=key)
    return src


def _discard_partial(local_path: Path) -> None:
    try:
        local_path.unlink()
    except FileNotFoundError:
        pass


class LocalBlobStore(BlobStore):
    """Local filesystem blob store; the base directory plays the bucket."""

    def __init__(self, config: StorageConfig):
        self.base_path = Path(config.local_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, key: str) -> Path:
        """Get full path for a key, refusing keys that escape the base path."""
        base = self.base_path.resolve()
        full = (base / key).resolve()
        if base != full and base not in full.parents:
            raise ValueError(f"Key escapes storage root: {key}")
        return full

    def put(self, local_path: PathLike, key: str) -> None:
        """Store a file under ``key``.

        The bytes are written to a hidden temp file next to the key and
        renamed onto it, so a failed copy never leaves a truncated object.
        """
        src = _check_source(local_path, key)
        tmp_path: Optional[Path] = None
        try:
            dest_path = self._get_full_path(key)
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = dest_path.with_name(f".{dest_path.name}.{uuid.uuid4().hex}.tmp")
            shutil.copyfile(src, tmp_path)
            os.replace(tmp_path, dest_path)
        except (OSError, ValueError) as e:
            if tmp_path is not None:
                _discard_partial(tmp_path)
            raise StoreWriteError(f"Failed to write {key}: {e}", key=key, cause=e) from e
        logger.debug("Stored %s (%d bytes)", key, dest_path.stat().st_size)

    def get(self, key: str, local_path: PathLike) -> Path:
        destination = Path(local_path)
        try:
            src_path = self._get_full_path(key)
        except ValueError as e:
            raise StoreReadError(str(e), key=key, cause=e) from e
        if not src_path.is_file():
            raise StoreReadError(f"Object not found: {key}", key=key)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src_path, destination)
        except OSError as e:
            _discard_partial(destination)
            raise StoreReadError(f"Failed to read {key}: {e}", key=key, cause=e) from e
        return destination

    def exists(self, key: str) -> bool:
        try:
            return self._get_full_path(key).is_file()
        except ValueError:
            return False

    def delete(self, key: str) -> bool:
        try:
            self._get_full_path(key).unlink()
            return True
        except (FileNotFoundError, ValueError):
            return False


class S3BlobStore(BlobStore):
    """S3/MinIO compatible blob store backend."""

    def __init__(self, config: StorageConfig, client=None):
        self.config = config
        self._client = client

    def _get_client(self):
        """Get or create S3 client."""
        if self._client is None:
            import boto3
            from botocore.config import Config as BotoConfig

            client_kwargs = {
                "service_name": "s3",
                "region_name": self.config.region or "us-east-1",
            }

            if self.config.access_key and self.config.secret_key:
                client_kwargs["aws_access_key_id"] = self.config.access_key
                client_kwargs["aws_secret_access_key"] = self.config.secret_key

            # For MinIO or other S3-compatible storage
            if self.config.endpoint_url:
                client_kwargs["endpoint_url"] = self.config.endpoint_url
                client_kwargs["config"] = BotoConfig(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                )

            if not self.config.use_ssl and self.config.endpoint_url:
                # Allow non-SSL for local MinIO
                client_kwargs["use_ssl"] = False

            self._client = boto3.client(**client_kwargs)

        return self._client

    def put(self, local_path: PathLike, key: str) -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        src = _check_source(local_path, key)
        try:
            self._get_client().upload_file(str(src), self.config.bucket, key)
        except (BotoCoreError, ClientError, OSError) as e:
            raise StoreWriteError(f"Failed to upload {key}: {e}", key=key, cause=e) from e

    def get(self, key: str, local_path: PathLike) -> Path:
        from botocore.exceptions import BotoCoreError, ClientError

        destination = Path(local_path)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            self._get_client().download_file(self.config.bucket, key, str(destination))
        except ClientError as e:
            _discard_partial(destination)
            code = (e.response.get("Error") or {}).get("Code")
            if code in _NOT_FOUND_CODES:
                raise StoreReadError(f"Object not found: {key}", key=key, cause=e) from e
            raise StoreReadError(f"Failed to download {key}: {e}", key=key, cause=e) from e
        except (BotoCoreError, OSError) as e:
            _discard_partial(destination)
            raise StoreReadError(f"Failed to download {key}: {e}", key=key, cause=e) from e
        return destination

    def exists(self, key: str) -> bool:
        from botocore.exceptions import ClientError

        try:
            self._get_client().head_object(Bucket=self.config.bucket, Key=key)
            return True
        except ClientError as e:
            code = (e.response.get("Error") or {}).get("Code")
            if code in _NOT_FOUND_CODES:
                return False
            raise StoreReadError(f"Failed to stat {key}: {e}", key=key, cause=e) from e

    def delete(self, key: str) -> bool:
        from botocore.exceptions import ClientError

        try:
            self._get_client().delete_object(Bucket=self.config.bucket, Key=key)
            return True
        except ClientError:
            logger.warning("Failed to delete %s", key, exc_info=True)
            return False


def create_blob_store(config: StorageConfig) -> BlobStore:
    """Create appropriate blob store backend."""
    backend_type = config.backend.lower()

    if backend_type == "local":
        return LocalBlobStore(config)
    elif backend_type in ("s3", "minio", "aws"):
        return S3BlobStore(config)
    else:
        raise ValueError(f"Unsupported storage backend: {backend_type}")
