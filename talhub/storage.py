"""
Blob Storage
============

Document blobs live outside the database. Two backends share one interface:

- local: files under STORAGE_PATH, retrieved through signed /storage/{token} handles
- s3: an S3 (or S3-compatible) bucket, retrieved through presigned URLs

Object keys follow ``{case_id}/{user_id}/{timestamp_ms}_{sanitized_filename}``.
"""

import hashlib
import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import get_settings

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def sanitize_filename(filename: str) -> str:
    """Replace every character outside [A-Za-z0-9.-] with an underscore."""
    return _UNSAFE_FILENAME_CHARS.sub("_", filename)


def build_storage_path(case_id: str, user_id: str, filename: str, timestamp_ms: Optional[int] = None) -> str:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{case_id}/{user_id}/{timestamp_ms}_{sanitize_filename(filename)}"


@dataclass
class StorageMeta:
    """What the backend reports after a write"""
    key: str
    size_bytes: int
    sha256: str


class StorageError(Exception):
    """Raised by a backend when a blob operation fails"""


class LocalStorage:
    """Filesystem backend"""

    def __init__(self, base_path: str):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if self.base_path not in path.parents:
            raise StorageError(f"Invalid storage key: {key}")
        return path

    def generate_key(self, case_id: str, user_id: str, filename: str) -> str:
        return build_storage_path(case_id, user_id, filename)

    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> StorageMeta:
        path = self._resolve(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}")
        return StorageMeta(key=key, size_bytes=len(data), sha256=hashlib.sha256(data).hexdigest())

    def get(self, key: str) -> bytes:
        path = self._resolve(key)
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {key}: {e}")

    def exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def delete(self, key: str) -> None:
        """Remove a blob. Deleting a missing blob is not an error."""
        path = self._resolve(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageError(f"Failed to delete {key}: {e}")

    def create_signed_url(self, key: str, filename: str, expires_in: int) -> str:
        from .auth import create_storage_token

        token = create_storage_token(key, filename, expires_in)
        return f"/api/v1/storage/{token}"


class S3Storage:
    """S3 backend (boto3)"""

    def __init__(self, bucket: str, endpoint_url: Optional[str] = None, region: Optional[str] = None):
        import boto3

        self.bucket = bucket
        self._client = boto3.client("s3", endpoint_url=endpoint_url, region_name=region)

    def generate_key(self, case_id: str, user_id: str, filename: str) -> str:
        return build_storage_path(case_id, user_id, filename)

    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> StorageMeta:
        extra = {"ContentType": content_type} if content_type else {}
        try:
            self._client.put_object(Bucket=self.bucket, Key=key, Body=data, **extra)
        except Exception as e:
            raise StorageError(f"Failed to upload {key}: {e}")
        return StorageMeta(key=key, size_bytes=len(data), sha256=hashlib.sha256(data).hexdigest())

    def get(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except Exception as e:
            raise StorageError(f"Failed to read {key}: {e}")

    def exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
            return True
        except Exception:
            return False

    def delete(self, key: str) -> None:
        # S3 delete_object succeeds for missing keys
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except Exception as e:
            raise StorageError(f"Failed to delete {key}: {e}")

    def create_signed_url(self, key: str, filename: str, expires_in: int) -> str:
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={
                    "Bucket": self.bucket,
                    "Key": key,
                    "ResponseContentDisposition": f'attachment; filename="{filename}"',
                },
                ExpiresIn=expires_in,
            )
        except Exception as e:
            raise StorageError(f"Failed to sign {key}: {e}")


_storage = None
_storage_signature = None


def _storage_config() -> tuple:
    settings = get_settings()
    return (
        os.environ.get("STORAGE_BACKEND", settings.storage_backend).lower(),
        os.environ.get("STORAGE_PATH", settings.storage_path),
        os.environ.get("STORAGE_BUCKET", settings.storage_bucket),
    )


def get_storage():
    """Get the configured storage backend"""
    global _storage, _storage_signature
    signature = _storage_config()
    if _storage is None or _storage_signature != signature:
        backend, path, bucket = signature
        settings = get_settings()
        if backend == "s3":
            _storage = S3Storage(bucket, endpoint_url=settings.s3_endpoint, region=settings.s3_region)
        else:
            if backend != "local":
                logger.warning(f"Unknown STORAGE_BACKEND={backend!r}, using local storage")
            _storage = LocalStorage(path)
        _storage_signature = signature
        logger.info(f"Storage backend: {type(_storage).__name__}")
    return _storage


def reset_storage():
    """Drop the cached backend (primarily for tests)."""
    global _storage, _storage_signature
    _storage = None
    _storage_signature = None
