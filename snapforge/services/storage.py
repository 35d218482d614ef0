"""Path-addressed blob storage with local-filesystem and S3 backends.

Paths look like ``{gallery_id}/{image_id}.{ext}``; the gallery prefix lets a
whole gallery be removed with ``delete_prefix``.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from snapforge.services.errors import BlobNotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class BlobStorage(ABC):
    """Interface every backend implements."""

    @abstractmethod
    def save(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> None: ...

    @abstractmethod
    def read(self, path: str) -> bytes: ...

    @abstractmethod
    def delete(self, path: str) -> None:
        """Remove ``path``; a missing blob is not an error."""

    @abstractmethod
    def exists(self, path: str) -> bool: ...

    @abstractmethod
    def delete_prefix(self, prefix: str) -> None: ...


class LocalStorage(BlobStorage):
    def __init__(self, base_path: str):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _full_path(self, path: str) -> Path:
        full = (self.base_path / path).resolve()
        if full != self.base_path and self.base_path not in full.parents:
            raise ValidationError("Invalid storage path")
        return full

    def save(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        full = self._full_path(path)
        try:
            full.parent.mkdir(parents=True, exist_ok=True)
            tmp = full.with_name(full.name + ".tmp")
            tmp.write_bytes(data)
            os.replace(tmp, full)
        except OSError as e:
            logger.error("Local save failed for %s: %s", path, e)
            raise StorageError() from e

    def read(self, path: str) -> bytes:
        try:
            return self._full_path(path).read_bytes()
        except FileNotFoundError as e:
            raise BlobNotFoundError() from e
        except OSError as e:
            logger.error("Local read failed for %s: %s", path, e)
            raise StorageError() from e

    def delete(self, path: str) -> None:
        try:
            self._full_path(path).unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            logger.error("Local delete failed for %s: %s", path, e)
            raise StorageError() from e

    def exists(self, path: str) -> bool:
        return self._full_path(path).is_file()

    def delete_prefix(self, prefix: str) -> None:
        target = self._full_path(prefix.rstrip("/"))
        if target == self.base_path:
            raise ValidationError("Refusing to delete the storage root")
        try:
            shutil.rmtree(target)
        except FileNotFoundError:
            return
        except OSError as e:
            if e.errno == errno.ENOENT:
                return
            logger.error("Local prefix delete failed for %s: %s", prefix, e)
            raise StorageError() from e


class S3Storage(BlobStorage):
    """Stores blobs as objects in one bucket (AWS S3 or a compatible service)."""

    def __init__(
        self,
        bucket: str,
        region: str = "",
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        client=None,
    ):
        if not bucket:
            raise ValueError("S3 storage requires a bucket name")
        self.bucket = bucket
        self.client = client or boto3.client(
            "s3",
            region_name=region or None,
            aws_access_key_id=access_key or None,
            aws_secret_access_key=secret_key or None,
            endpoint_url=endpoint or None,
        )
        logger.info("S3 storage initialized for bucket '%s'", bucket)

    def save(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket, Key=path, Body=data, ContentType=content_type
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("S3 upload failed for %s: %s", path, e)
            raise StorageError() from e

    def read(self, path: str) -> bytes:
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=path)
            return obj["Body"].read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                raise BlobNotFoundError() from e
            logger.error("S3 read failed for %s: %s", path, e)
            raise StorageError() from e
        except BotoCoreError as e:
            logger.error("S3 read failed for %s: %s", path, e)
            raise StorageError() from e

    def delete(self, path: str) -> None:
        # DeleteObject succeeds for missing keys, which gives idempotency for free
        try:
            self.client.delete_object(Bucket=self.bucket, Key=path)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                return
            logger.error("S3 delete failed for %s: %s", path, e)
            raise StorageError() from e
        except BotoCoreError as e:
            logger.error("S3 delete failed for %s: %s", path, e)
            raise StorageError() from e

    def exists(self, path: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=path)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                return False
            logger.error("Error checking S3 object existence: %s", e)
            raise StorageError() from e

    def delete_prefix(self, prefix: str) -> None:
        prefix = prefix.rstrip("/") + "/"
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys = [{"Key": obj["Key"]} for obj in page.get("Contents", [])]
                if keys:
                    self.client.delete_objects(
                        Bucket=self.bucket, Delete={"Objects": keys, "Quiet": True}
                    )
        except (ClientError, BotoCoreError) as e:
            logger.error("S3 prefix delete failed for %s: %s", prefix, e)
            raise StorageError() from e


def build_storage(storage_settings) -> BlobStorage:
    """Instantiate the single backend selected by the ``storage`` setting."""
    if storage_settings.type == "s3":
        return S3Storage(
            bucket=storage_settings.s3_bucket,
            region=storage_settings.s3_region,
            access_key=storage_settings.s3_access_key,
            secret_key=storage_settings.s3_secret_key,
            endpoint=storage_settings.s3_endpoint,
        )
    logger.info("Using local storage at %s", storage_settings.local_path)
    return LocalStorage(storage_settings.local_path)
