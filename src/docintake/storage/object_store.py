"""
Object Store
============
Raw document byte storage behind a small interface, with an S3-compatible
implementation on boto3.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

from ..config import ObjectStoreConfig
from ..exceptions import StorageError

logger = logging.getLogger(__name__)


def safe_object_name(filename: str) -> str:
    """
    Reduce a caller-supplied filename to one safe key segment.

    Directory parts are dropped and anything outside ``[A-Za-z0-9._-]``
    becomes ``_``. Leading dots are stripped so the segment is never
    ``.`` or ``..``.
    """
    base = (filename or "").replace("\\", "/").rsplit("/", 1)[-1].strip()
    name = "".join(ch if (ch.isascii() and ch.isalnum()) or ch in "._-" else "_" for ch in base)
    name = name.lstrip(".")
    return name[:200] or "document"


def intake_storage_path(owner_id: str, filename: str) -> str:
    """Object key for an intake file: ``{owner}/{ms}-{safe filename}``."""
    return f"{owner_id}/{int(time.time() * 1000)}-{safe_object_name(filename)}"


class ObjectStore(ABC):
    """Abstract object store used by every intake path."""

    @abstractmethod
    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
        overwrite: bool = False,
    ) -> None:
        """Store bytes at ``path``. Raises StorageError on failure."""
        pass

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Fetch the bytes stored at ``path``."""
        pass

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Check whether ``path`` holds an object."""
        pass

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Remove the object at ``path``."""
        pass


class S3ObjectStore(ObjectStore):
    """
    S3-compatible object store.

    Works against AWS S3 or any compatible endpoint (MinIO, R2, ...).
    boto3 is synchronous, so calls run in the default executor.
    """

    def __init__(self, config: ObjectStoreConfig):
        self.config = config
        self._client = None

    def _get_client(self):
        """Get or create boto3 S3 client."""
        if self._client is None:
            import boto3

            session_kwargs = {}
            if self.config.access_key_id:
                session_kwargs["aws_access_key_id"] = self.config.access_key_id
                session_kwargs["aws_secret_access_key"] = self.config.secret_access_key

            session = boto3.Session(**session_kwargs)

            client_kwargs = {"region_name": self.config.region_name}
            if self.config.endpoint_url:
                client_kwargs["endpoint_url"] = self.config.endpoint_url

            self._client = session.client("s3", **client_kwargs)

        return self._client

    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
        overwrite: bool = False,
    ) -> None:
        """Upload bytes to the bucket."""
        if not overwrite and await self.exists(path):
            raise StorageError(f"Object already exists: {path}")

        loop = asyncio.get_event_loop()
        client = self._get_client()

        def _upload():
            client.put_object(
                Bucket=self.config.bucket_name,
                Key=path,
                Body=data,
                ContentType=content_type or "application/octet-stream",
            )

        try:
            await loop.run_in_executor(None, _upload)
        except Exception as e:
            logger.error(f"Upload failed for {path}: {e}")
            raise StorageError(f"Upload failed for {path}: {e}") from e

        logger.debug(f"Stored {len(data)} bytes at {path}")

    async def download(self, path: str) -> bytes:
        """Download object bytes from the bucket."""
        loop = asyncio.get_event_loop()
        client = self._get_client()

        def _download():
            response = client.get_object(Bucket=self.config.bucket_name, Key=path)
            return response["Body"].read()

        try:
            return await loop.run_in_executor(None, _download)
        except Exception as e:
            logger.error(f"Download failed for {path}: {e}")
            raise StorageError(f"Download failed for {path}: {e}") from e

    async def exists(self, path: str) -> bool:
        """Check for an object with a HEAD request."""
        from botocore.exceptions import ClientError

        loop = asyncio.get_event_loop()
        client = self._get_client()

        def _head():
            try:
                client.head_object(Bucket=self.config.bucket_name, Key=path)
                return True
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                    return False
                raise

        try:
            return await loop.run_in_executor(None, _head)
        except ClientError as e:
            raise StorageError(f"Existence check failed for {path}: {e}") from e

    async def delete(self, path: str) -> None:
        """Remove the object at ``path``. Deleting a missing key is not an error."""
        loop = asyncio.get_event_loop()
        client = self._get_client()

        def _delete():
            client.delete_object(Bucket=self.config.bucket_name, Key=path)

        try:
            await loop.run_in_executor(None, _delete)
        except Exception as e:
            logger.error(f"Delete failed for {path}: {e}")
            raise StorageError(f"Delete failed for {path}: {e}") from e

        logger.debug(f"Deleted object {path}")
