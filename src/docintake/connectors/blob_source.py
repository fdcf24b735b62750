"""
Azure Blob Source
=================
Lists and downloads blobs from the Azure container that scheduled
auto-fetch scans read from.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..config import BlobScanConfig
from ..exceptions import ConfigurationError, StorageError

logger = logging.getLogger(__name__)


@dataclass
class BlobObject:
    """A blob in the scanned container."""
    key: str
    size: int
    last_modified: Optional[datetime] = None
    content_type: Optional[str] = None

    @property
    def filename(self) -> str:
        return self.key.rsplit("/", 1)[-1]


class AzureBlobSource:
    """
    Azure Blob Storage reader.

    The azure-storage-blob SDK is synchronous here, so calls run in the
    default executor.
    """

    def __init__(self, config: BlobScanConfig):
        self.config = config
        self._container_client = None

    def _get_container_client(self):
        """Get or create Azure container client."""
        if self._container_client is None:
            from azure.storage.blob import ContainerClient

            if not self.config.connection_string:
                raise ConfigurationError("Azure storage connection string is not configured")

            self._container_client = ContainerClient.from_connection_string(
                self.config.connection_string,
                container_name=self.config.container_name,
            )

        return self._container_client

    async def list_blobs(self, prefix: Optional[str] = None) -> list[BlobObject]:
        """List blobs under a folder prefix."""
        loop = asyncio.get_event_loop()
        container = self._get_container_client()

        def _list():
            objects = []
            for blob in container.list_blobs(name_starts_with=prefix or ""):
                objects.append(BlobObject(
                    key=blob.name,
                    size=blob.size,
                    last_modified=blob.last_modified,
                    content_type=blob.content_settings.content_type if blob.content_settings else None,
                ))
            return objects

        try:
            return await loop.run_in_executor(None, _list)
        except Exception as e:
            raise StorageError(f"Listing {self.config.container_name}/{prefix or ''} failed: {e}") from e

    async def download(self, key: str) -> bytes:
        """Download a blob's bytes."""
        loop = asyncio.get_event_loop()
        container = self._get_container_client()

        def _download():
            return container.get_blob_client(key).download_blob().readall()

        try:
            return await loop.run_in_executor(None, _download)
        except Exception as e:
            raise StorageError(f"Download of {key} failed: {e}") from e
