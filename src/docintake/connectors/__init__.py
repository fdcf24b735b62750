"""
Intake Connectors Package
=========================
Remote file-store connectors and the Azure Blob scan source.
"""

from .credentials import ConnectorCredentials, CredentialCipher
from .file_store import (
    GoogleDriveFileStore,
    RemoteContent,
    RemoteEntry,
    RemoteFileStore,
    SharePointFileStore,
    create_file_store,
)
from .blob_source import AzureBlobSource, BlobObject

__all__ = [
    "ConnectorCredentials",
    "CredentialCipher",
    "GoogleDriveFileStore",
    "RemoteContent",
    "RemoteEntry",
    "RemoteFileStore",
    "SharePointFileStore",
    "create_file_store",
    "AzureBlobSource",
    "BlobObject",
]
