"""
Remote File-Store Connectors
============================
Connectors for third-party file stores: SharePoint (Microsoft Graph) and
Google Drive. Both walk the remote tree breadth-first and expose per-item
content downloads.
"""

import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Optional
from urllib.parse import quote

import httpx

from ..config import ConnectorConfig
from ..exceptions import (
    ConfigurationError,
    ConnectorError,
    RemoteListingError,
    TokenExchangeError,
)
from ..models.connector import ConnectorProvider
from .credentials import ConnectorCredentials

logger = logging.getLogger(__name__)

GOOGLE_FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


@dataclass
class RemoteEntry:
    """A file or folder in a remote store."""
    item_id: str
    name: str
    path: str
    is_folder: bool = False
    modified_at: Optional[datetime] = None
    mime_type: Optional[str] = None


@dataclass
class RemoteContent:
    """Downloaded bytes of a remote file."""
    content: bytes
    content_type: str
    modified_at: Optional[datetime] = None


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        return None


def _child_path(parent: str, name: str) -> str:
    if parent in ("", "/"):
        return f"/{name}"
    return f"{parent.rstrip('/')}/{name}"


class RemoteFileStore(ABC):
    """
    Abstract base class for remote file-store connectors.

    Subclasses implement token exchange, folder listing, and content
    download; the breadth-first walk is shared.
    """

    provider: ConnectorProvider

    def __init__(
        self,
        credentials: ConnectorCredentials,
        config: Optional[ConnectorConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.credentials = credentials
        self.config = config or ConnectorConfig()
        self._http_client = http_client
        self._owns_client = http_client is None
        self._access_token: Optional[str] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.config.http_timeout,
                follow_redirects=True,
            )
            self._owns_client = True
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client if this connector created it."""
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def get_access_token(self) -> str:
        """
        Get a bearer token.

        A supplied short-lived token is used as-is; otherwise stored
        long-lived credentials are exchanged once per connector instance.
        """
        if self._access_token:
            return self._access_token

        if self.credentials.access_token:
            self._access_token = self.credentials.access_token
        else:
            self._access_token = await self._exchange_token()
            logger.info(f"Obtained {self.provider.value} access token")

        return self._access_token

    async def _post_token_request(self, url: str, form: dict[str, str], label: str) -> str:
        client = await self._get_client()
        try:
            response = await client.post(url, data=form)
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"{label} token request failed: {e}") from e

        if response.status_code >= 400:
            raise TokenExchangeError(f"{label} token request failed ({response.status_code})")

        token = response.json().get("access_token")
        if not token:
            raise TokenExchangeError(f"{label} token response missing access_token")
        return token

    async def _authorized_get(
        self,
        url: str,
        params: Optional[dict] = None,
    ) -> httpx.Response:
        token = await self.get_access_token()
        client = await self._get_client()
        try:
            return await client.get(url, params=params, headers={"Authorization": f"Bearer {token}"})
        except httpx.HTTPError as e:
            raise RemoteListingError(f"{self.provider.value} request failed: {e}") from e

    @abstractmethod
    async def _exchange_token(self) -> str:
        """Exchange long-lived credentials for an access token."""
        pass

    @abstractmethod
    def root_folder(self) -> RemoteEntry:
        """Folder the walk starts from."""
        pass

    @abstractmethod
    async def list_children(self, folder: RemoteEntry) -> list[RemoteEntry]:
        """List the direct children of a folder."""
        pass

    @abstractmethod
    async def download_content(self, entry: RemoteEntry) -> RemoteContent:
        """Download a file's bytes."""
        pass

    async def walk(self) -> AsyncIterator[RemoteEntry]:
        """
        Yield every file under the root, breadth-first over folders.

        Files are yielded as each folder is listed, so callers can download
        and process them before the next folder is requested.
        """
        queue: deque[RemoteEntry] = deque([self.root_folder()])

        while queue:
            folder = queue.popleft()
            for entry in await self.list_children(folder):
                if entry.is_folder:
                    queue.append(entry)
                else:
                    yield entry

    async def test_connection(self) -> tuple[bool, str]:
        """Test credentials by exchanging a token and listing the root."""
        try:
            children = await self.list_children(self.root_folder())
            return True, f"Connected. Found {len(children)} entries in root folder"
        except (ConnectorError, ConfigurationError) as e:
            return False, str(e)


class SharePointFileStore(RemoteFileStore):
    """
    SharePoint document library connector via Microsoft Graph.

    Authenticates with the client-credentials grant unless an access token
    is supplied.
    """

    provider = ConnectorProvider.SHAREPOINT

    def _drive_url(self) -> str:
        site_id = self.credentials.require("site_id")
        drive_id = self.credentials.require("drive_id")
        return f"{self.config.graph_base_url}/sites/{site_id}/drives/{drive_id}"

    async def _exchange_token(self) -> str:
        tenant_id = self.credentials.require("tenant_id")
        form = {
            "client_id": self.credentials.require("client_id"),
            "client_secret": self.credentials.require("client_secret"),
            "scope": "https://graph.microsoft.com/.default",
            "grant_type": "client_credentials",
        }
        url = f"{self.config.microsoft_login_url}/{tenant_id}/oauth2/v2.0/token"
        return await self._post_token_request(url, form, "SharePoint")

    def root_folder(self) -> RemoteEntry:
        root = self.credentials.folder_path
        if not root or not root.strip():
            root = "/"
        return RemoteEntry(item_id="root", name="", path=root, is_folder=True)

    async def list_children(self, folder: RemoteEntry) -> list[RemoteEntry]:
        """List a folder by path, following Graph paging links."""
        encoded = "/".join(quote(part, safe="") for part in folder.path.split("/") if part)
        if encoded:
            url: Optional[str] = f"{self._drive_url()}/root:/{encoded}:/children"
        else:
            url = f"{self._drive_url()}/root/children"

        entries: list[RemoteEntry] = []
        while url:
            response = await self._authorized_get(url)
            if response.status_code >= 400:
                raise RemoteListingError(
                    f'SharePoint list failed for "{folder.path}" ({response.status_code})'
                )
            data = response.json()

            for item in data.get("value", []):
                item_id = item.get("id")
                name = item.get("name")
                if not isinstance(item_id, str) or not isinstance(name, str):
                    continue

                if isinstance(item.get("folder"), dict):
                    entries.append(RemoteEntry(
                        item_id=item_id,
                        name=name,
                        path=_child_path(folder.path, name),
                        is_folder=True,
                    ))
                elif isinstance(item.get("file"), dict):
                    entries.append(RemoteEntry(
                        item_id=item_id,
                        name=name,
                        path=_child_path(folder.path, name),
                        modified_at=_parse_timestamp(item.get("lastModifiedDateTime")),
                        mime_type=item["file"].get("mimeType"),
                    ))

            url = data.get("@odata.nextLink")

        return entries

    async def download_content(self, entry: RemoteEntry) -> RemoteContent:
        """Download a drive item's content."""
        response = await self._authorized_get(f"{self._drive_url()}/items/{entry.item_id}/content")
        if response.status_code >= 400:
            raise RemoteListingError(
                f'SharePoint file download failed for "{entry.name}" ({response.status_code})'
            )

        return RemoteContent(
            content=response.content,
            content_type=response.headers.get("content-type", "application/octet-stream"),
            modified_at=entry.modified_at or datetime.utcnow(),
        )


class GoogleDriveFileStore(RemoteFileStore):
    """
    Google Drive connector via the Drive v3 API.

    Authenticates with the refresh-token grant unless an access token is
    supplied.
    """

    provider = ConnectorProvider.GOOGLE_DRIVE

    async def _exchange_token(self) -> str:
        form = {
            "client_id": self.credentials.require("client_id"),
            "client_secret": self.credentials.require("client_secret"),
            "refresh_token": self.credentials.require("refresh_token"),
            "grant_type": "refresh_token",
        }
        return await self._post_token_request(self.config.google_token_url, form, "Google")

    def root_folder(self) -> RemoteEntry:
        folder_id = self.credentials.folder_id
        if not folder_id or not folder_id.strip():
            folder_id = "root"
        return RemoteEntry(item_id=folder_id, name="", path="/", is_folder=True)

    async def list_children(self, folder: RemoteEntry) -> list[RemoteEntry]:
        """List a folder by id, following nextPageToken."""
        entries: list[RemoteEntry] = []
        page_token = ""

        while True:
            params = {
                "q": f"'{folder.item_id}' in parents and trashed = false",
                "pageSize": str(self.config.google_page_size),
                "fields": "nextPageToken,files(id,name,mimeType,modifiedTime)",
            }
            if page_token:
                params["pageToken"] = page_token

            response = await self._authorized_get(f"{self.config.google_drive_base_url}/files", params=params)
            if response.status_code >= 400:
                raise RemoteListingError(f"Google Drive list failed ({response.status_code})")
            data = response.json()

            for item in data.get("files", []):
                entries.append(RemoteEntry(
                    item_id=item["id"],
                    name=item["name"],
                    path=_child_path(folder.path, item["name"]),
                    is_folder=item.get("mimeType") == GOOGLE_FOLDER_MIME_TYPE,
                    modified_at=_parse_timestamp(item.get("modifiedTime")),
                    mime_type=item.get("mimeType"),
                ))

            page_token = data.get("nextPageToken") or ""
            if not page_token:
                break

        return entries

    async def download_content(self, entry: RemoteEntry) -> RemoteContent:
        """Download file media."""
        url = f"{self.config.google_drive_base_url}/files/{quote(entry.item_id, safe='')}"
        response = await self._authorized_get(url, params={"alt": "media"})
        if response.status_code >= 400:
            raise RemoteListingError(
                f'Google Drive file download failed for "{entry.name}" ({response.status_code})'
            )

        return RemoteContent(
            content=response.content,
            content_type=response.headers.get("content-type", "application/octet-stream"),
            modified_at=entry.modified_at or datetime.utcnow(),
        )


FILE_STORES: dict[ConnectorProvider, type[RemoteFileStore]] = {
    ConnectorProvider.SHAREPOINT: SharePointFileStore,
    ConnectorProvider.GOOGLE_DRIVE: GoogleDriveFileStore,
}


def create_file_store(
    provider: ConnectorProvider,
    credentials: ConnectorCredentials,
    config: Optional[ConnectorConfig] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> RemoteFileStore:
    """Build the connector for a provider."""
    store_cls = FILE_STORES.get(provider)
    if store_cls is None:
        raise ConfigurationError(f"Unsupported connector provider: {provider}")
    return store_cls(credentials, config=config, http_client=http_client)
