"""
Connector Credentials
=====================
Credential model for remote file stores and at-rest encryption of the
stored credential object.
"""

import json
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import ConfigurationError, MissingCredentialError

logger = logging.getLogger(__name__)


class ConnectorCredentials(BaseModel):
    """
    Credentials for a remote file store.

    Accepts both snake_case and the camelCase keys used by stored
    credential objects.
    """
    model_config = ConfigDict(populate_by_name=True)

    access_token: Optional[str] = Field(default=None, alias="accessToken")
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
    client_id: Optional[str] = Field(default=None, alias="clientId")
    client_secret: Optional[str] = Field(default=None, alias="clientSecret")
    tenant_id: Optional[str] = Field(default=None, alias="tenantId")
    site_id: Optional[str] = Field(default=None, alias="siteId")
    drive_id: Optional[str] = Field(default=None, alias="driveId")
    folder_path: Optional[str] = Field(default=None, alias="folderPath")
    folder_id: Optional[str] = Field(default=None, alias="folderId")

    def require(self, name: str) -> str:
        """Get a non-blank field or raise MissingCredentialError."""
        value = getattr(self, name)
        if isinstance(value, str) and value.strip():
            return value
        alias = type(self).model_fields[name].alias or name
        raise MissingCredentialError(alias)


class CredentialCipher:
    """Encrypts credential objects with Fernet for storage on the account row."""

    def __init__(self, key: Optional[str]):
        if not key:
            raise ConfigurationError("Connector credentials key is not configured")
        try:
            self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        except ValueError as e:
            raise ConfigurationError(f"Invalid connector credentials key: {e}") from e

    def encrypt(self, credentials: ConnectorCredentials) -> str:
        """Serialize and encrypt credentials."""
        payload = credentials.model_dump(by_alias=True, exclude_none=True)
        return self._fernet.encrypt(json.dumps(payload).encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> ConnectorCredentials:
        """Decrypt and parse stored credentials."""
        try:
            raw = self._fernet.decrypt(token.encode("ascii"))
        except (InvalidToken, ValueError) as e:
            raise ConfigurationError("Unable to decrypt connector credentials") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError("Connector credentials must be valid JSON") from e

        if not isinstance(data, dict):
            raise ConfigurationError("Connector credentials must be a JSON object")

        return ConnectorCredentials.model_validate(data)
