"""
Intake Exceptions
=================
Error hierarchy shared by repositories, services, and the HTTP layer.
"""

from typing import Optional


class IngestionError(Exception):
    """Base exception for intake errors."""
    pass


class ValidationError(IngestionError):
    """Raised when an incoming document or request is rejected."""
    pass


class StorageError(IngestionError):
    """Raised when object storage operations fail."""
    pass


class ConfigurationError(IngestionError):
    """Raised when configuration or stored credentials are invalid."""
    pass


class ConnectorError(IngestionError):
    """Raised when a remote file-store provider call fails."""
    pass


class TokenExchangeError(ConnectorError):
    """Raised when an access token cannot be obtained."""
    pass


class RemoteListingError(ConnectorError):
    """Raised when listing or downloading from the remote store fails."""
    pass


class MissingCredentialError(ConnectorError):
    """Raised when a required credential field is absent."""

    def __init__(self, field_name: str):
        super().__init__(f"Missing credential field: {field_name}")
        self.field_name = field_name


class DocumentNotFoundError(IngestionError):
    """Raised when a document does not exist for the owner."""
    pass


class SessionNotFoundError(IngestionError):
    """Raised when a processing session does not exist."""
    pass


class ActiveSessionExistsError(IngestionError):
    """Raised when an owner already has an active processing session."""

    def __init__(self, owner_id: str, active_session_id: Optional[str] = None):
        super().__init__(f"Owner {owner_id} already has an active processing session")
        self.owner_id = owner_id
        self.active_session_id = active_session_id
