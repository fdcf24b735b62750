"""
Intake Configuration
====================
Centralized configuration for the database, object store, connectors,
and the intake paths. Values default from environment variables.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field


def _env_list(name: str, default: str) -> list[str]:
    return [p.strip().lower() for p in os.getenv(name, default).split(",") if p.strip()]


class DatabaseConfig(BaseModel):
    """PostgreSQL configuration."""
    host: str = Field(default_factory=lambda: os.getenv("POSTGRES_HOST", "localhost"))
    port: int = Field(default_factory=lambda: int(os.getenv("POSTGRES_PORT", "5432")))
    database: str = Field(default_factory=lambda: os.getenv("POSTGRES_DB", "docintake"))
    user: str = Field(default_factory=lambda: os.getenv("POSTGRES_USER", "postgres"))
    password: str = Field(default_factory=lambda: os.getenv("POSTGRES_PASSWORD", ""))
    pool_size: int = 10
    max_overflow: int = 20
    echo_sql: bool = Field(default_factory=lambda: os.getenv("POSTGRES_ECHO", "false").lower() == "true")

    @property
    def async_dsn(self) -> str:
        """Get SQLAlchemy asyncpg DSN string."""
        return f"postgresql+asyncpg://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


class ObjectStoreConfig(BaseModel):
    """S3-compatible object store configuration."""
    bucket_name: str = Field(default_factory=lambda: os.getenv("OBJECT_STORE_BUCKET", "raw_documents"))
    endpoint_url: Optional[str] = Field(default_factory=lambda: os.getenv("OBJECT_STORE_ENDPOINT"))
    region_name: str = Field(default_factory=lambda: os.getenv("OBJECT_STORE_REGION", "us-east-1"))
    access_key_id: Optional[str] = Field(default_factory=lambda: os.getenv("OBJECT_STORE_ACCESS_KEY"))
    secret_access_key: Optional[str] = Field(default_factory=lambda: os.getenv("OBJECT_STORE_SECRET_KEY"))


class DetectionConfig(BaseModel):
    """Duplicate detection tuning."""
    fuzzy_window: int = Field(default_factory=lambda: int(os.getenv("DEDUP_FUZZY_WINDOW", "50")), ge=1)
    amount_tolerance: float = 0.01
    weight_tolerance: float = 0.1


class UploadConfig(BaseModel):
    """Direct upload validation limits."""
    max_file_size: int = 50 * 1024 * 1024  # 50MB
    allowed_extensions: list[str] = Field(
        default_factory=lambda: _env_list("UPLOAD_ALLOWED_EXTENSIONS", "pdf,xlsx,xls")
    )


class InboxConfig(BaseModel):
    """Inbound email webhook configuration."""
    webhook_secret: Optional[str] = Field(default_factory=lambda: os.getenv("INBOX_WEBHOOK_SECRET"))
    code_prefix: str = "VEXT"
    allowed_extensions: list[str] = Field(default_factory=lambda: ["pdf", "xlsx", "xls", "csv"])


class BlobScanConfig(BaseModel):
    """Azure Blob auto-fetch configuration."""
    connection_string: Optional[str] = Field(default_factory=lambda: os.getenv("AZURE_STORAGE_CONNECTION_STRING"))
    container_name: str = Field(default_factory=lambda: os.getenv("AZURE_STORAGE_CONTAINER", "incoming"))
    allowed_extensions: list[str] = Field(default_factory=lambda: ["pdf", "xlsx", "xls"])


class ConnectorConfig(BaseModel):
    """Remote file-store connector configuration."""
    http_timeout: float = 30.0
    graph_base_url: str = "https://graph.microsoft.com/v1.0"
    microsoft_login_url: str = "https://login.microsoftonline.com"
    google_drive_base_url: str = "https://www.googleapis.com/drive/v3"
    google_token_url: str = "https://oauth2.googleapis.com/token"
    google_page_size: int = 200
    credentials_key: Optional[str] = Field(default_factory=lambda: os.getenv("CONNECTOR_CREDENTIALS_KEY"))


class ProcessingConfig(BaseModel):
    """Batch processing configuration."""
    auto_approve_threshold: float = Field(
        default_factory=lambda: float(os.getenv("AUTO_APPROVE_THRESHOLD", "80"))
    )
    extraction_url: str = Field(
        default_factory=lambda: os.getenv("EXTRACTION_SERVICE_URL", "http://localhost:8080/extract")
    )
    extraction_timeout: float = 120.0


class APIConfig(BaseModel):
    """HTTP surface configuration."""
    title: str = "Document Intake API"
    version: str = "0.4.0"
    debug: bool = Field(default_factory=lambda: os.getenv("API_DEBUG", "false").lower() == "true")
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    json_logs: bool = Field(default_factory=lambda: os.getenv("LOG_JSON", "true").lower() == "true")


class AppConfig(BaseModel):
    """Aggregate configuration for the intake layer."""
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    object_store: ObjectStoreConfig = Field(default_factory=ObjectStoreConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    inbox: InboxConfig = Field(default_factory=InboxConfig)
    blob_scan: BlobScanConfig = Field(default_factory=BlobScanConfig)
    connectors: ConnectorConfig = Field(default_factory=ConnectorConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    api: APIConfig = Field(default_factory=APIConfig)


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Get the process-wide configuration."""
    return AppConfig()
