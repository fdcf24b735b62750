"""
Extraction Service Client
=========================
Interface to the external service that turns document bytes into
structured fields.
"""

import logging
import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from ..config import ProcessingConfig

logger = logging.getLogger(__name__)


@dataclass
class ExtractionResult:
    """Fields extracted from one document plus confidence signals."""
    fields: dict[str, Any] = field(default_factory=dict)
    completeness: float = 0.0
    confidence: float = 0.0

    @property
    def quality_score(self) -> float:
        """Mean of completeness and confidence on a 0-100 scale."""
        return round((self.completeness * 100 + self.confidence * 100) / 2, 2)


class ExtractionService(ABC):
    """External extraction collaborator."""

    @abstractmethod
    async def extract(
        self,
        data: bytes,
        filename: str,
        tenant_config: Optional[dict[str, Any]] = None,
    ) -> ExtractionResult:
        """Extract structured fields from raw document bytes."""
        pass

    async def close(self) -> None:
        pass


class HTTPExtractionService(ExtractionService):
    """
    Extraction over HTTP.

    Posts the file as multipart form data and expects
    ``{"fields": {...}, "confidenceSignals": {"completeness": x, "confidence": y}}``.
    """

    def __init__(
        self,
        config: Optional[ProcessingConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or ProcessingConfig()
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.config.extraction_timeout)
        return self._client

    async def extract(
        self,
        data: bytes,
        filename: str,
        tenant_config: Optional[dict[str, Any]] = None,
    ) -> ExtractionResult:
        client = await self._get_client()

        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        form: dict[str, str] = {}
        for key, value in (tenant_config or {}).items():
            if value is not None:
                form[key] = str(value)

        response = await client.post(
            self.config.extraction_url,
            files={"file": (filename, data, content_type)},
            data=form,
        )
        response.raise_for_status()
        payload = response.json()

        signals = payload.get("confidenceSignals") or {}
        result = ExtractionResult(
            fields=payload.get("fields") or {},
            completeness=float(signals.get("completeness", 0.0)),
            confidence=float(signals.get("confidence", 0.0)),
        )

        logger.debug(f"Extracted {len(result.fields)} fields from {filename}")
        return result

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
