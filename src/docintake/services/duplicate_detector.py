"""
Duplicate Detector
==================
Decides whether an incoming document already exists in the ledger, given
its fingerprint and/or extracted key fields.

Tiers are evaluated in strict priority and the first hit wins:

1. exact:  a non-archived document with the identical fingerprint
2. high:   same invoice number and supplier, or same date, supplier and
           weight within tolerance
3. medium: same supplier and total amount within tolerance, or the same
           filename
4. none

Key-field checks only scan the owner's ``fuzzy_window`` most recent
documents; duplicates older than the window are not detected.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..config import DetectionConfig
from ..models.document import Document
from ..repositories.document_repository import DocumentRepository

logger = logging.getLogger(__name__)


class MatchTier(str, Enum):
    """Confidence tier of a duplicate match."""
    EXACT = "exact"
    HIGH = "high"
    MEDIUM = "medium"
    NONE = "none"


@dataclass
class DuplicateResult:
    """Result of duplicate detection."""
    is_duplicate: bool
    tier: MatchTier = MatchTier.NONE
    matched_document_id: Optional[UUID] = None
    matched_filename: Optional[str] = None
    reason: str = ""

    @classmethod
    def no_match(cls) -> "DuplicateResult":
        return cls(is_duplicate=False, tier=MatchTier.NONE, reason="No duplicate found")

    @classmethod
    def matched(cls, tier: MatchTier, document: Document, reason: str) -> "DuplicateResult":
        return cls(
            is_duplicate=True,
            tier=tier,
            matched_document_id=document.id,
            matched_filename=document.filename,
            reason=reason,
        )

    def to_dict(self) -> dict:
        return {
            "is_duplicate": self.is_duplicate,
            "tier": self.tier.value,
            "matched_document_id": str(self.matched_document_id) if self.matched_document_id else None,
            "matched_filename": self.matched_filename,
            "reason": self.reason,
        }


def field_value(fields: Optional[dict[str, Any]], name: str) -> Any:
    """Read a key field that may be wrapped as ``{"value": ...}``."""
    if not fields:
        return None
    raw = fields.get(name)
    if isinstance(raw, dict):
        raw = raw.get("value")
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return None
    return raw


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip()


def _as_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace(" ", "").replace(",", "."))
    except ValueError:
        return None


def _same_supplier(a: Any, b: Any) -> bool:
    a_text, b_text = _as_text(a), _as_text(b)
    if not a_text or not b_text:
        return False
    return a_text.lower() == b_text.lower()


class DuplicateDetector:
    """
    Read-only duplicate detection against the document ledger.

    Args:
        session: Database session
        config: Tolerances and the size of the fuzzy-match window
    """

    def __init__(
        self,
        session: AsyncSession,
        config: Optional[DetectionConfig] = None,
    ):
        self.documents = DocumentRepository(session)
        self.config = config or DetectionConfig()

    async def check(
        self,
        owner_id: str,
        fingerprint: Optional[str] = None,
        key_fields: Optional[dict[str, Any]] = None,
        filename: Optional[str] = None,
        exclude_document_id: Optional[UUID] = None,
    ) -> DuplicateResult:
        """
        Check if a document is a duplicate.

        Args:
            owner_id: Tenant whose ledger is searched
            fingerprint: Content fingerprint of the incoming bytes
            key_fields: Extracted fields (invoiceNumber, supplier, totalAmount, date, weightKg)
            filename: Original filename
            exclude_document_id: Document to leave out of every comparison

        Returns:
            DuplicateResult with the first matching tier
        """
        if fingerprint:
            match = await self.documents.find_by_content_hash(
                owner_id, fingerprint, exclude_id=exclude_document_id
            )
            if match:
                logger.info(f"Exact duplicate of {match.id} for {owner_id}")
                return DuplicateResult.matched(MatchTier.EXACT, match, "Identical file content")

        recent: Optional[list[Document]] = None
        if self._has_key_fields(key_fields):
            recent = await self.documents.recent_documents(
                owner_id, self.config.fuzzy_window, exclude_id=exclude_document_id
            )

            for check in (self._match_invoice, self._match_measurement):
                result = check(key_fields, recent)
                if result:
                    return result

            result = self._match_amount(key_fields, recent)
            if result:
                return result

        if filename:
            match = await self.documents.find_by_filename(
                owner_id, filename, exclude_id=exclude_document_id
            )
            if match:
                return DuplicateResult.matched(
                    MatchTier.MEDIUM, match, f'Same filename "{filename}"'
                )

        return DuplicateResult.no_match()

    def _has_key_fields(self, key_fields: Optional[dict[str, Any]]) -> bool:
        return field_value(key_fields, "supplier") is not None

    def _match_invoice(
        self,
        key_fields: dict[str, Any],
        recent: list[Document],
    ) -> Optional[DuplicateResult]:
        invoice_number = _as_text(field_value(key_fields, "invoiceNumber"))
        supplier = field_value(key_fields, "supplier")
        if not invoice_number:
            return None

        for document in recent:
            data = document.extracted_data or {}
            if (
                _as_text(field_value(data, "invoiceNumber")) == invoice_number
                and _same_supplier(field_value(data, "supplier"), supplier)
            ):
                return DuplicateResult.matched(
                    MatchTier.HIGH,
                    document,
                    f"Same invoice number {invoice_number} from {supplier}",
                )
        return None

    def _match_measurement(
        self,
        key_fields: dict[str, Any],
        recent: list[Document],
    ) -> Optional[DuplicateResult]:
        date = _as_text(field_value(key_fields, "date"))
        supplier = field_value(key_fields, "supplier")
        weight = _as_number(field_value(key_fields, "weightKg"))
        if not date or weight is None:
            return None

        for document in recent:
            data = document.extracted_data or {}
            other_weight = _as_number(field_value(data, "weightKg"))
            if (
                _as_text(field_value(data, "date")) == date
                and _same_supplier(field_value(data, "supplier"), supplier)
                and other_weight is not None
                and abs(other_weight - weight) < self.config.weight_tolerance
            ):
                return DuplicateResult.matched(
                    MatchTier.HIGH,
                    document,
                    f"Same date {date}, supplier and weight {weight} kg",
                )
        return None

    def _match_amount(
        self,
        key_fields: dict[str, Any],
        recent: list[Document],
    ) -> Optional[DuplicateResult]:
        supplier = field_value(key_fields, "supplier")
        amount = _as_number(field_value(key_fields, "totalAmount"))
        if amount is None:
            return None

        for document in recent:
            data = document.extracted_data or {}
            other_amount = _as_number(field_value(data, "totalAmount"))
            if (
                _same_supplier(field_value(data, "supplier"), supplier)
                and other_amount is not None
                and abs(other_amount - amount) < self.config.amount_tolerance
            ):
                return DuplicateResult.matched(
                    MatchTier.MEDIUM,
                    document,
                    f"Same supplier and total amount {amount}",
                )
        return None
