"""
Intake Services Package
=======================
Duplicate detection, processing sessions, batch runs, connector sync, and
the upload, inbox, and blob-scan intake paths.
"""

from .audit import AuditAction, AuditLogger
from .duplicate_detector import DuplicateDetector, DuplicateResult, MatchTier
from .session_manager import CancelResult, SessionManager
from .extraction import ExtractionResult, ExtractionService, HTTPExtractionService
from .batch_runner import (
    BatchRunner,
    BatchRunResult,
    CancellationToken,
    DocumentOutcome,
    SessionCancellationToken,
)
from .sync_engine import SyncEngine, SyncResult
from .upload_service import UploadResult, UploadService
from .inbox_service import InboxResult, InboxService
from .blob_scan import BlobScanService, ScanResult

__all__ = [
    "AuditAction",
    "AuditLogger",
    "DuplicateDetector",
    "DuplicateResult",
    "MatchTier",
    "CancelResult",
    "SessionManager",
    "ExtractionResult",
    "ExtractionService",
    "HTTPExtractionService",
    "BatchRunner",
    "BatchRunResult",
    "CancellationToken",
    "DocumentOutcome",
    "SessionCancellationToken",
    "SyncEngine",
    "SyncResult",
    "UploadResult",
    "UploadService",
    "InboxResult",
    "InboxService",
    "BlobScanService",
    "ScanResult",
]
