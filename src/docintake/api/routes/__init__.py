"""
API Routes
==========
FastAPI routers for the intake API.
"""

from __future__ import annotations

from .documents import router as documents_router
from .sessions import router as sessions_router
from .batches import router as batches_router
from .connectors import router as connectors_router
from .inbox import router as inbox_router

__all__ = [
    "documents_router",
    "sessions_router",
    "batches_router",
    "connectors_router",
    "inbox_router",
]
