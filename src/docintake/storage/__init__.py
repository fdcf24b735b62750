"""
Intake Storage Package
======================
Object storage for raw document bytes.
"""

from .object_store import ObjectStore, S3ObjectStore

__all__ = ["ObjectStore", "S3ObjectStore"]
