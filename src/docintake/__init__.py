"""
docintake
=========
Document intake reliability layer: fingerprinting, duplicate detection,
processing sessions, and idempotent connector sync.
"""

__version__ = "0.4.0"
