"""
Intake API
==========
FastAPI surface over the intake services.
"""

from .app import create_app

__all__ = ["create_app"]
