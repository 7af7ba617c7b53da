"""
HTTP API for database backup management.

Exposes the Datastore backup operations as a FastAPI application.
"""

from .app import create_app
from .config import Settings

__all__ = ["create_app", "Settings"]
