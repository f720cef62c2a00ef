"""Local HTTP API for driftsync.

Exposes edit history, autosave and sync status as JSON using FastAPI.
"""

from .app import create_app

__all__ = ["create_app"]
