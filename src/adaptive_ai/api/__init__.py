"""HTTP API for the adaptive AI service."""

from .app import create_app

__all__ = [
    "create_app",
]
