"""Utility functions for the adaptive AI service."""

from .logging_utils import configure_logging

__all__ = [
    "configure_logging",
]
