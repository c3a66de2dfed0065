"""Command line interface for the adaptive AI service."""

from .app import cli, main

__all__ = ["cli", "main"]
