"""Adaptive AI request orchestration service."""

__version__ = "1.0.0"
