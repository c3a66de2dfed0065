"""Configuration package."""

from .ai_config import AIServiceConfig

__all__ = ["AIServiceConfig"]
