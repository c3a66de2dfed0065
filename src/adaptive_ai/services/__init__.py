"""Services package for the adaptive AI service."""

from .completion_service import AdaptiveAIService

__all__ = [
    "AdaptiveAIService",
]
