"""AI provider implementations."""

from .openai_provider import OpenAIProvider
from .gemini_provider import GeminiProvider

__all__ = [
    "OpenAIProvider",
    "GeminiProvider",
]
