"""Base provider abstraction and error taxonomy."""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import tiktoken

logger = logging.getLogger(__name__)


class BaseLLM(ABC):
    """
    Abstract base class for upstream AI providers.

    One instance serves every model of its provider; the model is
    chosen per call by the router.
    """

    name: str = "base"

    def __init__(self, api_key: str):
        """
        Initialize provider.

        Args:
            api_key: Provider API key
        """
        self.api_key = api_key
        self.logger = logging.getLogger(f"{__name__}.{self.name}")
        self._tokenizer = None
        self._tokenizer_failed = False

    @abstractmethod
    async def agenerate(
        self,
        messages: List[Dict[str, str]],
        model: str,
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
        response_format: str = "text",
    ) -> str:
        """
        Generate a response asynchronously.

        Args:
            messages: Chat messages in OpenAI format
            model: Model identifier
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature (0-2)
            response_format: "text" or "json"

        Returns:
            Generated text response

        Raises:
            RateLimitError: When rate limited
            ProviderError: On API failures or malformed payloads
        """
        pass

    def get_num_tokens(self, text: str) -> int:
        """
        Count tokens in text.

        GOTCHA: tiktoken downloads its encoding on first use, so it is
        loaded lazily and word estimates are used when it is unavailable

        Args:
            text: Text to count tokens for

        Returns:
            Number of tokens
        """
        if self._tokenizer is None and not self._tokenizer_failed:
            try:
                self._tokenizer = tiktoken.get_encoding("cl100k_base")
            except Exception as e:
                self.logger.warning(f"Tokenizer unavailable, using estimates: {e}")
                self._tokenizer_failed = True

        if self._tokenizer is not None:
            return len(self._tokenizer.encode(text))

        # ~1.3 tokens per word
        return int(len(text.split()) * 1.3)

    def count_message_tokens(self, messages: List[Dict[str, str]]) -> int:
        """
        Count tokens for a list of messages.

        GOTCHA: Each message has ~4 tokens of formatting overhead
        """
        return sum(
            self.get_num_tokens(msg.get("content", "")) + 4
            for msg in messages
        ) + 2

    async def close(self) -> None:
        """Release network resources."""


class AIServiceError(Exception):
    """Base class for service errors."""

    code = "internal_error"


class ValidationError(AIServiceError):
    """Raised on malformed requests. Never retried."""

    code = "validation_error"


class ProviderError(AIServiceError):
    """Raised when an upstream provider call fails."""

    code = "provider_error"

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class RateLimitError(ProviderError):
    """Raised when rate limited by provider."""


class ProviderTimeoutError(ProviderError):
    """Raised when a provider call exceeds the request timeout."""


class AllProvidersUnavailable(AIServiceError):
    """Raised when every configured provider failed or is cooling down."""

    code = "providers_unavailable"

    def __init__(self, message: str, retry_after: int = 30):
        super().__init__(message)
        self.retry_after = retry_after


class CacheIOError(AIServiceError):
    """Raised by durable cache tiers on read/write failures."""

    code = "cache_io_error"


class QueueFullError(AIServiceError):
    """Raised when a priority tier has reached its size limit."""

    code = "queue_full"
