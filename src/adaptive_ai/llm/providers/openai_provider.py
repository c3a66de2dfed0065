"""OpenAI provider for GPT model access."""

import logging
from typing import Dict, List, Optional

from openai import (
    AsyncOpenAI,
    APIError as OpenAIAPIError,
    RateLimitError as OpenAIRateLimitError,
)

from ..base import BaseLLM, ProviderError, RateLimitError

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseLLM):
    """
    OpenAI provider for GPT model access.

    PATTERN: Official OpenAI SDK with async client
    GOTCHA: Timeouts are enforced by the orchestrator, not the SDK
    """

    name = "openai"

    def __init__(self, api_key: str, client: Optional[AsyncOpenAI] = None):
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key
            client: Pre-built client (tests inject a mock here)
        """
        super().__init__(api_key)
        # SDK retries would hide failures from the fallback chain
        self.client = client or AsyncOpenAI(api_key=api_key, max_retries=0)

    async def agenerate(
        self,
        messages: List[Dict[str, str]],
        model: str,
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
        response_format: str = "text",
    ) -> str:
        """
        Generate response using the chat completions API.

        Args:
            messages: Chat messages in OpenAI format
            model: Model identifier
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature (0-2)
            response_format: "text" or "json"

        Returns:
            Generated response text

        Raises:
            RateLimitError: When rate limited
            ProviderError: On API failures or empty payloads
        """
        kwargs = {}
        if response_format == "json":
            kwargs["response_format"] = {"type": "json_object"}
        if max_tokens:
            kwargs["max_tokens"] = max_tokens

        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                **kwargs,
            )
        except OpenAIRateLimitError as e:
            self.logger.warning(f"Rate limited: {e}")
            raise RateLimitError(f"OpenAI rate limit: {str(e)}", provider=self.name)
        except OpenAIAPIError as e:
            self.logger.error(f"OpenAI API error: {e}")
            raise ProviderError(f"OpenAI API error: {str(e)}", provider=self.name)

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise ProviderError(
                f"Malformed OpenAI payload: {str(e)}",
                provider=self.name,
            )

        if not content:
            raise ProviderError("OpenAI returned empty content", provider=self.name)

        return content

    async def close(self) -> None:
        """Close OpenAI client."""
        await self.client.close()
