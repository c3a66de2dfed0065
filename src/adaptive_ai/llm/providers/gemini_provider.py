"""Gemini provider using the Generative Language REST API."""

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..base import BaseLLM, ProviderError, RateLimitError

logger = logging.getLogger(__name__)


class GeminiProvider(BaseLLM):
    """
    Gemini provider over plain HTTP.

    PATTERN: httpx.AsyncClient with API key header
    GOTCHA: Gemini has no system role; system messages become systemInstruction
    GOTCHA: Assistant turns use the "model" role
    """

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        endpoint: str = "https://generativelanguage.googleapis.com/v1beta",
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Gemini provider.

        Args:
            api_key: Gemini API key
            endpoint: REST API base URL
            client: Pre-built HTTP client (tests inject a mock transport)
        """
        super().__init__(api_key)
        self.endpoint = endpoint.rstrip("/")
        self.client = client or httpx.AsyncClient(
            timeout=60.0,
            headers={"x-goog-api-key": api_key},
        )

    async def agenerate(
        self,
        messages: List[Dict[str, str]],
        model: str,
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
        response_format: str = "text",
    ) -> str:
        """
        Generate response using generateContent.

        Args:
            messages: Chat messages in OpenAI format
            model: Gemini model identifier
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature (0-2)
            response_format: "text" or "json"

        Returns:
            Generated response text

        Raises:
            RateLimitError: When rate limited
            ProviderError: On API failures or malformed payloads
        """
        payload = self._build_payload(
            messages,
            max_tokens=max_tokens,
            temperature=temperature,
            response_format=response_format,
        )
        url = f"{self.endpoint}/models/{model}:generateContent"

        try:
            response = await self.client.post(url, json=payload)

            if response.status_code == 429:
                raise RateLimitError(
                    f"Gemini rate limit exceeded: {response.text}",
                    provider=self.name,
                )

            response.raise_for_status()
            data = response.json()

        except httpx.HTTPStatusError as e:
            self.logger.error(f"Gemini API error: {e}")
            raise ProviderError(f"Gemini API error: {str(e)}", provider=self.name)
        except httpx.HTTPError as e:
            self.logger.error(f"HTTP error: {e}")
            raise ProviderError(f"HTTP error: {str(e)}", provider=self.name)
        except ValueError as e:
            raise ProviderError(f"Invalid JSON from Gemini: {str(e)}", provider=self.name)

        return self._extract_text(data)

    def _build_payload(
        self,
        messages: List[Dict[str, str]],
        max_tokens: Optional[int],
        temperature: float,
        response_format: str,
    ) -> Dict[str, Any]:
        system_text, contents = self._convert_messages(messages)

        generation_config: Dict[str, Any] = {"temperature": temperature}
        if max_tokens:
            generation_config["maxOutputTokens"] = max_tokens
        if response_format == "json":
            generation_config["responseMimeType"] = "application/json"

        payload: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": generation_config,
        }
        if system_text:
            payload["systemInstruction"] = {"parts": [{"text": system_text}]}
        return payload

    @staticmethod
    def _convert_messages(
        messages: List[Dict[str, str]],
    ) -> Tuple[str, List[Dict[str, Any]]]:
        system_parts = []
        contents = []
        for msg in messages:
            role = msg.get("role", "user")
            if role == "system":
                system_parts.append(msg.get("content", ""))
                continue
            contents.append({
                "role": "model" if role == "assistant" else "user",
                "parts": [{"text": msg.get("content", "")}],
            })
        return "\n\n".join(system_parts), contents

    def _extract_text(self, data: Dict[str, Any]) -> str:
        try:
            parts = data["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(
                f"Malformed Gemini payload: missing {e}",
                provider=self.name,
            )

        if not text:
            raise ProviderError("Gemini returned empty content", provider=self.name)
        return text

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()
