"""OpenAI-compatible chat completions client (OpenAI, OpenRouter)."""

from typing import Any, Optional

import httpx

from context_enricher.constants import (
    DEFAULT_CALL_TIMEOUT,
    LLM_DEFAULT_MAX_TOKENS,
    LLM_DEFAULT_TEMPERATURE,
    LLM_DEFAULT_TOP_P,
    OPENAI_BASE_URL,
    PROVIDER_TRANSPORT_ATTEMPTS,
)
from context_enricher.exceptions import APIError
from context_enricher.providers.base import AsyncHTTPProviderClient


class AsyncOpenAICompatibleClient(AsyncHTTPProviderClient):
    """Async client for any ``/chat/completions`` endpoint that speaks the OpenAI protocol.

    Requests JSON output via ``response_format``. OpenRouter is served by the
    same client with its own base URL and attribution headers.
    """

    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-4o",
        base_url: str = OPENAI_BASE_URL,
        timeout: float = DEFAULT_CALL_TIMEOUT,
        max_attempts: int = PROVIDER_TRANSPORT_ATTEMPTS,
        retry_multiplier: float = 1.0,
        extra_headers: Optional[dict[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(
            base_url=base_url,
            default_model=default_model,
            timeout=timeout,
            max_attempts=max_attempts,
            retry_multiplier=retry_multiplier,
            http_client=http_client,
        )
        self.api_key = api_key
        self.extra_headers = extra_headers or {}

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            **self.extra_headers,
        }

    def _endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _build_payload(self, messages: list[dict[str, str]], model: str) -> dict[str, Any]:
        return {
            "model": model,
            "messages": messages,
            "temperature": LLM_DEFAULT_TEMPERATURE,
            "top_p": LLM_DEFAULT_TOP_P,
            "max_tokens": LLM_DEFAULT_MAX_TOKENS,
            "response_format": {"type": "json_object"},
        }

    def _extract_usage(self, response: dict) -> tuple[int, int, int]:
        usage = response.get("usage") or {}
        cached = (usage.get("prompt_tokens_details") or {}).get("cached_tokens", 0)
        return usage.get("prompt_tokens", 0), usage.get("completion_tokens", 0), cached or 0

    def _extract_content(self, response: dict) -> str:
        """Extract generated content from a chat completions response."""
        choices = response.get("choices", [])
        if not choices:
            raise APIError("No choices in response")

        choice = choices[0]
        message = choice.get("message", {})
        content = message.get("content")
        if content:
            return content

        if message.get("refusal"):
            raise APIError(f"Model refused: {message['refusal']}")

        finish_reason = choice.get("finish_reason")
        if finish_reason == "content_filter":
            raise APIError("Content filtered by provider")
        elif finish_reason == "length":
            raise APIError("Response truncated due to length limit")
        raise APIError(f"Empty response content (finish_reason: {finish_reason or 'unknown'})")
