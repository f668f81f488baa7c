"""Anthropic Messages API client with prompt caching of the system context."""

from typing import Any, Optional

import httpx

from context_enricher.constants import (
    ANTHROPIC_API_VERSION,
    ANTHROPIC_BASE_URL,
    DEFAULT_CALL_TIMEOUT,
    LLM_DEFAULT_MAX_TOKENS,
    LLM_DEFAULT_TEMPERATURE,
    PROVIDER_TRANSPORT_ATTEMPTS,
)
from context_enricher.exceptions import APIError
from context_enricher.providers.base import AsyncHTTPProviderClient


class AsyncAnthropicClient(AsyncHTTPProviderClient):
    """Async client for ``/v1/messages``.

    The system message (the session's cached context) is sent as a text block
    marked ``cache_control: ephemeral`` so repeated batch calls in one window
    are served from Anthropic's prompt cache.
    """

    def __init__(
        self,
        api_key: str,
        default_model: str = "claude-3-5-haiku-20241022",
        base_url: str = ANTHROPIC_BASE_URL,
        timeout: float = DEFAULT_CALL_TIMEOUT,
        max_attempts: int = PROVIDER_TRANSPORT_ATTEMPTS,
        retry_multiplier: float = 1.0,
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

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_API_VERSION,
            "Content-Type": "application/json",
        }

    def _endpoint(self) -> str:
        return f"{self.base_url}/messages"

    def _build_payload(self, messages: list[dict[str, str]], model: str) -> dict[str, Any]:
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        conversation = [m for m in messages if m["role"] != "system"]

        payload: dict[str, Any] = {
            "model": model,
            "max_tokens": LLM_DEFAULT_MAX_TOKENS,
            "temperature": LLM_DEFAULT_TEMPERATURE,
            "messages": conversation,
        }
        if system:
            payload["system"] = [{"type": "text", "text": system, "cache_control": {"type": "ephemeral"}}]
        return payload

    def _extract_usage(self, response: dict) -> tuple[int, int, int]:
        # input_tokens excludes the cached prefix; both count as prompt tokens
        usage = response.get("usage") or {}
        cache_read = usage.get("cache_read_input_tokens") or 0
        cache_write = usage.get("cache_creation_input_tokens") or 0
        prompt = usage.get("input_tokens", 0) + cache_read + cache_write
        return prompt, usage.get("output_tokens", 0), cache_read

    def _extract_content(self, response: dict) -> str:
        """Join the text blocks of a messages response."""
        blocks = response.get("content", [])
        text = "".join(block.get("text", "") for block in blocks if block.get("type") == "text")
        if text:
            return text

        stop_reason = response.get("stop_reason")
        if stop_reason == "max_tokens":
            raise APIError("Response truncated due to length limit")
        raise APIError(f"Empty response content (stop_reason: {stop_reason or 'unknown'})")
