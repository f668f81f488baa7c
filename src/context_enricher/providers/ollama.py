"""Ollama client for local models."""

from typing import Any, Optional

import httpx
from loguru import logger

from context_enricher.constants import (
    DEFAULT_LOCAL_CALL_TIMEOUT,
    LLM_DEFAULT_TEMPERATURE,
    LLM_DEFAULT_TOP_P,
    OLLAMA_DEFAULT_HOST,
    OLLAMA_DEFAULT_MODEL,
    OLLAMA_KEEP_ALIVE,
    PROVIDER_TRANSPORT_ATTEMPTS,
)
from context_enricher.exceptions import APIError
from context_enricher.providers.base import AsyncHTTPProviderClient


class AsyncOllamaClient(AsyncHTTPProviderClient):
    """Async client for ``/api/chat`` on a local Ollama server.

    Ollama has no explicit prompt cache; ``prepare_context`` loads the model
    and keeps it resident so the first batch of each window does not pay the
    load time.
    """

    def __init__(
        self,
        default_model: str = OLLAMA_DEFAULT_MODEL,
        host: str = OLLAMA_DEFAULT_HOST,
        timeout: float = DEFAULT_LOCAL_CALL_TIMEOUT,
        max_attempts: int = PROVIDER_TRANSPORT_ATTEMPTS,
        retry_multiplier: float = 1.0,
        keep_alive: str = OLLAMA_KEEP_ALIVE,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(
            base_url=host,
            default_model=default_model,
            timeout=timeout,
            max_attempts=max_attempts,
            retry_multiplier=retry_multiplier,
            http_client=http_client,
        )
        self.keep_alive = keep_alive
        self._loaded_model: Optional[str] = None

    def _endpoint(self) -> str:
        return f"{self.base_url}/api/chat"

    def _build_payload(self, messages: list[dict[str, str]], model: str) -> dict[str, Any]:
        return {
            "model": model,
            "messages": messages,
            "stream": False,
            "format": "json",
            "keep_alive": self.keep_alive,
            "options": {"temperature": LLM_DEFAULT_TEMPERATURE, "top_p": LLM_DEFAULT_TOP_P},
        }

    def _extract_usage(self, response: dict) -> tuple[int, int, int]:
        return response.get("prompt_eval_count", 0), response.get("eval_count", 0), 0

    def _extract_content(self, response: dict) -> str:
        content = response.get("message", {}).get("content")
        if content:
            return content
        raise APIError(f"Empty response content (done_reason: {response.get('done_reason', 'unknown')})")

    async def prepare_context(self, context: str) -> None:
        """Load the model once per client; later windows reuse the resident model."""
        if self._loaded_model == self.default_model:
            return
        logger.debug(f"Preloading Ollama model {self.default_model} (keep_alive={self.keep_alive})")
        await self._post_with_retry(
            f"{self.base_url}/api/generate",
            {"model": self.default_model, "keep_alive": self.keep_alive},
        )
        self._loaded_model = self.default_model
