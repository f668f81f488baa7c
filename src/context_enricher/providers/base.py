"""Base classes for async provider clients."""

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from context_enricher.constants import DEFAULT_CALL_TIMEOUT, PROVIDER_TRANSPORT_ATTEMPTS
from context_enricher.exceptions import (
    APIError,
    AuthenticationError,
    CallTimeoutError,
    EnrichmentError,
    RateLimitError,
    TransportError,
)
from context_enricher.tokens import UsageTracker


class AsyncProviderClient(ABC):
    """Abstract base class for asynchronous provider clients.

    Async clients support the async context manager protocol for proper
    resource cleanup.
    """

    @abstractmethod
    async def generate(
        self,
        messages: list[dict[str, str]],
        model: Optional[str] = None,
    ) -> str:
        """
        Generate a completion from a list of messages.

        Args:
            messages: List of message dicts with 'role' and 'content' keys.
                The system message carries the cached context.
            model: Optional model override (uses client default if not specified)

        Returns:
            Generated content string
        """
        pass

    @property
    def usage(self) -> UsageTracker:
        """Token usage reported by this client's responses."""
        tracker = getattr(self, "_usage", None)
        if tracker is None:
            tracker = self._usage = UsageTracker()
        return tracker

    async def prepare_context(self, context: str) -> None:
        """Warm the provider's cache for a new cached context. No-op by default."""
        return None

    @abstractmethod
    async def close(self) -> None:
        """Close the client and release resources."""
        pass

    async def __aenter__(self) -> "AsyncProviderClient":
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context manager."""
        await self.close()


class AsyncHTTPProviderClient(AsyncProviderClient):
    """Shared httpx plumbing: status mapping and transport retries for 429/5xx and timeouts.

    Subclasses build the request and pull the content out of the response.
    """

    def __init__(
        self,
        base_url: str,
        default_model: str,
        timeout: float = DEFAULT_CALL_TIMEOUT,
        max_attempts: int = PROVIDER_TRANSPORT_ATTEMPTS,
        retry_multiplier: float = 1.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the client.

        Args:
            base_url: API base URL, without trailing slash
            default_model: Model used when ``generate`` is not given one
            timeout: Request timeout in seconds
            max_attempts: Transport attempts for rate limits, server errors and timeouts
            retry_multiplier: Exponential backoff multiplier between transport attempts
            http_client: Optional preconfigured client, owned by the caller
        """
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self.max_attempts = max_attempts
        self.retry_multiplier = retry_multiplier
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def name(self) -> str:
        return type(self).__name__

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    @abstractmethod
    def _endpoint(self) -> str:
        pass

    @abstractmethod
    def _build_payload(self, messages: list[dict[str, str]], model: str) -> dict[str, Any]:
        pass

    @abstractmethod
    def _extract_content(self, response: dict) -> str:
        pass

    def _extract_usage(self, response: dict) -> tuple[int, int, int]:
        """Return (prompt, completion, cached) tokens reported in a response."""
        return 0, 0, 0

    async def generate(
        self,
        messages: list[dict[str, str]],
        model: Optional[str] = None,
    ) -> str:
        """Generate completion with automatic transport retries.

        Raises:
            APIError: On non-retryable API errors
            AuthenticationError: On authentication failure
            RateLimitError: If rate limits or server errors persist after retries
            CallTimeoutError: If requests keep timing out
            TransportError: On other network failures
        """
        model = model or self.default_model
        payload = self._build_payload(messages, model)
        response = await self._post_with_retry(self._endpoint(), payload)
        self.usage.record(*self._extract_usage(response))
        return self._extract_content(response)

    async def _post_with_retry(self, url: str, payload: dict[str, Any]) -> dict:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_multiplier, max=60),
            retry=retry_if_exception_type((RateLimitError, httpx.TimeoutException)),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.debug(f"{self.name}: transport attempt {attempt.retry_state.attempt_number}")
                    return await self._post(url, payload)
        except httpx.TimeoutException as e:
            raise CallTimeoutError(f"{self.name} request timed out: {e}") from e
        except EnrichmentError:
            raise
        except httpx.HTTPError as e:
            raise TransportError(f"{self.name} transport error: {e}") from e
        raise TransportError(f"{self.name} request was not attempted")

    async def _post(self, url: str, payload: dict[str, Any]) -> dict:
        """Make a single request and map the status code."""
        response = await self._client.post(url, headers=self._headers(), json=payload)

        if response.status_code == 200:
            try:
                return response.json()
            except ValueError as e:
                raise APIError(f"{self.name} returned a non-JSON body") from e
        elif response.status_code in (401, 403):
            raise AuthenticationError(f"{self.name}: invalid or unauthorized API key")
        elif response.status_code == 429:
            raise RateLimitError(f"{self.name}: rate limit exceeded")
        elif response.status_code >= 500:
            # Server errors - retry via RateLimitError
            raise RateLimitError(f"{self.name}: server error {response.status_code}")
        else:
            try:
                error_data = response.json()
                error = error_data.get("error", error_data)
                error_msg = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            except ValueError:
                error_msg = response.text
            raise APIError(f"{self.name} API error ({response.status_code}): {error_msg}")

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()
