"""
Enrichment sessions.

A session owns the cached context for one document run: the static
instructions (set once) plus the text of the active window (replaced per
window). Every batch call in a window reuses that context unchanged, and all
calls share one concurrency gate.
"""

import asyncio
import uuid
from typing import Optional

from loguru import logger

from context_enricher.api_models import ResponseModel, parse_structured_response
from context_enricher.constants import DEFAULT_CALL_TIMEOUT, DEFAULT_CONCURRENCY_LIMIT
from context_enricher.exceptions import (
    CallTimeoutError,
    EnrichmentError,
    ProviderError,
    SessionNotFoundError,
    SessionSetupError,
)
from context_enricher.models import SessionMetrics
from context_enricher.providers.base import AsyncProviderClient
from context_enricher.tokens import TokenCounter


class EnrichmentSession:
    """Cached context, concurrency gate and cache metrics for one document run."""

    def __init__(
        self,
        session_id: str,
        provider: AsyncProviderClient,
        concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT,
        timeout: float = DEFAULT_CALL_TIMEOUT,
        token_counter: Optional[TokenCounter] = None,
    ) -> None:
        self.id = session_id
        self.provider = provider
        self.concurrency_limit = concurrency_limit
        self.timeout = timeout
        self.token_counter = token_counter or TokenCounter()

        self._semaphore = asyncio.Semaphore(concurrency_limit)
        self._static_context: Optional[str] = None
        self._cached_context: Optional[str] = None
        self._context_tokens = 0
        self._context_primed = False
        self._closed = False

        self._hits = 0
        self._misses = 0
        self._calls = 0
        self._failed_calls = 0
        self._context_updates = 0
        self._tokens_saved = 0

    def __repr__(self) -> str:
        return f"EnrichmentSession(id={self.id}, concurrency_limit={self.concurrency_limit}, closed={self._closed})"

    @property
    def cached_context(self) -> Optional[str]:
        return self._cached_context

    @property
    def closed(self) -> bool:
        return self._closed

    def set_static_context(self, instructions: str) -> None:
        """Set the instructions and metadata shared by every window. May only be set once."""
        if self._static_context is not None:
            raise SessionSetupError("Static context is already set", session_id=self.id)
        if not instructions.strip():
            raise SessionSetupError("Static context is empty", session_id=self.id)
        self._static_context = instructions
        logger.debug(f"Session {self.id} - static context set: {len(instructions)} chars")

    async def set_cached_context(self, window_context: str) -> None:
        """
        Replace the window part of the cached context.

        Must be called before any batch call for the window. The provider is
        given a chance to warm its cache for the new context.

        Raises:
            SessionSetupError: If the session is closed, has no static context,
                or the provider cannot prepare the context
        """
        if self._closed:
            raise SessionSetupError("Session is closed", session_id=self.id)
        if self._static_context is None:
            raise SessionSetupError("Static context must be set before window context", session_id=self.id)

        context = f"{self._static_context}{window_context}"
        try:
            await asyncio.wait_for(self.provider.prepare_context(context), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise SessionSetupError(
                f"Provider timed out preparing context after {self.timeout}s", session_id=self.id
            ) from e
        except Exception as e:
            raise SessionSetupError(f"Provider could not prepare context: {e}", session_id=self.id) from e

        self._cached_context = context
        self._context_tokens = self.token_counter.count(context)
        self._context_primed = False
        self._context_updates += 1
        logger.debug(
            f"Session {self.id} - cached context set: {len(context)} chars "
            f"({self._context_tokens} tokens)"
        )

    def _record_cache_use(self) -> None:
        if self._context_primed:
            self._hits += 1
            self._tokens_saved += self._context_tokens
        else:
            self._misses += 1
            self._context_primed = True

    async def call(self, prompt: str, response_model: type[ResponseModel]) -> ResponseModel:
        """
        Send one prompt against the cached context and parse the reply.

        Args:
            prompt: User prompt (the batch's blocks only)
            response_model: Expected response shape

        Returns:
            The parsed response

        Raises:
            SessionSetupError: If no cached context is set or the session is closed
            ProviderError: On transport, timeout or API failures
            InvalidResponseShapeError: If the reply does not match ``response_model``
        """
        if self._closed:
            raise SessionSetupError("Session is closed", session_id=self.id)
        if self._cached_context is None:
            raise SessionSetupError("Cached context must be set before calling", session_id=self.id)

        self._record_cache_use()
        messages = [
            {"role": "system", "content": self._cached_context},
            {"role": "user", "content": prompt},
        ]

        async with self._semaphore:
            self._calls += 1
            try:
                raw = await asyncio.wait_for(self.provider.generate(messages), timeout=self.timeout)
                return parse_structured_response(raw, response_model)
            except asyncio.TimeoutError as e:
                self._failed_calls += 1
                raise CallTimeoutError(f"AI call timed out after {self.timeout}s", timeout=self.timeout) from e
            except EnrichmentError:
                self._failed_calls += 1
                raise
            except Exception as e:
                self._failed_calls += 1
                raise ProviderError(f"Unexpected provider error: {type(e).__name__}: {e}") from e

    def metrics(self) -> SessionMetrics:
        return SessionMetrics(
            session_id=self.id,
            hits=self._hits,
            misses=self._misses,
            calls=self._calls,
            failed_calls=self._failed_calls,
            context_updates=self._context_updates,
            tokens_saved=self._tokens_saved,
        )

    def close(self) -> SessionMetrics:
        """Close the session and return its final metrics."""
        self._closed = True
        self._cached_context = None
        self._context_tokens = 0
        metrics = self.metrics()
        logger.debug(
            f"Session {self.id} closed - calls: {metrics.calls}, hits: {metrics.hits}, "
            f"misses: {metrics.misses}, hit rate: {metrics.hit_rate:.1%}"
        )
        return metrics


class SessionRegistry:
    """Caller-owned mapping of session id to session."""

    def __init__(self) -> None:
        self._sessions: dict[str, EnrichmentSession] = {}

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def create(
        self,
        provider: AsyncProviderClient,
        session_id: Optional[str] = None,
        concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT,
        timeout: float = DEFAULT_CALL_TIMEOUT,
        token_counter: Optional[TokenCounter] = None,
    ) -> EnrichmentSession:
        """Create and register a new session."""
        session_id = session_id or f"enrich-{uuid.uuid4().hex[:12]}"
        if session_id in self._sessions:
            raise SessionSetupError(f"Session {session_id} already exists", session_id=session_id)
        session = EnrichmentSession(
            session_id,
            provider,
            concurrency_limit=concurrency_limit,
            timeout=timeout,
            token_counter=token_counter,
        )
        self._sessions[session_id] = session
        logger.debug(f"Session {session_id} created (concurrency limit {concurrency_limit})")
        return session

    def get(self, session_id: str) -> EnrichmentSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(f"No session with id {session_id}") from None

    def close(self, session_id: str) -> SessionMetrics:
        """Close and unregister a session, returning its final metrics."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(f"No session with id {session_id}")
        return session.close()

    def close_all(self) -> list[SessionMetrics]:
        return [self.close(session_id) for session_id in list(self._sessions)]
