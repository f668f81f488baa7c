"""
Tests for enrichment sessions and the session registry.
"""

import asyncio
from unittest.mock import Mock

import pytest
from conftest import FakeProvider

from context_enricher.api_models import BatchEnhancementResponse
from context_enricher.exceptions import (
    CallTimeoutError,
    ProviderError,
    RateLimitError,
    SessionNotFoundError,
    SessionSetupError,
)
from context_enricher.prompts import build_batch_prompt
from context_enricher.session import EnrichmentSession, SessionRegistry

PROMPT = build_batch_prompt({"BLOCK_001": "Hello world"})


def _session(provider, **kwargs) -> EnrichmentSession:
    session = EnrichmentSession("test-session", provider, **kwargs)
    session.set_static_context("# Instructions")
    return session


# ============================================================================
# Cached context
# ============================================================================


class TestCachedContext:
    """Tests for static and window context handling."""

    def test_call_without_context_fails(self, fake_provider):
        session = _session(fake_provider)

        with pytest.raises(SessionSetupError):
            asyncio.run(session.call(PROMPT, BatchEnhancementResponse))
        assert fake_provider.calls == 0

    def test_window_context_requires_static_context(self, fake_provider):
        session = EnrichmentSession("s", fake_provider)
        with pytest.raises(SessionSetupError):
            asyncio.run(session.set_cached_context("window"))

    def test_static_context_is_set_once(self, fake_provider):
        session = _session(fake_provider)
        with pytest.raises(SessionSetupError, match="already set"):
            session.set_static_context("again")

    def test_context_pairs_instructions_and_window(self, fake_provider):
        session = _session(fake_provider)

        asyncio.run(session.set_cached_context("\n\nwindow text"))

        assert session.cached_context == "# Instructions\n\nwindow text"
        assert fake_provider.prepared_contexts == ["# Instructions\n\nwindow text"]

    def test_prepare_failure_is_a_setup_error(self):
        session = _session(FakeProvider(fail_prepare=True))

        with pytest.raises(SessionSetupError, match="could not prepare context") as exc_info:
            asyncio.run(session.set_cached_context("window"))
        assert exc_info.value.session_id == "test-session"

    def test_calls_carry_cached_context_as_system_message(self, fake_provider):
        session = _session(fake_provider)

        async def run():
            await session.set_cached_context("\n\nwindow")
            return await session.call(PROMPT, BatchEnhancementResponse)

        response = asyncio.run(run())

        assert response.enhanced_blocks == {"BLOCK_001": "Hello [[note BLOCK_001]] world"}
        assert fake_provider.system_prompts == ["# Instructions\n\nwindow"]


# ============================================================================
# Metrics
# ============================================================================


class TestSessionMetrics:
    """Tests for cache hit and miss accounting."""

    def test_first_call_per_context_is_a_miss(self, fake_provider):
        session = _session(fake_provider)

        async def run():
            await session.set_cached_context("one")
            for _ in range(3):
                await session.call(PROMPT, BatchEnhancementResponse)
            await session.set_cached_context("two")
            for _ in range(2):
                await session.call(PROMPT, BatchEnhancementResponse)

        asyncio.run(run())
        metrics = session.close()

        assert metrics.misses == 2
        assert metrics.hits == 3
        assert metrics.calls == 5
        assert metrics.context_updates == 2
        assert metrics.hit_rate == pytest.approx(0.6)
        assert metrics.tokens_saved > 0

    def test_tokens_saved_uses_token_counter(self, fake_provider):
        counter = Mock()
        counter.count.return_value = 120
        session = _session(fake_provider, token_counter=counter)

        async def run():
            await session.set_cached_context(" the window text")
            for _ in range(3):
                await session.call(PROMPT, BatchEnhancementResponse)

        asyncio.run(run())

        counter.count.assert_called_once_with("# Instructions the window text")
        assert session.close().tokens_saved == 240

    def test_tokens_saved_counts_tiktoken_tokens(self, fake_provider):
        session = _session(fake_provider)

        async def run():
            await session.set_cached_context(" alpha beta gamma")
            await session.call(PROMPT, BatchEnhancementResponse)
            await session.call(PROMPT, BatchEnhancementResponse)

        asyncio.run(run())

        # "# Instructions alpha beta gamma" is five tokens; one hit
        assert session.close().tokens_saved == 5

    def test_failed_calls_are_counted(self):
        session = _session(FakeProvider(error=RateLimitError("slow down"), fail_times=1))

        async def run():
            await session.set_cached_context("ctx")
            with pytest.raises(RateLimitError):
                await session.call(PROMPT, BatchEnhancementResponse)
            await session.call(PROMPT, BatchEnhancementResponse)

        asyncio.run(run())

        assert session.metrics().failed_calls == 1
        assert session.metrics().calls == 2


# ============================================================================
# Call errors and concurrency
# ============================================================================


class TestSessionCalls:
    """Tests for timeouts, error wrapping and the concurrency gate."""

    def test_timeout_becomes_call_timeout_error(self):
        session = _session(FakeProvider(delay=0.5), timeout=0.01)

        async def run():
            await session.set_cached_context("ctx")
            await session.call(PROMPT, BatchEnhancementResponse)

        with pytest.raises(CallTimeoutError) as exc_info:
            asyncio.run(run())
        assert exc_info.value.timeout == 0.01

    def test_unexpected_errors_are_wrapped(self):
        session = _session(FakeProvider(error=ConnectionResetError("reset"), fail_times=1))

        async def run():
            await session.set_cached_context("ctx")
            await session.call(PROMPT, BatchEnhancementResponse)

        with pytest.raises(ProviderError, match="ConnectionResetError"):
            asyncio.run(run())

    def test_concurrency_is_bounded(self):
        provider = FakeProvider(delay=0.01)
        session = _session(provider, concurrency_limit=2)

        async def run():
            await session.set_cached_context("ctx")
            await asyncio.gather(*(session.call(PROMPT, BatchEnhancementResponse) for _ in range(6)))

        asyncio.run(run())

        assert provider.calls == 6
        assert provider.max_active == 2

    def test_closed_session_rejects_calls(self, fake_provider):
        session = _session(fake_provider)
        session.close()

        with pytest.raises(SessionSetupError, match="closed"):
            asyncio.run(session.set_cached_context("ctx"))


# ============================================================================
# Registry
# ============================================================================


class TestSessionRegistry:
    """Tests for the caller-owned session registry."""

    def test_create_and_get(self, fake_provider):
        registry = SessionRegistry()

        session = registry.create(fake_provider, concurrency_limit=3)

        assert session.id in registry
        assert len(registry) == 1
        assert registry.get(session.id) is session
        assert session.concurrency_limit == 3

    def test_explicit_ids_are_unique(self, fake_provider):
        registry = SessionRegistry()
        registry.create(fake_provider, session_id="doc-1")

        with pytest.raises(SessionSetupError):
            registry.create(fake_provider, session_id="doc-1")

    def test_unknown_id(self):
        registry = SessionRegistry()

        with pytest.raises(SessionNotFoundError, match="missing"):
            registry.get("missing")
        with pytest.raises(KeyError):
            registry.close("missing")

    def test_close_returns_metrics_and_unregisters(self, fake_provider):
        registry = SessionRegistry()
        session = registry.create(fake_provider, session_id="doc-1")

        metrics = registry.close("doc-1")

        assert metrics.session_id == "doc-1"
        assert session.closed
        assert "doc-1" not in registry

    def test_close_all(self, fake_provider):
        registry = SessionRegistry()
        registry.create(fake_provider)
        registry.create(fake_provider)

        metrics = registry.close_all()

        assert len(metrics) == 2
        assert len(registry) == 0
