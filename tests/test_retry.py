"""
Tests for batch dispatch and targeted retries.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from conftest import FakeProvider

from context_enricher.exceptions import RateLimitError, SessionSetupError
from context_enricher.executor import BatchExecutor
from context_enricher.models import Batch
from context_enricher.retry import RetryController
from context_enricher.session import EnrichmentSession

BATCH = Batch.from_blocks(
    {
        "BLOCK_001": "Alice founded the company in Berlin.",
        "BLOCK_002": "She later moved it to Paris.",
    }
)


def _executor(provider, **kwargs) -> BatchExecutor:
    session = EnrichmentSession("test-session", provider)
    session.set_static_context("# Instructions")
    return BatchExecutor(session, **kwargs)


def _run(controller: RetryController, batch: Batch = BATCH):
    async def run():
        await controller.executor.session.set_cached_context("\n\nwindow")
        return await controller.run(batch)

    return asyncio.run(run())


# ============================================================================
# Batch Executor
# ============================================================================


class TestBatchExecutor:
    """Tests for staggered concurrent dispatch."""

    def test_stagger_is_capped(self, fake_provider):
        executor = _executor(fake_provider, stagger_step=0.05, stagger_cap=0.4)

        assert [executor.stagger_delay(i) for i in (0, 1, 4)] == [0.0, 0.05, 0.2]
        assert executor.stagger_delay(20) == 0.4

    def test_dispatch_sleeps_staggered_delays(self, fake_provider):
        executor = _executor(fake_provider, stagger_step=0.05, stagger_cap=0.2)
        batches = [Batch.from_blocks({f"BLOCK_00{i}": f"text number {i}"}) for i in range(1, 7)]

        async def handler(batch):
            return batch.keys

        with patch("context_enricher.executor.asyncio.sleep", new_callable=AsyncMock) as sleep:
            results = asyncio.run(executor.dispatch(batches, handler))

        delays = [call.args[0] for call in sleep.await_args_list]
        assert delays == pytest.approx([0.05, 0.1, 0.15, 0.2, 0.2])
        assert results == [[f"BLOCK_00{i}"] for i in range(1, 7)]

    def test_submit_sends_only_the_batch_blocks(self, fake_provider):
        executor = _executor(fake_provider)

        async def run():
            await executor.session.set_cached_context("\n\nwindow")
            return await executor.submit(BATCH)

        result = asyncio.run(run())

        assert fake_provider.requests == [BATCH.blocks]
        assert set(result) == {"BLOCK_001", "BLOCK_002"}

    def test_dispatch_keeps_batch_order_and_merges(self):
        provider = FakeProvider(delay=0.01)
        executor = _executor(provider, stagger_step=0.0, stagger_cap=0.0)
        batches = [Batch.from_blocks({f"BLOCK_00{i}": f"text number {i}"}) for i in range(1, 4)]

        async def run():
            await executor.session.set_cached_context("\n\nwindow")
            return await executor.dispatch(batches)

        results = asyncio.run(run())

        assert [list(result) for result in results] == [["BLOCK_001"], ["BLOCK_002"], ["BLOCK_003"]]
        assert list(BatchExecutor.merge(results)) == ["BLOCK_001", "BLOCK_002", "BLOCK_003"]

    def test_dispatch_reraises_handler_errors(self, fake_provider):
        executor = _executor(fake_provider, stagger_step=0.0, stagger_cap=0.0)

        async def failing(batch):
            raise SessionSetupError("boom")

        with pytest.raises(SessionSetupError):
            asyncio.run(executor.dispatch([BATCH], failing))


# ============================================================================
# Retry Controller
# ============================================================================


class TestRetryController:
    """Tests for targeted retries and fallback."""

    def test_success_on_first_attempt(self, fake_provider):
        result = _run(RetryController(_executor(fake_provider), retry_backoff=0, retry_backoff_max=0))

        assert result.attempts == 1
        assert result.enhanced_count == 2
        assert result.fallback_count == 0
        assert all("[[" in text for text in result.texts.values())

    def test_missing_block_falls_back_after_retries(self):
        provider = FakeProvider(omit_keys=("BLOCK_002",))
        controller = RetryController(_executor(provider), max_retries=3, retry_backoff=0, retry_backoff_max=0)

        result = _run(controller)

        assert result.attempts == 4
        assert result.texts["BLOCK_002"] == BATCH.blocks["BLOCK_002"]
        assert result.fallback_count == 1
        assert [r.valid for r in result.results] == [True, False]
        # Retries carry only the failed block
        assert provider.requested_keys == [["BLOCK_001", "BLOCK_002"]] + [["BLOCK_002"]] * 3

    def test_retry_bound_respects_max_retries(self):
        provider = FakeProvider(omit_keys=("BLOCK_001", "BLOCK_002"))
        controller = RetryController(_executor(provider), max_retries=1, retry_backoff=0, retry_backoff_max=0)

        result = _run(controller)

        assert result.attempts == 2
        assert provider.calls == 2
        assert result.fallback_count == 2

    def test_no_retries(self):
        provider = FakeProvider(omit_keys=("BLOCK_001",))
        result = _run(RetryController(_executor(provider), max_retries=0, retry_backoff=0, retry_backoff_max=0))

        assert result.attempts == 1
        assert result.fallback_count == 1

    def test_provider_errors_retry_the_whole_batch(self):
        provider = FakeProvider(error=RateLimitError("slow down"), fail_times=2)
        controller = RetryController(_executor(provider), max_retries=3, retry_backoff=0, retry_backoff_max=0)

        result = _run(controller)

        assert result.attempts == 3
        assert result.enhanced_count == 2
        assert provider.requested_keys[-1] == ["BLOCK_001", "BLOCK_002"]

    def test_unparseable_responses_are_retried(self):
        provider = FakeProvider(raw_responses=["Sorry, I cannot help with that."])
        controller = RetryController(_executor(provider), max_retries=1, retry_backoff=0, retry_backoff_max=0)

        result = _run(controller)

        assert result.attempts == 2
        assert result.enhanced_count == 2

    def test_invalid_enhancement_is_retried(self):
        responses = ['{"enhanced_blocks": {"BLOCK_001": "Bob founded the company in Berlin.", '
                     '"BLOCK_002": "She [[Alice]] later moved it to Paris."}}']
        provider = FakeProvider(raw_responses=responses)
        controller = RetryController(_executor(provider), max_retries=2, retry_backoff=0, retry_backoff_max=0)

        result = _run(controller)

        assert result.attempts == 2
        assert provider.requested_keys == [["BLOCK_001", "BLOCK_002"], ["BLOCK_001"]]
        assert result.texts["BLOCK_002"] == "She [[Alice]] later moved it to Paris."
        assert result.enhanced_count == 2

    def test_backoff_between_attempts(self):
        provider = FakeProvider(omit_keys=("BLOCK_002",))
        controller = RetryController(_executor(provider), max_retries=2, retry_backoff=0.01, retry_backoff_max=1)

        loop = asyncio.new_event_loop()
        try:
            start = loop.time()
            loop.run_until_complete(controller.executor.session.set_cached_context("ctx"))
            result = loop.run_until_complete(controller.run(BATCH))
            elapsed = loop.time() - start
        finally:
            loop.close()

        assert result.attempts == 3
        # 0.01 + 0.02 seconds of backoff
        assert elapsed >= 0.03

    def test_abort_before_start_uses_originals(self, fake_provider):
        abort = asyncio.Event()
        abort.set()
        controller = RetryController(_executor(fake_provider), abort_event=abort)

        result = _run(controller)

        assert result.attempts == 0
        assert result.aborted
        assert result.texts == BATCH.blocks
        assert fake_provider.calls == 0

    def test_setup_errors_are_not_retried(self, fake_provider):
        controller = RetryController(_executor(fake_provider), retry_backoff=0, retry_backoff_max=0)

        # No cached context set for the window
        with pytest.raises(SessionSetupError):
            asyncio.run(controller.run(BATCH))
        assert fake_provider.calls == 0
