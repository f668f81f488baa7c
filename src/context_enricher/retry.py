"""
Targeted retries.

Each attempt validates the response and resubmits a new batch holding only the
blocks that failed. Blocks that never validate fall back to their original
text.
"""

import asyncio
from typing import Optional

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
)

from context_enricher.constants import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_BACKOFF, DEFAULT_RETRY_BACKOFF_MAX
from context_enricher.exceptions import InvalidResponseShapeError, ProviderError
from context_enricher.executor import BatchExecutor
from context_enricher.models import Batch, BatchResult, EnhancedResult
from context_enricher.validation import validate_batch


class IncompleteBatchError(Exception):
    """Some blocks of an attempt failed validation."""

    def __init__(self, failed_keys: tuple[str, ...]):
        self.failed_keys = failed_keys
        super().__init__(f"{len(failed_keys)} block(s) failed validation: {', '.join(failed_keys)}")


RETRYABLE_ERRORS = (IncompleteBatchError, ProviderError, InvalidResponseShapeError)


class RetryController:
    """Runs one batch to completion: first attempt plus up to ``max_retries`` targeted retries."""

    def __init__(
        self,
        executor: BatchExecutor,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF,
        retry_backoff_max: float = DEFAULT_RETRY_BACKOFF_MAX,
        abort_event: Optional[asyncio.Event] = None,
    ) -> None:
        self.executor = executor
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.retry_backoff_max = retry_backoff_max
        self.abort_event = abort_event or asyncio.Event()

    @property
    def aborted(self) -> bool:
        return self.abort_event.is_set()

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        sleep = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"Attempt {retry_state.attempt_number}/{self.max_retries + 1} failed "
            f"({type(error).__name__}: {error}); retrying in {sleep:.1f}s"
        )

    async def run(self, batch: Batch) -> BatchResult:
        """
        Submit ``batch`` and retry only its failed blocks.

        Call-level errors (provider failures, unparseable responses) retry the
        whole pending batch. Anything else propagates.

        Args:
            batch: The batch to enhance

        Returns:
            BatchResult: One result per key in ``batch`` order. Blocks that never
            validated carry their original text with ``valid=False``.
        """
        validated: dict[str, str] = {}
        pending = batch
        attempts = 0

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1) | stop_when_event_set(self.abort_event),
            wait=wait_exponential(multiplier=self.retry_backoff, max=self.retry_backoff_max),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=self._log_retry,
            reraise=True,
        )

        if not self.aborted:
            try:
                async for attempt in retrying:
                    with attempt:
                        if self.aborted:
                            break
                        attempts += 1
                        enhanced = await self.executor.submit(pending)
                        outcome = validate_batch(pending.blocks, enhanced)
                        validated.update(outcome.validated)
                        if outcome.failed_keys:
                            pending = pending.subset(list(outcome.failed_keys))
                            raise IncompleteBatchError(outcome.failed_keys)
            except RETRYABLE_ERRORS as e:
                logger.warning(
                    f"Giving up on {len(pending.blocks)} block(s) after {attempts} attempt(s): "
                    f"{type(e).__name__}: {e}"
                )

        results = tuple(
            EnhancedResult(key=key, text=validated[key], valid=True)
            if key in validated
            else EnhancedResult(key=key, text=text, valid=False)
            for key, text in batch.blocks.items()
        )
        aborted = self.aborted and len(validated) < len(batch.blocks)
        return BatchResult(results=results, attempts=attempts, aborted=aborted)
