"""Concurrent dispatch of a window's batches through the session."""

import asyncio
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from loguru import logger

from context_enricher.api_models import BatchEnhancementResponse
from context_enricher.constants import DEFAULT_STAGGER_CAP, DEFAULT_STAGGER_STEP
from context_enricher.models import Batch
from context_enricher.prompts import build_batch_prompt
from context_enricher.session import EnrichmentSession

T = TypeVar("T")


class BatchExecutor:
    """Sends batches against the session's cached context."""

    def __init__(
        self,
        session: EnrichmentSession,
        stagger_step: float = DEFAULT_STAGGER_STEP,
        stagger_cap: float = DEFAULT_STAGGER_CAP,
    ) -> None:
        self.session = session
        self.stagger_step = stagger_step
        self.stagger_cap = stagger_cap

    def stagger_delay(self, index: int) -> float:
        return min(self.stagger_cap, index * self.stagger_step)

    async def submit(self, batch: Batch) -> dict[str, str]:
        """
        Send one batch and return the model's key -> text mapping.

        Only the batch's own blocks go into the prompt; instructions and window
        text travel as the session's cached context.
        """
        logger.debug(f"Session {self.session.id} - submitting {len(batch.blocks)} block(s), {batch.word_count} words")
        response = await self.session.call(build_batch_prompt(batch.blocks), BatchEnhancementResponse)
        return response.enhanced_blocks

    async def dispatch(
        self,
        batches: Sequence[Batch],
        handler: Optional[Callable[[Batch], Awaitable[T]]] = None,
    ) -> list[T]:
        """
        Run ``handler`` for every batch concurrently, staggering start times.

        Concurrency is bounded by the session's gate. Results come back in batch
        order regardless of completion order.

        Args:
            batches: Batches of one window
            handler: Coroutine run per batch (defaults to ``submit``)

        Returns:
            Handler results in batch order
        """
        run = handler or self.submit

        async def _staggered(index: int, batch: Batch):
            delay = self.stagger_delay(index)
            if delay > 0:
                await asyncio.sleep(delay)
            return await run(batch)

        results = await asyncio.gather(
            *(_staggered(index, batch) for index, batch in enumerate(batches)),
            return_exceptions=True,
        )

        exceptions: list[BaseException] = []
        for index, result in enumerate(results):
            if isinstance(result, BaseException):
                logger.error(
                    f"Batch {index + 1}/{len(batches)} failed: {type(result).__name__}: {result}",
                )
                exceptions.append(result)
        if exceptions:
            raise exceptions[0]

        return list(results)

    @staticmethod
    def merge(results: Sequence[dict[str, str]]) -> dict[str, str]:
        """Merge per-batch key -> text mappings into one mapping for the window."""
        merged: dict[str, str] = {}
        for result in results:
            merged.update(result)
        return merged
