"""
Context-disambiguation pipeline.

Runs one document through segmentation, window planning and, per window,
cache setup, concurrent batch dispatch, validation and targeted retries, then
reassembles the results in the original block order.
"""

import asyncio
from typing import Any, Iterable, Mapping, Optional, Union

from loguru import logger

from context_enricher.batching import build_batches
from context_enricher.config.enrichment import EnrichmentConfig
from context_enricher.exceptions import SessionSetupError
from context_enricher.executor import BatchExecutor
from context_enricher.models import (
    BatchResult,
    DocumentMetadata,
    EnhancedResult,
    EnrichmentReport,
    EnrichmentResult,
    PipelineState,
    SessionMetrics,
    TokenUsage,
    Window,
)
from context_enricher.prompts import build_instructions, build_window_context
from context_enricher.providers.base import AsyncProviderClient
from context_enricher.reassembler import ProgressCallback, ProgressTracker, reassemble
from context_enricher.retry import RetryController
from context_enricher.segmenter import segment_blocks
from context_enricher.session import EnrichmentSession, SessionRegistry
from context_enricher.validation import extract_annotations
from context_enricher.windows import compute_window_capacity, plan_windows

MetadataInput = Union[DocumentMetadata, Mapping[str, Any], None]


def coerce_metadata(metadata: MetadataInput) -> DocumentMetadata:
    """Accept a DocumentMetadata or a plain mapping; unknown mapping keys go to ``extra``."""
    if metadata is None:
        return DocumentMetadata()
    if isinstance(metadata, DocumentMetadata):
        return metadata
    known = {"title", "url", "description"}
    extra = dict(metadata.get("extra") or {})
    extra.update({k: v for k, v in metadata.items() if k not in known and k != "extra"})
    return DocumentMetadata(
        title=metadata.get("title"),
        url=metadata.get("url"),
        description=metadata.get("description"),
        extra=extra,
    )


def count_insertions(original: str, enhanced: str) -> int:
    """Number of annotations in ``enhanced`` that were not already in ``original``."""
    return max(len(extract_annotations(enhanced)) - len(extract_annotations(original)), 0)


class ContextEnrichmentPipeline:
    """Enriches documents with validated ``[[...]]`` disambiguations."""

    def __init__(
        self,
        provider: AsyncProviderClient,
        config: Optional[EnrichmentConfig] = None,
        model: Optional[str] = None,
        registry: Optional[SessionRegistry] = None,
    ) -> None:
        """
        Args:
            provider: Client used for every call
            config: Pipeline tuning (defaults apply when None)
            model: Model name used to size windows (defaults to the provider's default model)
            registry: Caller-owned session registry; a private one is created when None
        """
        self.provider = provider
        self.config = config or EnrichmentConfig()
        self.model = model or getattr(provider, "default_model", None)
        self.registry = registry if registry is not None else SessionRegistry()
        self.state = PipelineState.INIT
        self.state_history: list[PipelineState] = []

    def _transition(self, state: PipelineState) -> None:
        logger.debug(f"Pipeline state: {self.state.name} -> {state.name}")
        self.state = state
        self.state_history.append(state)

    async def enhance_document(
        self,
        blocks: Iterable[Any],
        metadata: MetadataInput = None,
        on_progress: Optional[ProgressCallback] = None,
        abort_event: Optional[asyncio.Event] = None,
    ) -> EnrichmentResult:
        """
        Enrich one document.

        Args:
            blocks: Ordered blocks (strings, ``{"text", "type"}`` mappings or objects with ``.text``)
            metadata: Document metadata included in the cached instructions
            on_progress: Called with ``(processed, total_eligible)`` after each batch completes
            abort_event: When set, no further windows or attempts start; unfinished
                blocks keep their original text

        Returns:
            EnrichmentResult: One ``{original, enhanced}`` pair per input block, in
            input order, plus the run report

        Raises:
            SessionSetupError: If the cached context cannot be established
        """
        self.state = PipelineState.INIT
        self.state_history = [PipelineState.INIT]
        abort_event = abort_event or asyncio.Event()
        document = coerce_metadata(metadata)
        config = self.config

        segmented = segment_blocks(blocks, min_chars=config.min_block_chars)
        eligible = segmented.eligible_blocks
        self._transition(PipelineState.SEGMENTED)

        capacity = compute_window_capacity(self.model, config)
        windows = plan_windows(eligible, capacity, config.overlap_fraction)
        self._transition(PipelineState.WINDOWS_PLANNED)

        logger.info(
            f"Enriching '{document.title or 'untitled'}': {len(segmented.blocks)} blocks, "
            f"{len(eligible)} eligible, {len(windows)} window(s) of up to {capacity} words"
        )

        usage_before = self.provider.usage.snapshot()
        progress = ProgressTracker(len(eligible), on_progress)
        results: dict[str, EnhancedResult] = {}
        batch_count = 0
        retries = 0
        aborted = False

        session = self.registry.create(
            self.provider,
            concurrency_limit=config.concurrency_limit,
            timeout=config.call_timeout,
        )
        try:
            session.set_static_context(build_instructions(document))
            for number, window in enumerate(windows, start=1):
                if abort_event.is_set():
                    logger.warning(f"Aborted before window {number}/{len(windows)}")
                    aborted = True
                    break
                window_results = await self._process_window(
                    session, window, number, len(windows), results, progress, abort_event
                )
                batch_count += len(window_results)
                retries += sum(max(result.attempts - 1, 0) for result in window_results)
                aborted = aborted or any(result.aborted for result in window_results)
        except Exception as e:
            self._transition(PipelineState.FAILED)
            self.registry.close(session.id)
            if isinstance(e, SessionSetupError):
                logger.error(f"Session setup failed for '{document.title or 'untitled'}': {e}")
            else:
                logger.exception(f"Enrichment failed: {type(e).__name__}: {e}")
            raise

        # Blocks never dispatched (abort) fall back to their original text
        for block in eligible:
            if block.key not in results:
                results[block.key] = EnhancedResult(key=block.key, text=block.text, valid=False)

        metrics = self.registry.close(session.id)
        try:
            output = reassemble(segmented.blocks, {key: result.text for key, result in results.items()})
        except Exception:
            self._transition(PipelineState.FAILED)
            raise
        self._transition(PipelineState.REASSEMBLED)

        report = self._build_report(
            segmented.blocks,
            eligible,
            results,
            windows,
            batch_count,
            retries,
            aborted,
            metrics,
            self.provider.usage.snapshot(since=usage_before),
        )
        self._transition(PipelineState.DONE)
        self._log_summary(report)
        return EnrichmentResult(blocks=tuple(output), report=report, state=self.state)

    async def _process_window(
        self,
        session: EnrichmentSession,
        window: Window,
        number: int,
        total: int,
        results: dict[str, EnhancedResult],
        progress: ProgressTracker,
        abort_event: asyncio.Event,
    ) -> list[BatchResult]:
        """Set the window's cached context and enhance the blocks no earlier window covered."""
        config = self.config

        # Overlap blocks were handled by the previous window; they serve as context here
        # in their enhanced form.
        context_text = "\n\n".join(
            results[block.key].text if block.key in results else block.text for block in window.blocks
        )
        fresh = [block for block in window.blocks if block.key not in results]

        await session.set_cached_context(build_window_context(context_text, number, total))
        self._transition(PipelineState.CACHE_SET)

        batches = build_batches(fresh, target_words=config.target_batch_words)
        executor = BatchExecutor(session, stagger_step=config.stagger_step, stagger_cap=config.stagger_cap)
        controller = RetryController(
            executor,
            max_retries=config.max_retries,
            retry_backoff=config.retry_backoff,
            retry_backoff_max=config.retry_backoff_max,
            abort_event=abort_event,
        )

        async def run_batch(batch):
            result = await controller.run(batch)
            progress.advance(len(batch.blocks))
            return result

        logger.debug(
            f"Window {number}/{total}: {len(window.blocks)} blocks ({window.word_count} words), "
            f"{len(fresh)} new in {len(batches)} batch(es)"
        )
        self._transition(PipelineState.BATCHES_DISPATCHED)
        batch_results = await executor.dispatch(batches, run_batch)
        self._transition(PipelineState.VALIDATED)

        if any(result.attempts > 1 for result in batch_results):
            self._transition(PipelineState.RETRYING)

        enhanced = fallback = 0
        for batch_result in batch_results:
            for result in batch_result.results:
                results[result.key] = result
            enhanced += batch_result.enhanced_count
            fallback += batch_result.fallback_count
        self._transition(PipelineState.MERGED)

        logger.info(f"Window {number}/{total}: {enhanced} enhanced, {fallback} fallback")
        return batch_results

    @staticmethod
    def _build_report(
        blocks,
        eligible,
        results: dict[str, EnhancedResult],
        windows: list[Window],
        batch_count: int,
        retries: int,
        aborted: bool,
        metrics: SessionMetrics,
        usage: TokenUsage,
    ) -> EnrichmentReport:
        enhanced = sum(1 for result in results.values() if result.valid)
        originals = {block.key: block.text for block in eligible}
        insertions = sum(
            count_insertions(originals[key], result.text) for key, result in results.items() if result.valid
        )
        return EnrichmentReport(
            total_blocks=len(blocks),
            eligible_blocks=len(eligible),
            pass_through_blocks=len(blocks) - len(eligible),
            enhanced_blocks=enhanced,
            fallback_blocks=len(results) - enhanced,
            windows=len(windows),
            batches=batch_count,
            retries=retries,
            insertions=insertions,
            aborted=aborted,
            session=metrics,
            usage=usage,
        )

    @staticmethod
    def _log_summary(report: EnrichmentReport) -> None:
        session = report.session
        logger.info(
            f"Enrichment complete: {report.enhanced_blocks}/{report.eligible_blocks} blocks enhanced, "
            f"{report.fallback_blocks} fallback, {report.pass_through_blocks} pass-through, "
            f"{report.insertions} insertions, "
            f"{report.retries} retries, cache hit rate {report.cache_hit_rate:.1%}"
            + (f", ~{session.tokens_saved} tokens saved" if session else "")
            + (f", {report.usage.total_tokens} tokens used" if report.usage and report.usage.requests else "")
            + (" (aborted)" if report.aborted else "")
        )


async def enhance_document(
    blocks: Iterable[Any],
    metadata: MetadataInput,
    provider: AsyncProviderClient,
    config: Optional[EnrichmentConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
    abort_event: Optional[asyncio.Event] = None,
) -> EnrichmentResult:
    """Convenience wrapper running a single document through a fresh pipeline."""
    pipeline = ContextEnrichmentPipeline(provider, config=config)
    return await pipeline.enhance_document(blocks, metadata, on_progress=on_progress, abort_event=abort_event)
