"""
Window planning.

A window is the slice of the document that fits in the model's usable context
at once. Small documents fit in a single window, so every call sees the whole
document. Larger ones are cut into windows that overlap by roughly
``overlap_fraction`` of the capacity, always on block boundaries.
"""

import math
from typing import Optional, Sequence

from loguru import logger

from context_enricher.config.enrichment import EnrichmentConfig
from context_enricher.constants import DEFAULT_CONTEXT_TOKENS, MODEL_CONTEXT_WINDOWS
from context_enricher.models import ContentBlock, Window


def context_tokens_for_model(model: Optional[str]) -> int:
    """
    Look up the context window size for a model name.

    Matching is by substring, in table order, so "gpt-4o-mini" resolves to the
    gpt-4o entry rather than gpt-4.

    Args:
        model: Model name as configured for the provider

    Returns:
        int: Context size in tokens, or the default when the model is unknown
    """
    name = (model or "").lower()
    for pattern, tokens in MODEL_CONTEXT_WINDOWS:
        if pattern in name:
            return tokens
    return DEFAULT_CONTEXT_TOKENS


def compute_window_capacity(model: Optional[str], config: EnrichmentConfig) -> int:
    """
    Compute how many words of document text fit in one window.

    ``(context_tokens * utilization - reserves) * words_per_token``, clamped to
    ``[min_window_words, max_window_words]``.
    """
    context_tokens = config.context_tokens or context_tokens_for_model(model)
    usable_tokens = context_tokens * config.context_utilization - config.reserve_tokens
    optimal_words = math.floor(max(usable_tokens, 0) * config.words_per_token)
    capacity = max(config.min_window_words, min(config.max_window_words, optimal_words))

    logger.debug(
        f"Window sizing - model: {model}, context: {context_tokens} tokens, "
        f"optimal: {optimal_words} words, bounded: {capacity} words"
    )
    return capacity


def _fill_window(blocks: Sequence[ContentBlock], start: int, capacity: int) -> tuple[int, int]:
    """Return (end index, word count) of the window starting at ``start``. Holds at least one block."""
    end = start
    words = blocks[start].word_count
    while end + 1 < len(blocks) and words + blocks[end + 1].word_count <= capacity:
        end += 1
        words += blocks[end].word_count
    return end, words


def _next_start(blocks: Sequence[ContentBlock], start: int, end: int, words: int, overlap_words: float, capacity: int) -> int:
    advance = words - overlap_words
    next_start = end + 1
    cumulative = 0
    for index in range(start, end + 1):
        cumulative += blocks[index].word_count
        if cumulative > advance:
            next_start = index
            break
    next_start = max(next_start, start + 1)

    # The next window must reach at least one block past this one
    following = blocks[end + 1].word_count
    while next_start <= end and sum(b.word_count for b in blocks[next_start : end + 1]) + following > capacity:
        next_start += 1
    return next_start


def plan_windows(blocks: Sequence[ContentBlock], capacity: int, overlap_fraction: float) -> list[Window]:
    """
    Split eligible blocks into overlapping windows.

    Args:
        blocks: Eligible blocks in document order
        capacity: Maximum words per window
        overlap_fraction: Fraction of ``capacity`` shared between adjacent windows

    Returns:
        list[Window]: Windows in document order. Their union is exactly ``blocks``.
    """
    if not blocks:
        return []

    total_words = sum(block.word_count for block in blocks)
    if total_words <= capacity:
        logger.debug(f"Document fits in one window ({total_words} <= {capacity} words)")
        return [Window(blocks=tuple(blocks), word_count=total_words)]

    overlap_words = overlap_fraction * capacity
    windows: list[Window] = []
    start = 0
    while True:
        end, words = _fill_window(blocks, start, capacity)
        windows.append(Window(blocks=tuple(blocks[start : end + 1]), word_count=words))
        if end == len(blocks) - 1:
            break
        start = _next_start(blocks, start, end, words, overlap_words, capacity)

    logger.debug(
        f"Planned {len(windows)} windows for {total_words} words "
        f"(capacity {capacity}, overlap {overlap_fraction:.0%})"
    )
    return windows
