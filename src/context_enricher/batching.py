"""Batch building: group a window's blocks into calls of roughly ``target_words`` words."""

from typing import Sequence

from context_enricher.constants import DEFAULT_TARGET_BATCH_WORDS
from context_enricher.models import Batch, ContentBlock


def build_batches(blocks: Sequence[ContentBlock], target_words: int = DEFAULT_TARGET_BATCH_WORDS) -> list[Batch]:
    """
    Group keyed blocks into batches without splitting any block.

    A new batch starts whenever adding the next block would push the current
    one past ``target_words``. A block larger than the target gets a batch of
    its own.

    Args:
        blocks: Keyed blocks in document order
        target_words: Target word count per batch

    Returns:
        list[Batch]: Batches in document order
    """
    batches: list[Batch] = []
    current: dict[str, str] = {}
    current_words = 0

    for block in blocks:
        if block.key is None:
            continue
        if current and current_words + block.word_count > target_words:
            batches.append(Batch(blocks=current, word_count=current_words))
            current = {}
            current_words = 0
        current[block.key] = block.text
        current_words += block.word_count

    if current:
        batches.append(Batch(blocks=current, word_count=current_words))

    return batches
