"""Reassembly of enhanced text into the original block order, and progress reporting."""

from typing import Callable, Mapping, Optional, Sequence

from context_enricher.exceptions import ReassemblyError
from context_enricher.models import ContentBlock, EnhancedBlock

ProgressCallback = Callable[[int, int], None]


class ProgressTracker:
    """Counts processed eligible blocks and reports ``(processed, total)``."""

    def __init__(self, total: int, callback: Optional[ProgressCallback] = None) -> None:
        self.total = total
        self.processed = 0
        self.callback = callback

    def advance(self, count: int) -> None:
        self.processed = min(self.total, self.processed + count)
        if self.callback:
            self.callback(self.processed, self.total)


def reassemble(blocks: Sequence[ContentBlock], texts: Mapping[str, str]) -> list[EnhancedBlock]:
    """
    Pair every input block with its final text, in input order.

    Pass-through blocks are emitted unchanged. Keyed blocks take their text from
    ``texts``, which must hold exactly one entry per key.

    Args:
        blocks: The full segmented block stream
        texts: Final (enhanced or fallback) text per key

    Returns:
        list[EnhancedBlock]: One pair per input block

    Raises:
        ReassemblyError: If a key is missing or unknown, or block order is broken
    """
    output: list[EnhancedBlock] = []
    seen: set[str] = set()

    for position, block in enumerate(blocks):
        if block.original_index != position:
            raise ReassemblyError(f"Block at position {position} has original index {block.original_index}")
        if block.key is None:
            output.append(EnhancedBlock(original=block.text, enhanced=block.text))
            continue
        if block.key in seen:
            raise ReassemblyError(f"Duplicate block key {block.key}")
        if block.key not in texts:
            raise ReassemblyError(f"No text for block {block.key}")
        seen.add(block.key)
        output.append(EnhancedBlock(original=block.text, enhanced=texts[block.key]))

    unknown = set(texts) - seen
    if unknown:
        raise ReassemblyError(f"Text for unknown block(s): {', '.join(sorted(unknown))}")

    return output
