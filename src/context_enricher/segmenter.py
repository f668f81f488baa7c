"""
Block segmentation.

Decides which input blocks are worth sending to the model and gives each of
them a stable key. Blocks that are too short, or that are code, pass through
untouched but keep their position for reassembly.
"""

import re
from typing import Any, Iterable, Mapping, Optional

from loguru import logger

from context_enricher.config.pydantic_config import FrozenModel
from context_enricher.constants import (
    BLOCK_KEY_PREFIX,
    BLOCK_KEY_WIDTH,
    DEFAULT_MIN_BLOCK_CHARS,
    PASS_THROUGH_BLOCK_TYPES,
)
from context_enricher.models import ContentBlock

# Structural markdown punctuation ignored when measuring real text
_LIST_MARKER = re.compile(r"^[ \t]*[-*+](?=\s)", re.MULTILINE)
_MARKUP_PUNCTUATION = re.compile(r"[#*_`>\[\](){}]")


class SegmentedDocument(FrozenModel):
    """All input blocks in order, plus the key -> text mapping of eligible ones."""

    blocks: tuple[ContentBlock, ...]
    keyed: dict[str, str]

    @property
    def eligible_blocks(self) -> list[ContentBlock]:
        return [block for block in self.blocks if block.eligible]

    @property
    def pass_through_count(self) -> int:
        return sum(1 for block in self.blocks if not block.eligible)


def format_block_key(number: int) -> str:
    """Return the key for the ``number``-th eligible block (1-based)."""
    return f"{BLOCK_KEY_PREFIX}{number:0{BLOCK_KEY_WIDTH}d}"


def real_text_length(text: str) -> int:
    """Length of ``text`` once markup punctuation and surrounding whitespace are removed."""
    return len(_MARKUP_PUNCTUATION.sub("", _LIST_MARKER.sub("", text)).strip())


def count_words(text: str) -> int:
    return len(text.split())


def _coerce_block(raw: Any) -> tuple[str, Optional[str]]:
    """Extract (text, type) from a string, a mapping or an object with ``.text``."""
    if isinstance(raw, str):
        return raw, None
    if isinstance(raw, Mapping):
        return str(raw.get("text") or ""), raw.get("type")
    text = getattr(raw, "text", None)
    if text is None:
        raise TypeError(f"Unsupported block of type {type(raw).__name__}: expected str, mapping or object with .text")
    return str(text), getattr(raw, "type", None) or getattr(raw, "block_type", None)


def _is_pass_through_type(text: str, block_type: Optional[str]) -> bool:
    if block_type and block_type.lower() in PASS_THROUGH_BLOCK_TYPES:
        return True
    return text.lstrip().startswith(("```", "~~~"))


def segment_blocks(raw_blocks: Iterable[Any], min_chars: int = DEFAULT_MIN_BLOCK_CHARS) -> SegmentedDocument:
    """
    Key the eligible blocks of a document.

    Args:
        raw_blocks: Ordered blocks as strings, ``{"text": ..., "type": ...}`` mappings,
            or objects with a ``text`` attribute
        min_chars: Minimum real-text length for a block to be eligible

    Returns:
        SegmentedDocument: Every block in input order; eligible blocks carry
        sequential keys BLOCK_001, BLOCK_002, ...
    """
    blocks: list[ContentBlock] = []
    keyed: dict[str, str] = {}

    for index, raw in enumerate(raw_blocks):
        text, block_type = _coerce_block(raw)
        key: Optional[str] = None
        if not _is_pass_through_type(text, block_type) and real_text_length(text) >= min_chars:
            key = format_block_key(len(keyed) + 1)
            keyed[key] = text
        blocks.append(
            ContentBlock(
                key=key,
                text=text,
                original_index=index,
                word_count=count_words(text),
                block_type=block_type,
            )
        )

    logger.debug(f"Segmented {len(blocks)} blocks: {len(keyed)} eligible, {len(blocks) - len(keyed)} pass-through")
    return SegmentedDocument(blocks=tuple(blocks), keyed=keyed)
