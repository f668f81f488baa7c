"""Value objects flowing through the enrichment pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import Field

from context_enricher.config.pydantic_config import BaseConfig, FrozenModel


class PipelineState(Enum):
    """States a document run moves through."""

    INIT = "init"
    SEGMENTED = "segmented"
    WINDOWS_PLANNED = "windows_planned"
    CACHE_SET = "cache_set"
    BATCHES_DISPATCHED = "batches_dispatched"
    VALIDATED = "validated"
    RETRYING = "retrying"
    MERGED = "merged"
    REASSEMBLED = "reassembled"
    DONE = "done"
    FAILED = "failed"


class DocumentMetadata(BaseConfig):
    """Document-level metadata included in the cached instructions."""

    title: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None
    extra: dict[str, Any] = Field(default_factory=dict)


class ContentBlock(FrozenModel):
    """One block of the input document. Only keyed blocks are sent to the model."""

    key: Optional[str] = None
    text: str
    original_index: int
    word_count: int
    block_type: Optional[str] = None

    @property
    def eligible(self) -> bool:
        return self.key is not None


class Window(FrozenModel):
    """A contiguous run of eligible blocks sized to the model's usable context."""

    blocks: tuple[ContentBlock, ...]
    word_count: int

    @property
    def keys(self) -> list[str]:
        return [block.key for block in self.blocks if block.key is not None]

    @property
    def text(self) -> str:
        return "\n\n".join(block.text for block in self.blocks)


class Batch(FrozenModel):
    """Keyed block texts sent together in one enrichment call."""

    blocks: dict[str, str]
    word_count: int

    @classmethod
    def from_blocks(cls, blocks: dict[str, str]) -> "Batch":
        return cls(blocks=dict(blocks), word_count=sum(len(text.split()) for text in blocks.values()))

    @property
    def keys(self) -> list[str]:
        return list(self.blocks)

    def subset(self, keys: list[str]) -> "Batch":
        """Return a new batch holding only ``keys``, in this batch's order."""
        wanted = set(keys)
        return Batch.from_blocks({key: text for key, text in self.blocks.items() if key in wanted})


class EnhancedResult(FrozenModel):
    """Final text for one keyed block. ``valid`` is False when the original was used as fallback."""

    key: str
    text: str
    valid: bool


class ValidationOutcome(FrozenModel):
    """Validation of one batch response: accepted texts plus the keys that failed, in batch order."""

    validated: dict[str, str] = Field(default_factory=dict)
    failed_keys: tuple[str, ...] = ()

    @property
    def all_valid(self) -> bool:
        return not self.failed_keys


class BatchResult(FrozenModel):
    """Outcome of one batch after retries."""

    results: tuple[EnhancedResult, ...]
    attempts: int
    aborted: bool = False

    @property
    def texts(self) -> dict[str, str]:
        return {result.key: result.text for result in self.results}

    @property
    def enhanced_count(self) -> int:
        return sum(1 for result in self.results if result.valid)

    @property
    def fallback_count(self) -> int:
        return sum(1 for result in self.results if not result.valid)


class EnhancedBlock(FrozenModel):
    """Output pair for one input block."""

    original: str
    enhanced: str


class SessionMetrics(FrozenModel):
    """Cache and call counters reported when a session closes."""

    session_id: str
    hits: int = 0
    misses: int = 0
    calls: int = 0
    failed_calls: int = 0
    context_updates: int = 0
    tokens_saved: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class TokenUsage(FrozenModel):
    """Prompt and completion tokens reported by a provider."""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    cached_tokens: int = Field(default=0, ge=0)
    requests: int = Field(default=0, ge=0)

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class EnrichmentReport(FrozenModel):
    """Summary counts for one document run."""

    total_blocks: int
    eligible_blocks: int
    pass_through_blocks: int
    enhanced_blocks: int
    fallback_blocks: int
    windows: int
    batches: int
    retries: int
    insertions: int = 0
    aborted: bool = False
    session: Optional[SessionMetrics] = None
    usage: Optional[TokenUsage] = None

    @property
    def cache_hit_rate(self) -> float:
        return self.session.hit_rate if self.session else 0.0


class EnrichmentResult(FrozenModel):
    """Enhanced blocks in input order plus the run report."""

    blocks: tuple[EnhancedBlock, ...]
    report: EnrichmentReport
    state: PipelineState = PipelineState.DONE
