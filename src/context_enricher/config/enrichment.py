from __future__ import annotations

from pydantic import Field, model_validator

from context_enricher.config.pydantic_config import BaseConfig
from context_enricher.constants import (
    DEFAULT_CALL_TIMEOUT,
    DEFAULT_CONCURRENCY_LIMIT,
    DEFAULT_CONTEXT_UTILIZATION,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_WINDOW_WORDS,
    DEFAULT_MIN_BLOCK_CHARS,
    DEFAULT_MIN_WINDOW_WORDS,
    DEFAULT_RETRY_BACKOFF,
    DEFAULT_RETRY_BACKOFF_MAX,
    DEFAULT_STAGGER_CAP,
    DEFAULT_STAGGER_STEP,
    DEFAULT_TARGET_BATCH_WORDS,
    DEFAULT_WINDOW_OVERLAP,
    DEFAULT_WORDS_PER_TOKEN,
    INSTRUCTION_RESERVE_TOKENS,
    METADATA_RESERVE_TOKENS,
    RESPONSE_RESERVE_TOKENS,
)


class EnrichmentConfig(BaseConfig):
    """Tuning knobs for one run of the context-disambiguation pipeline."""

    # Segmentation
    min_block_chars: int = Field(default=DEFAULT_MIN_BLOCK_CHARS, ge=0)
    # Window planning
    # When None the context size is looked up from the model name
    context_tokens: int | None = Field(default=None, gt=0)
    context_utilization: float = Field(default=DEFAULT_CONTEXT_UTILIZATION, gt=0, le=1)
    words_per_token: float = Field(default=DEFAULT_WORDS_PER_TOKEN, gt=0)
    instruction_reserve_tokens: int = Field(default=INSTRUCTION_RESERVE_TOKENS, ge=0)
    metadata_reserve_tokens: int = Field(default=METADATA_RESERVE_TOKENS, ge=0)
    response_reserve_tokens: int = Field(default=RESPONSE_RESERVE_TOKENS, ge=0)
    min_window_words: int = Field(default=DEFAULT_MIN_WINDOW_WORDS, gt=0)
    max_window_words: int = Field(default=DEFAULT_MAX_WINDOW_WORDS, gt=0)
    overlap_fraction: float = Field(default=DEFAULT_WINDOW_OVERLAP, ge=0, lt=1)
    # Batching and dispatch
    target_batch_words: int = Field(default=DEFAULT_TARGET_BATCH_WORDS, gt=0)
    concurrency_limit: int = Field(default=DEFAULT_CONCURRENCY_LIMIT, gt=0)
    stagger_step: float = Field(default=DEFAULT_STAGGER_STEP, ge=0)
    stagger_cap: float = Field(default=DEFAULT_STAGGER_CAP, ge=0)
    # Retries
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    retry_backoff: float = Field(default=DEFAULT_RETRY_BACKOFF, ge=0)
    retry_backoff_max: float = Field(default=DEFAULT_RETRY_BACKOFF_MAX, ge=0)
    call_timeout: float = Field(default=DEFAULT_CALL_TIMEOUT, gt=0)

    @model_validator(mode="after")
    def validate_enrichment_config(self) -> "EnrichmentConfig":
        if self.min_window_words >= self.max_window_words:
            raise ValueError(
                "min_window_words must be less than max_window_words, "
                f"got min={self.min_window_words}, max={self.max_window_words}"
            )
        if self.retry_backoff_max < self.retry_backoff:
            raise ValueError(
                f"retry_backoff_max ({self.retry_backoff_max}) must not be below retry_backoff ({self.retry_backoff})"
            )
        return self

    @property
    def reserve_tokens(self) -> int:
        """Total tokens held back for instructions, metadata and the response."""
        return self.instruction_reserve_tokens + self.metadata_reserve_tokens + self.response_reserve_tokens
