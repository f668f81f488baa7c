"""Token counting for cached contexts, and per-provider token usage."""

from typing import Optional

import tiktoken
from loguru import logger

from context_enricher.constants import CHARS_PER_TOKEN_ESTIMATE, TOKEN_ENCODING
from context_enricher.models import TokenUsage


class TokenCounter:
    """Utility for counting tokens in text using tiktoken."""

    def __init__(self, encoding: str = TOKEN_ENCODING):
        """Initialize token counter with specified encoding.

        Args:
            encoding: The tiktoken encoding to use (default: cl100k_base)
        """
        try:
            self._tokenizer = tiktoken.get_encoding(encoding)
        except Exception as e:
            logger.warning(f"Could not load tiktoken encoding '{encoding}': {e}, using char/4 fallback")
            self._tokenizer = None

    def count(self, text: str) -> int:
        """Count approximate number of tokens in text.

        Args:
            text: The text to count tokens for

        Returns:
            The approximate number of tokens
        """
        if self._tokenizer is None:
            return len(text) // CHARS_PER_TOKEN_ESTIMATE
        try:
            return len(self._tokenizer.encode(text))
        except Exception as e:
            logger.warning(f"Token counting error: {e}, using char/4 fallback")
            return len(text) // CHARS_PER_TOKEN_ESTIMATE


class UsageTracker:
    """Accumulates the token usage providers report for their responses."""

    def __init__(self) -> None:
        self._prompt_tokens = 0
        self._completion_tokens = 0
        self._cached_tokens = 0
        self._requests = 0

    def record(self, prompt_tokens: int = 0, completion_tokens: int = 0, cached_tokens: int = 0) -> None:
        self._prompt_tokens += prompt_tokens
        self._completion_tokens += completion_tokens
        self._cached_tokens += cached_tokens
        self._requests += 1

    def snapshot(self, since: Optional[TokenUsage] = None) -> TokenUsage:
        """Usage so far, or the usage added after ``since`` was taken."""
        usage = TokenUsage(
            prompt_tokens=self._prompt_tokens,
            completion_tokens=self._completion_tokens,
            cached_tokens=self._cached_tokens,
            requests=self._requests,
        )
        if since is None:
            return usage
        return TokenUsage(
            prompt_tokens=usage.prompt_tokens - since.prompt_tokens,
            completion_tokens=usage.completion_tokens - since.completion_tokens,
            cached_tokens=usage.cached_tokens - since.cached_tokens,
            requests=usage.requests - since.requests,
        )
