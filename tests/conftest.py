#!/usr/bin/env python3
"""
Pytest configuration and fixtures for the test suite.
"""

import asyncio
import json
import os
import re
from typing import Callable, Optional
from unittest.mock import patch

import pytest

from context_enricher.config.enrichment import EnrichmentConfig
from context_enricher.providers.base import AsyncProviderClient

_PROMPT_BLOCKS_PATTERN = re.compile(r"```json\n(.*?)\n```", re.DOTALL)


@pytest.fixture(autouse=True)
def mock_api_keys():
    """Mock provider API keys for all tests."""
    with patch.dict(
        os.environ,
        {
            "OPENAI_API_KEY": "test-openai-key",
            "ANTHROPIC_API_KEY": "test-anthropic-key",
            "OPENROUTER_API_KEY": "test-api-key-12345",
        },
    ):
        yield


class WhitespaceEncoding:
    """Stand-in tiktoken encoding: one token per whitespace-separated word."""

    def encode(self, text: str) -> list[str]:
        return text.split()


@pytest.fixture(autouse=True)
def offline_tokenizer():
    """Keep tiktoken from downloading encodings during tests."""
    with patch("context_enricher.tokens.tiktoken.get_encoding", return_value=WhitespaceEncoding()):
        yield


def annotate_first_word(key: str, text: str) -> str:
    """Deterministic enhancement: a note after the first word."""
    first, _, rest = text.partition(" ")
    return f"{first} [[note {key}]] {rest}" if rest else f"{first} [[note {key}]]"


class FakeProvider(AsyncProviderClient):
    """In-memory provider that answers batch prompts deterministically.

    The blocks are read back from the JSON embedded in the user prompt.
    """

    def __init__(
        self,
        transform: Callable[[str, str], str] = annotate_first_word,
        omit_keys: tuple[str, ...] = (),
        error: Optional[Exception] = None,
        fail_times: int = 0,
        raw_responses: Optional[list[str]] = None,
        delay: float = 0.0,
        fail_prepare: bool = False,
    ):
        self.default_model = "fake-model"
        self.transform = transform
        self.omit_keys = set(omit_keys)
        self.error = error
        self.fail_times = fail_times
        self.raw_responses = list(raw_responses or [])
        self.delay = delay
        self.fail_prepare = fail_prepare

        self.requests: list[dict[str, str]] = []
        self.system_prompts: list[str] = []
        self.prepared_contexts: list[str] = []
        self.active = 0
        self.max_active = 0
        self.closed = False

    @property
    def calls(self) -> int:
        return len(self.requests)

    @property
    def requested_keys(self) -> list[list[str]]:
        return [list(blocks) for blocks in self.requests]

    async def prepare_context(self, context: str) -> None:
        if self.fail_prepare:
            raise ConnectionError("model could not be loaded")
        self.prepared_contexts.append(context)

    async def generate(self, messages: list[dict[str, str]], model: Optional[str] = None) -> str:
        system = next(m["content"] for m in messages if m["role"] == "system")
        user = next(m["content"] for m in messages if m["role"] == "user")
        blocks = json.loads(_PROMPT_BLOCKS_PATTERN.search(user).group(1))
        self.system_prompts.append(system)
        self.requests.append(blocks)

        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.active -= 1

        if self.error is not None and self.fail_times > 0:
            self.fail_times -= 1
            raise self.error
        if self.raw_responses:
            reply = self.raw_responses.pop(0)
        else:
            enhanced = {key: self.transform(key, text) for key, text in blocks.items() if key not in self.omit_keys}
            reply = json.dumps({"enhanced_blocks": enhanced})
        self.usage.record(prompt_tokens=len(user.split()), completion_tokens=len(reply.split()))
        return reply

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_provider():
    """Deterministic provider that annotates the first word of every block."""
    return FakeProvider()


@pytest.fixture
def fast_config():
    """Factory for EnrichmentConfig without stagger or backoff delays."""

    def _make(**overrides) -> EnrichmentConfig:
        values = {
            "stagger_step": 0.0,
            "stagger_cap": 0.0,
            "retry_backoff": 0.0,
            "retry_backoff_max": 0.0,
        }
        values.update(overrides)
        return EnrichmentConfig(**values)

    return _make


def make_text(words: int, prefix: str = "word") -> str:
    """A block of ``words`` distinct words."""
    return " ".join(f"{prefix}{i}" for i in range(words))
