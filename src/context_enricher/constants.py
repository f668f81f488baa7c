"""
Constants for the Context Enricher.

This module centralizes the magic numbers and configuration defaults used
throughout the enrichment pipeline.
"""

# =============================================================================
# Block Segmentation
# =============================================================================

# Minimum characters of real text (after stripping markup punctuation) for a
# block to be sent for enrichment
DEFAULT_MIN_BLOCK_CHARS = 30

# Key prefix and zero-padding width for eligible blocks (BLOCK_001, BLOCK_002, ...)
BLOCK_KEY_PREFIX = "BLOCK_"
BLOCK_KEY_WIDTH = 3

# Block types that are never sent to the model
PASS_THROUGH_BLOCK_TYPES = frozenset({"code"})


# =============================================================================
# Window Planning
# =============================================================================

DEFAULT_CONTEXT_UTILIZATION = 0.8
DEFAULT_WORDS_PER_TOKEN = 0.75
DEFAULT_MIN_WINDOW_WORDS = 1000
DEFAULT_MAX_WINDOW_WORDS = 5000
DEFAULT_WINDOW_OVERLAP = 0.5

# Token reserves subtracted from the usable context before converting to words
INSTRUCTION_RESERVE_TOKENS = 800
METADATA_RESERVE_TOKENS = 200
RESPONSE_RESERVE_TOKENS = 500

# Context window sizes (tokens), matched as substrings of the model name.
# Order matters: more specific names must come before their prefixes.
MODEL_CONTEXT_WINDOWS: tuple[tuple[str, int], ...] = (
    ("gpt-4o", 128000),
    ("gpt-4.1", 1000000),
    ("gpt-4-turbo", 128000),
    ("gpt-4", 8192),
    ("gpt-3.5-turbo", 16000),
    ("claude-3-5-haiku", 200000),
    ("claude-3-opus", 200000),
    ("claude-3-sonnet", 200000),
    ("claude-3-haiku", 200000),
    ("claude", 200000),
    ("gemini", 1000000),
    ("llama3.2", 128000),
    ("qwen2.5", 32768),
    ("mistral-large", 32768),
    ("mistral", 8192),
    ("codellama", 16000),
)
DEFAULT_CONTEXT_TOKENS = 8192


# =============================================================================
# Batching & Dispatch
# =============================================================================

DEFAULT_TARGET_BATCH_WORDS = 500
DEFAULT_CONCURRENCY_LIMIT = 10

# Start-time stagger per batch index, capped (seconds)
DEFAULT_STAGGER_STEP = 0.05
DEFAULT_STAGGER_CAP = 0.4


# =============================================================================
# Retry & Timeouts
# =============================================================================

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BACKOFF = 1.0  # seconds, doubled per attempt
DEFAULT_RETRY_BACKOFF_MAX = 10.0  # seconds
DEFAULT_CALL_TIMEOUT = 30.0  # seconds
DEFAULT_LOCAL_CALL_TIMEOUT = 120.0  # seconds, local models are slower

# Transport-level retries inside HTTP provider clients (429 / 5xx)
PROVIDER_TRANSPORT_ATTEMPTS = 3


# =============================================================================
# Provider Defaults
# =============================================================================

OLLAMA_DEFAULT_HOST = "http://localhost:11434"
OLLAMA_DEFAULT_MODEL = "qwen2.5:14b"
OLLAMA_KEEP_ALIVE = "10m"
OPENAI_BASE_URL = "https://api.openai.com/v1"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_API_VERSION = "2023-06-01"

LLM_DEFAULT_TEMPERATURE = 0.1
LLM_DEFAULT_TOP_P = 0.9
LLM_DEFAULT_MAX_TOKENS = 4000


# =============================================================================
# Metrics
# =============================================================================

# tiktoken encoding used to count cached-context tokens
TOKEN_ENCODING = "cl100k_base"

# Characters per token when no tokenizer is available
CHARS_PER_TOKEN_ESTIMATE = 4

# Maximum length for prompt previews in logs
PROMPT_PREVIEW_MAX_LENGTH = 200


# =============================================================================
# Configuration Files
# =============================================================================

CONFIG_DIR_NAME = ".context-enricher"
CONFIG_FILE_NAME = "config.json"
