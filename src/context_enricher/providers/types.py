"""Provider types and configuration."""

from enum import Enum
from typing import Optional

from pydantic import SecretStr, model_validator

from context_enricher.config.pydantic_config import BaseConfig
from context_enricher.constants import (
    ANTHROPIC_BASE_URL,
    DEFAULT_CALL_TIMEOUT,
    DEFAULT_LOCAL_CALL_TIMEOUT,
    OLLAMA_DEFAULT_HOST,
    OLLAMA_DEFAULT_MODEL,
    OPENAI_BASE_URL,
    OPENROUTER_BASE_URL,
)


class Provider(Enum):
    """Enumeration of supported AI providers."""

    OLLAMA = "ollama"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OPENROUTER = "openrouter"


DEFAULT_MODELS = {
    Provider.OLLAMA: OLLAMA_DEFAULT_MODEL,
    Provider.OPENAI: "gpt-4o",
    Provider.ANTHROPIC: "claude-3-5-haiku-20241022",
    Provider.OPENROUTER: "anthropic/claude-3.5-haiku",
}

DEFAULT_HOSTS = {
    Provider.OLLAMA: OLLAMA_DEFAULT_HOST,
    Provider.OPENAI: OPENAI_BASE_URL,
    Provider.ANTHROPIC: ANTHROPIC_BASE_URL,
    Provider.OPENROUTER: OPENROUTER_BASE_URL,
}


class ProviderConfig(BaseConfig):
    """Which provider and model to call, and how."""

    provider: Provider = Provider.OLLAMA
    model: Optional[str] = None
    host: Optional[str] = None
    api_key: Optional[SecretStr] = None
    timeout: Optional[float] = None

    @model_validator(mode="after")
    def _fill_provider_defaults(self) -> "ProviderConfig":
        """Fill model, host and timeout from provider defaults when not given."""
        if self.model is None:
            self.model = DEFAULT_MODELS[self.provider]
        if self.host is None:
            self.host = DEFAULT_HOSTS[self.provider]
        if self.timeout is None:
            self.timeout = DEFAULT_LOCAL_CALL_TIMEOUT if self.provider == Provider.OLLAMA else DEFAULT_CALL_TIMEOUT
        return self

    @property
    def requires_api_key(self) -> bool:
        return self.provider != Provider.OLLAMA

    def get_api_key(self) -> Optional[str]:
        return self.api_key.get_secret_value() if self.api_key else None
