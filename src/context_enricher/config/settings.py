"""Application settings using Pydantic Settings."""

import os

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application-wide settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    openai_api_key: SecretStr | None = Field(None, alias="OPENAI_API_KEY")
    anthropic_api_key: SecretStr | None = Field(None, alias="ANTHROPIC_API_KEY")
    openrouter_api_key: SecretStr | None = Field(None, alias="OPENROUTER_API_KEY")

    # Provider overrides, applied on top of config files
    ai_provider: str | None = Field(None, alias="AI_PROVIDER")
    ai_model: str | None = Field(None, alias="AI_MODEL")
    ai_host: str | None = Field(None, alias="AI_HOST")
    ai_timeout: float | None = Field(None, alias="AI_TIMEOUT")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    def get_api_key(self, provider: str) -> str | None:
        """Get the API key for a provider name.

        Args:
            provider: Provider name (openai, anthropic, or openrouter)

        Returns:
            API key string if found, None otherwise
        """
        key_map = {
            "openai": ("OPENAI_API_KEY", self.openai_api_key),
            "anthropic": ("ANTHROPIC_API_KEY", self.anthropic_api_key),
            "openrouter": ("OPENROUTER_API_KEY", self.openrouter_api_key),
        }
        env_name, secret_value = key_map.get(provider.lower(), (None, None))
        if secret_value:
            return secret_value.get_secret_value()
        if env_name:
            return os.getenv(env_name)
        return None
