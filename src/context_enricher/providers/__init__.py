"""AI provider clients."""

from context_enricher.providers.anthropic import AsyncAnthropicClient
from context_enricher.providers.base import AsyncHTTPProviderClient, AsyncProviderClient
from context_enricher.providers.ollama import AsyncOllamaClient
from context_enricher.providers.openai_client import AsyncOpenAICompatibleClient
from context_enricher.providers.types import DEFAULT_HOSTS, DEFAULT_MODELS, Provider, ProviderConfig

OPENROUTER_HEADERS = {
    "HTTP-Referer": "https://github.com/context-enricher",
    "X-Title": "Context Enricher",
}


def create_provider_client(config: ProviderConfig) -> AsyncProviderClient:
    """
    Build the async client for a provider configuration.

    Args:
        config: Resolved provider configuration

    Returns:
        AsyncProviderClient: A client ready for ``generate`` calls

    Raises:
        ValueError: If the provider needs an API key and none is configured
    """
    api_key = config.get_api_key()
    if config.requires_api_key and not api_key:
        raise ValueError(f"No API key configured for provider {config.provider.value}")

    if config.provider == Provider.OLLAMA:
        return AsyncOllamaClient(default_model=config.model, host=config.host, timeout=config.timeout)
    if config.provider == Provider.ANTHROPIC:
        return AsyncAnthropicClient(
            api_key=api_key, default_model=config.model, base_url=config.host, timeout=config.timeout
        )
    if config.provider == Provider.OPENROUTER:
        return AsyncOpenAICompatibleClient(
            api_key=api_key,
            default_model=config.model,
            base_url=config.host,
            timeout=config.timeout,
            extra_headers=OPENROUTER_HEADERS,
        )
    return AsyncOpenAICompatibleClient(
        api_key=api_key, default_model=config.model, base_url=config.host, timeout=config.timeout
    )


__all__ = [
    "AsyncAnthropicClient",
    "AsyncHTTPProviderClient",
    "AsyncOllamaClient",
    "AsyncOpenAICompatibleClient",
    "AsyncProviderClient",
    "DEFAULT_HOSTS",
    "DEFAULT_MODELS",
    "Provider",
    "ProviderConfig",
    "create_provider_client",
]
