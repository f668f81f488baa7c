"""
Layered provider configuration.

Sources are merged lowest to highest priority:

1. Provider defaults
2. Global config file (``~/.context-enricher/config.json``)
3. Project config file (``<project>/.context-enricher/config.json``)
4. Environment variables (``AI_PROVIDER``, ``AI_MODEL``, ``AI_HOST``, ``AI_TIMEOUT``)
5. Explicit overrides (CLI flags)

Config files hold the provider settings under an ``"ai"`` key.
"""

import json
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from context_enricher.config.settings import Settings
from context_enricher.constants import CONFIG_DIR_NAME, CONFIG_FILE_NAME
from context_enricher.providers.types import Provider, ProviderConfig

# Shortcut presets selectable from the command line
PROVIDER_PRESETS: dict[str, dict[str, Any]] = {
    "haiku": {"provider": "anthropic", "model": "claude-3-5-haiku-20241022", "timeout": 20.0},
    "gpt4o": {"provider": "openai", "model": "gpt-4o", "timeout": 30.0},
    "ollama": {"provider": "ollama", "host": "http://localhost:11434", "model": "qwen2.5:14b", "timeout": 20.0},
}


def _load_ai_section(path: Path) -> dict[str, Any]:
    """Read the ``ai`` section of a JSON config file, or an empty dict."""
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable config file {path}: {e}")
        return {}
    section = data.get("ai") if isinstance(data, dict) else None
    if not isinstance(section, dict):
        return {}
    logger.debug(f"Loaded AI config from {path}")
    return section


def load_provider_config(
    project_root: Optional[Path] = None,
    settings: Optional[Settings] = None,
    overrides: Optional[dict[str, Any]] = None,
    home: Optional[Path] = None,
) -> ProviderConfig:
    """
    Build a ProviderConfig from config files, environment and overrides.

    Args:
        project_root: Directory holding the project-level config dir (defaults to cwd)
        settings: Settings instance (created from the environment when None)
        overrides: Highest-priority values, e.g. from CLI flags. None values are ignored.
        home: Home directory for the global config (defaults to the user's home)

    Returns:
        ProviderConfig: The merged configuration, with the API key resolved

    Raises:
        ValueError: If the provider name is unknown or a required API key is missing
    """
    settings = settings or Settings()
    project_root = project_root or Path.cwd()
    home = home or Path.home()

    merged: dict[str, Any] = {}
    merged.update(_load_ai_section(home / CONFIG_DIR_NAME / CONFIG_FILE_NAME))
    merged.update(_load_ai_section(project_root / CONFIG_DIR_NAME / CONFIG_FILE_NAME))

    env_values = {
        "provider": settings.ai_provider,
        "model": settings.ai_model,
        "host": settings.ai_host,
        "timeout": settings.ai_timeout,
    }
    merged.update({key: value for key, value in env_values.items() if value is not None})
    merged.update({key: value for key, value in (overrides or {}).items() if value is not None})

    provider_name = str(merged.pop("provider", Provider.OLLAMA.value)).lower()
    try:
        provider = Provider(provider_name)
    except ValueError as e:
        valid = ", ".join(p.value for p in Provider)
        raise ValueError(f"Unknown provider '{provider_name}'. Expected one of: {valid}") from e

    # Older config files used milliseconds
    timeout = merged.get("timeout")
    if timeout is not None and float(timeout) > 1000:
        merged["timeout"] = float(timeout) / 1000

    api_key = merged.pop("api_key", None) or merged.pop("apiKey", None) or settings.get_api_key(provider.value)

    config = ProviderConfig(
        provider=provider,
        model=merged.get("model"),
        host=merged.get("host"),
        api_key=api_key,
        timeout=merged.get("timeout"),
    )

    if config.requires_api_key and not config.get_api_key():
        msg = f"Missing API key for provider '{provider.value}'"
        logger.error(msg)
        raise ValueError(msg)

    logger.info(f"Provider config: provider={config.provider.value}, model={config.model}, host={config.host}")
    return config
