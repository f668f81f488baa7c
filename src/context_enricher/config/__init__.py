"""Configuration models, settings and loaders."""

from context_enricher.config.enrichment import EnrichmentConfig
from context_enricher.config.pydantic_config import BaseConfig, FrozenModel
from context_enricher.config.settings import Settings

__all__ = [
    "BaseConfig",
    "FrozenModel",
    "EnrichmentConfig",
    "Settings",
]
