"""Context Enricher: validated LLM context disambiguation for RAG-ready markdown."""

from context_enricher.config import EnrichmentConfig
from context_enricher.exceptions import (
    CallTimeoutError,
    EnrichmentError,
    InvalidResponseShapeError,
    ProviderError,
    ReassemblyError,
    SessionNotFoundError,
    SessionSetupError,
)
from context_enricher.models import (
    DocumentMetadata,
    EnhancedBlock,
    EnrichmentReport,
    EnrichmentResult,
    PipelineState,
    TokenUsage,
)
from context_enricher.pipeline import ContextEnrichmentPipeline, enhance_document
from context_enricher.session import EnrichmentSession, SessionRegistry
from context_enricher.validation import ValidationResult, validate_enhancement

__version__ = "0.1.0"

__all__ = [
    "CallTimeoutError",
    "ContextEnrichmentPipeline",
    "DocumentMetadata",
    "EnhancedBlock",
    "EnrichmentConfig",
    "EnrichmentError",
    "EnrichmentReport",
    "EnrichmentResult",
    "EnrichmentSession",
    "InvalidResponseShapeError",
    "PipelineState",
    "ProviderError",
    "ReassemblyError",
    "SessionNotFoundError",
    "SessionRegistry",
    "SessionSetupError",
    "TokenUsage",
    "ValidationResult",
    "enhance_document",
    "validate_enhancement",
]
