"""
docstitch - LLM-driven PDF to Markdown conversion, window by window.
"""

from .capabilities import CAPABILITIES, ProviderCapability, ProviderId, estimate_cost
from .complexity import DocumentComplexity, PipelineType, classify_complexity
from .config import DocStitchConfig
from .context import ConversionContext, assemble_context
from .continuity import degraded_result, fold_continuity
from .converter import DocumentResult, PDFToMarkdownConverter
from .errors import ConfigurationError, DocStitchError, ProviderError, ResponseParseError
from .llm_providers import LLMProvider, create_provider
from .models import (
    ContinuityState,
    ConversionResult,
    DocumentProfile,
    Heading,
    ImageInfo,
    PendingReference,
    Section,
    WindowSpec,
)
from .sections import build_section_forest
from .selector import ProviderRegistry, select_provider
from .windows import plan_windows

__all__ = [
    "CAPABILITIES",
    "ConfigurationError",
    "ContinuityState",
    "ConversionContext",
    "ConversionResult",
    "DocStitchConfig",
    "DocStitchError",
    "DocumentComplexity",
    "DocumentProfile",
    "DocumentResult",
    "Heading",
    "ImageInfo",
    "LLMProvider",
    "PDFToMarkdownConverter",
    "PendingReference",
    "PipelineType",
    "ProviderCapability",
    "ProviderError",
    "ProviderId",
    "ProviderRegistry",
    "ResponseParseError",
    "Section",
    "WindowSpec",
    "assemble_context",
    "build_section_forest",
    "classify_complexity",
    "create_provider",
    "degraded_result",
    "estimate_cost",
    "fold_continuity",
    "plan_windows",
    "select_provider",
]
