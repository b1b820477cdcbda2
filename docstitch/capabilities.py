"""
Static capability descriptors for the supported LLM providers.

The set of providers is closed: every ProviderId has exactly one descriptor,
resolved at import time. Selection policy lives in selector.py.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


class ProviderId(str, Enum):
    CLAUDE = "claude"
    GEMINI = "gemini"
    OPENAI = "openai"
    GROQ = "groq"
    OLLAMA = "ollama"


@dataclass(frozen=True)
class ProviderCapability:
    """Limits and behaviour of one provider backend."""

    provider: ProviderId
    display_name: str
    supports_native_pdf: bool
    # None means the provider has no page limit of its own.
    max_pdf_pages: Optional[int]
    max_image_bytes: int
    max_context_tokens: int
    # Providers that refuse to reproduce copyrighted text (e.g. RECITATION blocks).
    has_content_filter: bool
    image_formats: Tuple[str, ...] = ("image/png", "image/jpeg")
    # USD per million tokens.
    input_cost_per_mtok: float = 0.0
    output_cost_per_mtok: float = 0.0

    def accepts_page_count(self, page_count: int) -> bool:
        """True if a native PDF of this many pages can be sent in one call."""
        if not self.supports_native_pdf:
            return False
        return self.max_pdf_pages is None or page_count <= self.max_pdf_pages

    @property
    def has_large_context(self) -> bool:
        return self.max_context_tokens >= LARGE_CONTEXT_TOKENS


LARGE_CONTEXT_TOKENS = 1_000_000

_COMMON_FORMATS = ("image/jpeg", "image/png", "image/gif", "image/webp")

CAPABILITIES: Dict[ProviderId, ProviderCapability] = {
    ProviderId.CLAUDE: ProviderCapability(
        provider=ProviderId.CLAUDE,
        display_name="Claude (Anthropic)",
        supports_native_pdf=True,
        max_pdf_pages=100,
        max_image_bytes=20 * 1024 * 1024,
        max_context_tokens=200_000,
        has_content_filter=False,
        image_formats=_COMMON_FORMATS,
        input_cost_per_mtok=3.0,
        output_cost_per_mtok=15.0,
    ),
    ProviderId.GEMINI: ProviderCapability(
        provider=ProviderId.GEMINI,
        display_name="Gemini (Google)",
        supports_native_pdf=False,
        max_pdf_pages=None,
        max_image_bytes=20 * 1024 * 1024,
        max_context_tokens=2_000_000,
        has_content_filter=True,
        image_formats=_COMMON_FORMATS,
        input_cost_per_mtok=0.075,
        output_cost_per_mtok=0.30,
    ),
    ProviderId.OPENAI: ProviderCapability(
        provider=ProviderId.OPENAI,
        display_name="OpenAI",
        supports_native_pdf=False,
        max_pdf_pages=None,
        max_image_bytes=20 * 1024 * 1024,
        max_context_tokens=128_000,
        has_content_filter=False,
        image_formats=_COMMON_FORMATS,
        input_cost_per_mtok=0.15,
        output_cost_per_mtok=0.60,
    ),
    ProviderId.GROQ: ProviderCapability(
        provider=ProviderId.GROQ,
        display_name="Groq",
        supports_native_pdf=False,
        max_pdf_pages=None,
        max_image_bytes=4 * 1024 * 1024,
        max_context_tokens=128_000,
        has_content_filter=False,
        input_cost_per_mtok=0.11,
        output_cost_per_mtok=0.34,
    ),
    ProviderId.OLLAMA: ProviderCapability(
        provider=ProviderId.OLLAMA,
        display_name="Ollama (local)",
        supports_native_pdf=False,
        max_pdf_pages=None,
        max_image_bytes=20 * 1024 * 1024,
        max_context_tokens=32_768,
        has_content_filter=False,
    ),
}

# Fallback order when no policy rule prefers a specific provider.
DEFAULT_PRIORITY: Tuple[ProviderId, ...] = (
    ProviderId.CLAUDE,
    ProviderId.GEMINI,
    ProviderId.OPENAI,
    ProviderId.GROQ,
    ProviderId.OLLAMA,
)


def get_capability(provider: ProviderId) -> ProviderCapability:
    return CAPABILITIES[ProviderId(provider)]


def estimate_cost(
    capability: ProviderCapability, page_count: int, complexity: float = 0.5
) -> float:
    """
    Rough USD cost of converting a document.

    Args:
        capability: Descriptor of the provider doing the conversion.
        page_count: Number of pages to convert.
        complexity: 0.0 (plain text) to 1.0 (dense tables and figures).

    Returns:
        Estimated cost in USD.
    """
    complexity = min(max(complexity, 0.0), 1.0)
    input_tokens = page_count * (2000 + complexity * 1000)
    output_tokens = page_count * (1000 + complexity * 500)
    return (
        input_tokens / 1_000_000 * capability.input_cost_per_mtok
        + output_tokens / 1_000_000 * capability.output_cost_per_mtok
    )
