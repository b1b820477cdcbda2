"""
Configuration for docstitch.

All values are read from environment variables (or a .env file at the project
root). Any provider with an API key set counts as configured; with
DOCSTITCH_LLM_PROVIDER=auto the best of them is chosen per document.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()


def _env(key: str, default, cast: type = str):
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    if cast is bool:
        return raw.lower() in ("true", "1", "yes")
    if cast is int:
        return int(raw)
    if cast is float:
        return float(raw)
    return raw


VALID_PROVIDERS = ("auto", "claude", "gemini", "openai", "groq", "ollama")
VALID_PIPELINES = ("auto", "direct", "light", "full")


@dataclass
class DocStitchConfig:
    """Configuration for PDF-to-Markdown conversion."""

    # Output directory for generated Markdown files
    output_dir: str = field(
        default_factory=lambda: _env("DOCSTITCH_OUTPUT_DIR", "./output/markdown")
    )

    # Accepted values: auto | claude | gemini | openai | groq | ollama
    llm_provider: str = field(
        default_factory=lambda: _env("DOCSTITCH_LLM_PROVIDER", "auto")
    )

    # --- Anthropic Claude ---
    anthropic_api_key: Optional[str] = field(
        default_factory=lambda: _env("ANTHROPIC_API_KEY", None)
    )
    anthropic_base_url: str = field(
        default_factory=lambda: _env("ANTHROPIC_BASE_URL", "https://api.anthropic.com/v1")
    )
    anthropic_model: str = field(
        default_factory=lambda: _env("ANTHROPIC_MODEL", "claude-sonnet-4-5-20250929")
    )

    # --- Google Gemini ---
    gemini_api_key: Optional[str] = field(
        default_factory=lambda: _env("GEMINI_API_KEY", None)
    )
    gemini_model: str = field(
        default_factory=lambda: _env("GEMINI_MODEL", "gemini-2.5-flash")
    )

    # --- OpenAI (or any OpenAI-compatible proxy) ---
    openai_api_key: Optional[str] = field(
        default_factory=lambda: _env("OPENAI_API_KEY", None)
    )
    openai_base_url: str = field(
        default_factory=lambda: _env("OPENAI_BASE_URL", "https://api.openai.com/v1")
    )
    openai_model: str = field(
        default_factory=lambda: _env("OPENAI_VISION_MODEL", "gpt-4o-mini")
    )

    # --- Groq ---
    groq_api_key: Optional[str] = field(
        default_factory=lambda: _env("GROQ_API_KEY", None)
    )
    groq_model: str = field(
        default_factory=lambda: _env(
            "GROQ_VISION_MODEL", "meta-llama/llama-4-scout-17b-16e-instruct"
        )
    )

    # --- Ollama (local, no key; must be switched on explicitly) ---
    ollama_enabled: bool = field(
        default_factory=lambda: _env("OLLAMA_ENABLED", False, bool)
    )
    ollama_host: str = field(
        default_factory=lambda: _env("OLLAMA_HOST", "http://127.0.0.1:11434")
    )
    ollama_model: str = field(
        default_factory=lambda: _env("OLLAMA_VISION_MODEL", "llava")
    )

    # Render resolution for page images, and the maximum edge length they are
    # scaled down to before upload.
    dpi: int = field(default_factory=lambda: _env("DOCSTITCH_DPI", 150, int))
    image_size: int = field(
        default_factory=lambda: _env("DOCSTITCH_IMAGE_SIZE", 1568, int)
    )

    # When True, LaTeX syntax is requested for all mathematical expressions.
    preserve_formulas: bool = field(
        default_factory=lambda: _env("DOCSTITCH_PRESERVE_FORMULAS", True, bool)
    )

    # When True, figures located by the model are cropped and saved next to
    # the Markdown output.
    extract_images: bool = field(
        default_factory=lambda: _env("DOCSTITCH_EXTRACT_IMAGES", False, bool)
    )

    # Pages per window for providers that accept whole PDFs. Capped by the
    # provider's own page limit.
    window_size: int = field(
        default_factory=lambda: _env("DOCSTITCH_WINDOW_SIZE", 50, int)
    )
    # How far before the target cut a window may end to land on a section
    # boundary. 0 disables section-aligned cuts.
    window_slack: int = field(
        default_factory=lambda: _env("DOCSTITCH_WINDOW_SLACK", 10, int)
    )
    # Sections shallower than this tree depth are eligible cut points.
    boundary_depth: int = field(
        default_factory=lambda: _env("DOCSTITCH_BOUNDARY_DEPTH", 2, int)
    )

    # auto picks direct, light or full from the document's complexity.
    pipeline: str = field(
        default_factory=lambda: _env("DOCSTITCH_PIPELINE", "auto")
    )

    # Parallel mode drops continuity between units in exchange for latency.
    parallel_windows: bool = field(
        default_factory=lambda: _env("DOCSTITCH_PARALLEL", False, bool)
    )
    max_workers: int = field(
        default_factory=lambda: _env("DOCSTITCH_MAX_WORKERS", 4, int)
    )

    # Provider selection hints.
    prefer_native_pdf: bool = field(
        default_factory=lambda: _env("DOCSTITCH_PREFER_NATIVE_PDF", True, bool)
    )
    has_copyrighted_content: bool = field(
        default_factory=lambda: _env("DOCSTITCH_COPYRIGHTED", False, bool)
    )

    # Seconds. request_timeout applies to each HTTP call, unit_timeout to a
    # whole page/window conversion including retries.
    request_timeout: float = field(
        default_factory=lambda: _env("DOCSTITCH_REQUEST_TIMEOUT", 120.0, float)
    )
    unit_timeout: float = field(
        default_factory=lambda: _env("DOCSTITCH_UNIT_TIMEOUT", 600.0, float)
    )
    max_retries: int = field(
        default_factory=lambda: _env("DOCSTITCH_MAX_RETRIES", 3, int)
    )

    summary_max_chars: int = field(
        default_factory=lambda: _env("DOCSTITCH_SUMMARY_MAX_CHARS", 500, int)
    )

    def api_key_for(self, provider: str) -> Optional[str]:
        return {
            "claude": self.anthropic_api_key,
            "gemini": self.gemini_api_key,
            "openai": self.openai_api_key,
            "groq": self.groq_api_key,
        }.get(provider)

    def is_configured(self, provider: str) -> bool:
        if provider == "ollama":
            return self.ollama_enabled
        return bool(self.api_key_for(provider))

    def validate(self) -> None:
        """Raise ConfigurationError if the settings cannot drive a conversion."""
        if self.llm_provider not in VALID_PROVIDERS:
            raise ConfigurationError(
                f"Invalid DOCSTITCH_LLM_PROVIDER '{self.llm_provider}'. "
                f"Must be one of: {VALID_PROVIDERS}"
            )

        if self.llm_provider == "claude" and not self.anthropic_api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is required when DOCSTITCH_LLM_PROVIDER=claude")
        if self.llm_provider == "gemini" and not self.gemini_api_key:
            raise ConfigurationError("GEMINI_API_KEY is required when DOCSTITCH_LLM_PROVIDER=gemini")
        if self.llm_provider == "openai" and not self.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY is required when DOCSTITCH_LLM_PROVIDER=openai")
        if self.llm_provider == "groq" and not self.groq_api_key:
            raise ConfigurationError("GROQ_API_KEY is required when DOCSTITCH_LLM_PROVIDER=groq")
        if self.llm_provider == "ollama" and not self.ollama_enabled:
            raise ConfigurationError("OLLAMA_ENABLED=true is required when DOCSTITCH_LLM_PROVIDER=ollama")

        if self.llm_provider == "auto" and not any(
            self.is_configured(p) for p in VALID_PROVIDERS[1:]
        ):
            raise ConfigurationError(
                "No LLM provider is configured. Set one of ANTHROPIC_API_KEY, "
                "GEMINI_API_KEY, OPENAI_API_KEY, GROQ_API_KEY or OLLAMA_ENABLED."
            )

        if self.window_size < 1:
            raise ConfigurationError("DOCSTITCH_WINDOW_SIZE must be at least 1")
        if self.window_slack < 0:
            raise ConfigurationError("DOCSTITCH_WINDOW_SLACK must not be negative")
        if self.max_workers < 1:
            raise ConfigurationError("DOCSTITCH_MAX_WORKERS must be at least 1")
        if self.pipeline not in VALID_PIPELINES:
            raise ConfigurationError(
                f"Invalid DOCSTITCH_PIPELINE '{self.pipeline}'. Must be one of: {VALID_PIPELINES}"
            )
