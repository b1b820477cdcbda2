"""
Provider selection.

select_provider() is a pure policy function over a document profile and the
capabilities of the configured providers. ProviderRegistry wraps it with the
configuration lookup and a per-instance provider cache; callers construct one
and pass it where it is needed.
"""

from typing import Dict, Iterable, List, Optional

from .capabilities import (
    DEFAULT_PRIORITY,
    ProviderCapability,
    ProviderId,
    estimate_cost,
    get_capability,
)
from .config import DocStitchConfig
from .errors import ConfigurationError
from .llm_providers import LLMProvider, create_provider
from .models import DocumentProfile


def _by_priority(capabilities: Iterable[ProviderCapability]) -> List[ProviderCapability]:
    unique = {cap.provider: cap for cap in capabilities}
    return [unique[pid] for pid in DEFAULT_PRIORITY if pid in unique]


def select_provider(
    profile: DocumentProfile,
    configured: Iterable[ProviderCapability],
    prefer_native_pdf: bool = False,
) -> Optional[ProviderId]:
    """
    Choose the provider best suited to a document.

    Rules, first match wins:
        1. nothing configured -> None
        2. exactly one configured -> that one
        3. copyrighted content -> first provider without a content filter
        4. native PDF preferred -> first native provider whose page limit fits
        5. page count beyond every native page limit -> first large-context provider
        6. default priority order

    Candidates are always considered in DEFAULT_PRIORITY order, so the result
    does not depend on the order of ``configured``.
    """
    candidates = _by_priority(configured)
    if not candidates:
        return None
    if len(candidates) == 1:
        return candidates[0].provider

    if profile.has_copyrighted_content:
        for cap in candidates:
            if not cap.has_content_filter:
                return cap.provider

    if prefer_native_pdf:
        for cap in candidates:
            if cap.accepts_page_count(profile.page_count):
                return cap.provider

    native = [cap for cap in candidates if cap.supports_native_pdf]
    if all(not cap.accepts_page_count(profile.page_count) for cap in native):
        for cap in candidates:
            if cap.has_large_context:
                return cap.provider

    return candidates[0].provider


class ProviderRegistry:
    """Configured providers for one caller, with lazily created instances."""

    def __init__(self, config: Optional[DocStitchConfig] = None):
        self._config = config or DocStitchConfig()
        self._instances: Dict[ProviderId, LLMProvider] = {}

    @property
    def config(self) -> DocStitchConfig:
        return self._config

    def configured_providers(self) -> List[ProviderId]:
        return [pid for pid in DEFAULT_PRIORITY if self._config.is_configured(pid.value)]

    def configured_capabilities(self) -> List[ProviderCapability]:
        return [get_capability(pid) for pid in self.configured_providers()]

    def is_configured(self, provider: ProviderId) -> bool:
        return self._config.is_configured(ProviderId(provider).value)

    def get(self, provider: ProviderId) -> LLMProvider:
        provider = ProviderId(provider)
        if not self.is_configured(provider):
            raise ConfigurationError(f"Provider '{provider.value}' is not configured")
        if provider not in self._instances:
            self._instances[provider] = create_provider(provider, self._config)
        return self._instances[provider]

    def register(self, provider: LLMProvider) -> None:
        """Use an already built provider instance for its provider id."""
        self._instances[provider.provider_id] = provider

    def best_for(
        self, profile: DocumentProfile, prefer_native_pdf: Optional[bool] = None
    ) -> Optional[ProviderId]:
        """
        Provider to use for a document.

        An explicit DOCSTITCH_LLM_PROVIDER wins over the selection policy.
        """
        if self._config.llm_provider != "auto":
            return ProviderId(self._config.llm_provider)
        if prefer_native_pdf is None:
            prefer_native_pdf = self._config.prefer_native_pdf
        return select_provider(profile, self.configured_capabilities(), prefer_native_pdf)

    def provider_info(self, page_count: int = 0, complexity: float = 0.5) -> List[Dict]:
        """Summary of every known provider, for listings and cost previews."""
        info = []
        for pid in DEFAULT_PRIORITY:
            cap = get_capability(pid)
            info.append(
                {
                    "id": pid.value,
                    "name": cap.display_name,
                    "configured": self.is_configured(pid),
                    "native_pdf": cap.supports_native_pdf,
                    "max_pdf_pages": cap.max_pdf_pages,
                    "max_context_tokens": cap.max_context_tokens,
                    "content_filter": cap.has_content_filter,
                    "estimated_cost": round(estimate_cost(cap, page_count, complexity), 4),
                }
            )
        return info

    def reset(self) -> None:
        """Drop cached provider instances, e.g. after changing API keys."""
        self._instances.clear()
