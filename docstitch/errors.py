"""
Exception types raised by docstitch.

Only configuration problems are meant to reach the caller. Provider and parse
failures are caught at unit boundaries by the converter and turned into
degraded results so a document conversion always runs to the end.
"""

from typing import Optional


class DocStitchError(Exception):
    """Base class for all docstitch errors."""


class ConfigurationError(DocStitchError, ValueError):
    """Invalid settings, missing API keys, or no usable provider."""


class ProviderError(DocStitchError, RuntimeError):
    """An LLM provider call failed or returned an unusable payload."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code

    @property
    def is_rate_limit(self) -> bool:
        if self.status_code == 429:
            return True
        msg = str(self).lower()
        return "rate" in msg or "quota" in msg or "overloaded" in msg


class ResponseParseError(DocStitchError):
    """Model output did not contain the structured data we asked for."""
