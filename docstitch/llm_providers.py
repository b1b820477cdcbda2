"""
LLM provider abstraction.

Each provider implements the same interface: receive a text prompt plus
optional PNG page images or a whole PDF document, return the model's text
answer. Only providers whose capability says so accept a PDF document.
"""

import base64
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

import requests

from .capabilities import ProviderCapability, ProviderId, get_capability
from .errors import ConfigurationError, ProviderError


class LLMProvider(ABC):
    """Abstract base for the LLM backends used by docstitch."""

    provider_id: ProviderId

    def __init__(self, model: str, timeout: float = 120.0):
        self._model = model
        self._timeout = timeout

    @property
    def capability(self) -> ProviderCapability:
        return get_capability(self.provider_id)

    @property
    def model(self) -> str:
        return self._model

    def generate(
        self,
        prompt: str,
        images: Sequence[bytes] = (),
        document: Optional[bytes] = None,
        max_tokens: int = 4096,
    ) -> str:
        """
        Send one request and return the text of the answer.

        Args:
            prompt: Instruction text.
            images: PNG images, in order, placed after the prompt.
            document: Raw PDF bytes. Requires native PDF support.
            max_tokens: Output token budget.
        """
        if document is not None and not self.capability.supports_native_pdf:
            raise ProviderError(
                f"{self.capability.display_name} cannot read PDF documents directly",
                provider=self.provider_id.value,
            )
        return self._generate(prompt, list(images), document, max_tokens)

    @abstractmethod
    def _generate(
        self,
        prompt: str,
        images: List[bytes],
        document: Optional[bytes],
        max_tokens: int,
    ) -> str:
        """Provider-specific request."""

    def _post(self, url: str, payload: Dict, headers: Optional[Dict] = None) -> Dict:
        try:
            response = requests.post(
                url,
                headers={"Content-Type": "application/json", **(headers or {})},
                json=payload,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise ProviderError(
                f"{self.capability.display_name} request failed: {exc}",
                provider=self.provider_id.value,
            ) from exc

        if not response.ok:
            raise ProviderError(
                f"{self.capability.display_name} API error [{self._model}] "
                f"{response.status_code}: {response.text[:500]}",
                provider=self.provider_id.value,
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(
                f"{self.capability.display_name} returned a non-JSON body: {exc}",
                provider=self.provider_id.value,
                status_code=response.status_code,
            ) from exc
        if not isinstance(data, dict):
            raise self._malformed(data)
        return data

    def _malformed(self, data) -> ProviderError:
        return ProviderError(
            f"{self.capability.display_name} returned an unexpected payload: {str(data)[:200]}",
            provider=self.provider_id.value,
        )


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


class ClaudeProvider(LLMProvider):
    """Anthropic Claude via the Messages API; accepts PDFs as document blocks."""

    provider_id = ProviderId.CLAUDE
    _API_VERSION = "2023-06-01"

    def __init__(self, api_key: str, model: str, base_url: Optional[str] = None, timeout: float = 120.0):
        super().__init__(model, timeout)
        self._api_key = api_key
        self._base_url = (base_url or "https://api.anthropic.com/v1").rstrip("/")

    def _generate(self, prompt, images, document, max_tokens):
        content: List[Dict] = []
        if document is not None:
            content.append(
                {
                    "type": "document",
                    "source": {
                        "type": "base64",
                        "media_type": "application/pdf",
                        "data": _b64(document),
                    },
                }
            )
        for image in images:
            content.append(
                {
                    "type": "image",
                    "source": {"type": "base64", "media_type": "image/png", "data": _b64(image)},
                }
            )
        content.append({"type": "text", "text": prompt})

        data = self._post(
            f"{self._base_url}/messages",
            {
                "model": self._model,
                "max_tokens": max_tokens,
                "messages": [{"role": "user", "content": content}],
            },
            headers={"x-api-key": self._api_key, "anthropic-version": self._API_VERSION},
        )
        try:
            parts = [block.get("text", "") for block in data.get("content", []) if block.get("type") == "text"]
        except (AttributeError, TypeError):
            raise self._malformed(data) from None
        if not parts:
            raise ProviderError("Claude returned no text content", provider=self.provider_id.value)
        return "".join(parts)


class GeminiProvider(LLMProvider):
    """Google Gemini via the REST generateContent API."""

    provider_id = ProviderId.GEMINI
    _API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"

    def __init__(self, api_key: str, model: str, timeout: float = 120.0):
        super().__init__(model, timeout)
        self._api_key = api_key

    def _generate(self, prompt, images, document, max_tokens):
        parts: List[Dict] = [{"text": prompt}]
        for image in images:
            parts.append({"inline_data": {"mime_type": "image/png", "data": _b64(image)}})

        data = self._post(
            f"{self._API_BASE}/{self._model}:generateContent?key={self._api_key}",
            {
                "contents": [{"parts": parts}],
                "generationConfig": {"maxOutputTokens": max_tokens},
            },
        )

        try:
            candidates = data.get("candidates") or []
            if not candidates:
                reason = (data.get("promptFeedback") or {}).get("blockReason", "no candidates")
                raise ProviderError(f"Gemini returned no answer: {reason}", provider=self.provider_id.value)

            candidate = candidates[0]
            if candidate.get("finishReason") == "RECITATION":
                raise ProviderError(
                    "Gemini blocked the answer (RECITATION); the content may be copyrighted",
                    provider=self.provider_id.value,
                )
            texts = [p.get("text", "") for p in (candidate.get("content") or {}).get("parts", [])]
            return "".join(texts)
        except (AttributeError, KeyError, IndexError, TypeError):
            raise self._malformed(data) from None


class OpenAIProvider(LLMProvider):
    """OpenAI-compatible chat completions provider (custom base_url for proxies)."""

    provider_id = ProviderId.OPENAI

    def __init__(self, api_key: str, model: str, base_url: Optional[str] = None, timeout: float = 120.0):
        super().__init__(model, timeout)
        self._api_key = api_key
        self._base_url = (base_url or "https://api.openai.com/v1").rstrip("/")

    @property
    def _url(self) -> str:
        return f"{self._base_url}/chat/completions"

    def _generate(self, prompt, images, document, max_tokens):
        content: List[Dict] = [{"type": "text", "text": prompt}]
        for image in images:
            content.append(
                {"type": "image_url", "image_url": {"url": "data:image/png;base64," + _b64(image)}}
            )

        data = self._post(
            self._url,
            {
                "model": self._model,
                "messages": [{"role": "user", "content": content}],
                "max_tokens": max_tokens,
            },
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            raise self._malformed(data) from None


class GroqProvider(OpenAIProvider):
    """Groq (OpenAI-compatible chat completions endpoint)."""

    provider_id = ProviderId.GROQ

    def __init__(self, api_key: str, model: str, timeout: float = 120.0):
        super().__init__(api_key, model, "https://api.groq.com/openai/v1", timeout)


class OllamaProvider(LLMProvider):
    """Ollama local provider (uses the /api/generate endpoint)."""

    provider_id = ProviderId.OLLAMA

    def __init__(self, host: str, model: str, timeout: float = 180.0):
        super().__init__(model, timeout)
        self._host = host.rstrip("/")

    def _generate(self, prompt, images, document, max_tokens):
        payload: Dict = {
            "model": self._model,
            "prompt": prompt,
            "stream": False,
            "options": {"num_predict": max_tokens},
        }
        if images:
            payload["images"] = [_b64(image) for image in images]
        data = self._post(f"{self._host}/api/generate", payload)
        if not isinstance(data.get("response"), str):
            raise self._malformed(data)
        return data["response"]


def create_provider(provider_id: ProviderId, config) -> LLMProvider:
    """Factory: instantiate one provider from the settings in config."""
    try:
        provider_id = ProviderId(provider_id)
    except ValueError:
        raise ConfigurationError(f"Unsupported provider: '{provider_id}'") from None
    timeout = config.request_timeout

    if provider_id is ProviderId.CLAUDE:
        return ClaudeProvider(
            api_key=config.anthropic_api_key,
            model=config.anthropic_model,
            base_url=config.anthropic_base_url,
            timeout=timeout,
        )
    if provider_id is ProviderId.GEMINI:
        return GeminiProvider(api_key=config.gemini_api_key, model=config.gemini_model, timeout=timeout)
    if provider_id is ProviderId.OPENAI:
        return OpenAIProvider(
            api_key=config.openai_api_key,
            model=config.openai_model,
            base_url=config.openai_base_url,
            timeout=timeout,
        )
    if provider_id is ProviderId.GROQ:
        return GroqProvider(api_key=config.groq_api_key, model=config.groq_model, timeout=timeout)
    if provider_id is ProviderId.OLLAMA:
        return OllamaProvider(
            host=config.ollama_host,
            model=config.ollama_model,
            timeout=max(timeout, 180.0),
        )
    raise ConfigurationError(f"Unsupported provider: '{provider_id.value}'")
