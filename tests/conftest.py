"""
Shared fixtures: scripted providers and in-memory documents.
"""

import re
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from docstitch.capabilities import ProviderId
from docstitch.config import DocStitchConfig
from docstitch.llm_providers import LLMProvider
from docstitch.models import Heading

_ENV_KEYS = (
    "ANTHROPIC_API_KEY",
    "ANTHROPIC_BASE_URL",
    "ANTHROPIC_MODEL",
    "DOCSTITCH_BOUNDARY_DEPTH",
    "DOCSTITCH_COPYRIGHTED",
    "DOCSTITCH_DPI",
    "DOCSTITCH_EXTRACT_IMAGES",
    "DOCSTITCH_IMAGE_SIZE",
    "DOCSTITCH_LLM_PROVIDER",
    "DOCSTITCH_MAX_RETRIES",
    "DOCSTITCH_MAX_WORKERS",
    "DOCSTITCH_OUTPUT_DIR",
    "DOCSTITCH_PARALLEL",
    "DOCSTITCH_PIPELINE",
    "DOCSTITCH_PREFER_NATIVE_PDF",
    "DOCSTITCH_PRESERVE_FORMULAS",
    "DOCSTITCH_REQUEST_TIMEOUT",
    "DOCSTITCH_SUMMARY_MAX_CHARS",
    "DOCSTITCH_UNIT_TIMEOUT",
    "DOCSTITCH_WINDOW_SIZE",
    "DOCSTITCH_WINDOW_SLACK",
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "GROQ_API_KEY",
    "GROQ_VISION_MODEL",
    "OLLAMA_ENABLED",
    "OLLAMA_HOST",
    "OLLAMA_VISION_MODEL",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "OPENAI_VISION_MODEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep a developer's .env from leaking into config defaults."""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def h(level, text, page):
    return Heading(level=level, text=text, page=page)


class FakeProvider(LLMProvider):
    """Provider whose answers come from a callable; records every request."""

    def __init__(self, provider_id=ProviderId.CLAUDE, responder=None):
        super().__init__(model="fake-model")
        self.provider_id = provider_id
        self.responder = responder or (lambda prompt, images, document: "")
        self.calls = []

    def _generate(self, prompt, images, document, max_tokens):
        self.calls.append(
            {"prompt": prompt, "images": images, "document": document, "max_tokens": max_tokens}
        )
        return self.responder(prompt, images, document)

    def prompts_containing(self, marker):
        return [c["prompt"] for c in self.calls if marker in c["prompt"]]


class FakePDF:
    """Stands in for PDFDocument: every page has a running header and a page number."""

    def __init__(self, page_count, name="doc.pdf", header="ACME Annual Report", outline=None):
        self.page_count = page_count
        self.name = name
        self.header = header
        self.crops = []
        self._outline = list(outline or [])

    def page_text(self, page):
        return f"{self.header}\nBody text of page {page}.\n{page}\n"

    def render_page(self, page, dpi=150, max_size=None):
        return f"png-{page}".encode()

    def extract_page_range(self, start_page, end_page):
        return f"pdf-{start_page}-{end_page}".encode()

    def crop_region(self, page, bbox, dpi=150):
        self.crops.append((page, tuple(bbox)))
        return f"crop-{page}".encode()

    def to_bytes(self):
        return b"%PDF-fake"

    def outline(self):
        return list(self._outline)


def part_number(prompt):
    """Unit number announced in a conversion prompt's context block."""
    match = re.search(r"Part (\d+) of (\d+)", prompt)
    return int(match.group(1)) if match else None


def conversion_answer(content, summary="", last_paragraph="", images="{}", references=None):
    parts = [f"[CONTENT]\n{content}", f"[IMAGES]\n```json\n{images}\n```"]
    if references is not None:
        parts.append(f"[REFERENCES]\n```json\n{references}\n```")
    parts.append(f"[SUMMARY]\n{summary}")
    parts.append(f"[LAST_PARAGRAPH]\n{last_paragraph}")
    return "\n".join(parts)


@pytest.fixture
def make_config(tmp_path):
    def _make(**overrides):
        values = {"output_dir": str(tmp_path / "out"), "max_retries": 1}
        values.update(overrides)
        return DocStitchConfig(**values)

    return _make
