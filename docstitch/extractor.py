"""
LLM-backed document extraction.

DocumentExtractor wraps one provider and turns its answers into docstitch
types: a DocumentProfile from analysis, a heading list from structure
extraction, and ConversionResults from page or window conversion. Provider
calls are retried with exponential backoff on rate limits.
"""

import math
import time
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

from .config import DocStitchConfig
from .context import ConversionContext
from .errors import ProviderError, ResponseParseError
from .llm_providers import LLMProvider
from .models import ConversionResult, DocumentProfile, Heading, ImageType, coerce_enum
from .postprocess import PAGE_NUMBER_PATTERN
from .prompts import (
    ANALYSIS_PROMPT,
    CLASSIFY_IMAGE_PROMPT,
    HEADINGS_PROMPT,
    SUMMARY_PROMPT,
    build_conversion_prompt,
)
from .response_parser import parse_conversion_response, parse_json_object

_ANALYSIS_TEXT_LIMIT = 30_000


# ---------------------------------------------------------------------------
# Text sampling
# ---------------------------------------------------------------------------


def sample_analysis_text(source, max_chars: int = _ANALYSIS_TEXT_LIMIT) -> str:
    """
    Text used to analyze a document without sending all of it.

    The first five pages, plus the middle and the last page when the document
    has more than ten. ``source`` needs ``page_count`` and ``page_text(page)``.
    """
    page_count = source.page_count
    pages = list(range(1, min(5, page_count) + 1))
    if page_count > 10:
        pages += [page_count // 2, page_count]

    parts = []
    for page in pages:
        parts.append(f"--- Page {page} ---\n{source.page_text(page).strip()}")
    return "\n\n".join(parts)[:max_chars]


def _sample_pages(page_count: int, sample_size: int) -> List[int]:
    return [math.ceil(i * page_count / (sample_size + 1)) for i in range(1, sample_size + 1)]


def _common_line(lines: Sequence[str]) -> Optional[str]:
    if len(lines) < 3:
        return None
    counts = {}
    for line in lines:
        counts[line] = counts.get(line, 0) + 1
    # Insertion order keeps the earliest sampled page first on ties.
    for line, count in counts.items():
        if count >= len(lines) * 0.5 and len(line) > 2:
            return line
    if all(line.isdigit() for line in lines):
        return PAGE_NUMBER_PATTERN
    return None


def detect_repeating_patterns(source) -> Tuple[Optional[str], Optional[str]]:
    """
    Find a running header and footer from the extractable page text.

    Up to seven evenly spaced pages are sampled. A first (or last) line shared
    by at least half of them is the header (or footer); lines that are all
    bare numbers yield the page-number pattern. Documents under five pages
    have neither.
    """
    page_count = source.page_count
    if page_count < 5:
        return None, None

    first_lines: List[str] = []
    last_lines: List[str] = []
    for page in _sample_pages(page_count, min(7, page_count)):
        lines = [line.strip() for line in source.page_text(page).split("\n") if line.strip()]
        if lines:
            first_lines.append(lines[0])
            if len(lines) > 1:
                last_lines.append(lines[-1])

    return _common_line(first_lines), _common_line(last_lines)


def _is_client_error(exc: ProviderError) -> bool:
    return exc.status_code is not None and 400 <= exc.status_code < 500 and not exc.is_rate_limit


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


class DocumentExtractor:
    """Runs analysis, structure extraction and conversion calls on one provider."""

    _BASE_DELAY_SECONDS = 2.0

    def __init__(self, provider: LLMProvider, config: Optional[DocStitchConfig] = None):
        self._provider = provider
        self._config = config or DocStitchConfig()

    @property
    def provider(self) -> LLMProvider:
        return self._provider

    def _can_send_document(self, pdf_bytes: Optional[bytes], page_count: int) -> bool:
        return pdf_bytes is not None and self._provider.capability.accepts_page_count(page_count)

    def analyze(
        self,
        pdf_bytes: Optional[bytes] = None,
        text: str = "",
        page_count: int = 0,
        images: Sequence[bytes] = (),
    ) -> DocumentProfile:
        """
        Profile a document.

        The PDF itself is sent when the provider reads PDFs natively and the
        page count fits; otherwise the sampled text (and any page images).

        Raises:
            ProviderError: the call failed after retries.
            ResponseParseError: the answer held no usable JSON.
        """
        use_document = self._can_send_document(pdf_bytes, page_count)
        sample = "" if use_document else f"\nDOCUMENT TEXT SAMPLE:\n{text}"
        prompt = ANALYSIS_PROMPT.format(page_count=page_count or "an unknown number of", sample=sample)

        raw = self._call_with_backoff(
            prompt,
            images=() if use_document else images,
            document=pdf_bytes if use_document else None,
            max_tokens=1024,
        )
        return DocumentProfile.from_dict(parse_json_object(raw), page_count=page_count)

    def extract_headings(
        self,
        profile: DocumentProfile,
        pdf_bytes: Optional[bytes] = None,
        text: str = "",
    ) -> List[Heading]:
        """
        Headings of the document in reading order.

        Levels are clamped to 1..6 and pages to the document's range; entries
        without text are dropped. The order of the answer is kept as is.
        """
        use_document = self._can_send_document(pdf_bytes, profile.page_count)
        sample = "" if use_document else f"\nDOCUMENT TEXT:\n{text}"
        prompt = HEADINGS_PROMPT.format(
            language=profile.language,
            page_count=profile.page_count,
            sample=sample,
        )
        raw = self._call_with_backoff(
            prompt, document=pdf_bytes if use_document else None, max_tokens=8192
        )
        data = parse_json_object(raw)

        headings: List[Heading] = []
        last_page = max(profile.page_count, 1)
        for item in data.get("headings") or []:
            if not isinstance(item, dict):
                continue
            title = str(item.get("text") or "").strip()
            if not title:
                continue
            try:
                level = int(item.get("level") or 1)
                page = int(item.get("page") or 1)
            except (TypeError, ValueError):
                continue
            headings.append(
                Heading(
                    level=min(max(level, 1), 6),
                    text=title,
                    page=min(max(page, 1), last_page),
                )
            )
        return headings

    def convert_page(self, png: bytes, context: ConversionContext) -> ConversionResult:
        """Convert one rendered page. Provider errors propagate."""
        prompt = build_conversion_prompt(context, self._config.preserve_formulas)
        raw = self._call_with_backoff(prompt, images=[png], max_tokens=8192)
        return parse_conversion_response(raw, page=context.position.start_page)

    def convert_window(self, pdf_bytes: bytes, context: ConversionContext) -> ConversionResult:
        """Convert a PDF excerpt holding the window's pages. Provider errors propagate."""
        prompt = build_conversion_prompt(context, self._config.preserve_formulas)
        raw = self._call_with_backoff(prompt, document=pdf_bytes, max_tokens=32000)
        result = parse_conversion_response(raw)

        # Image pages come back relative to the excerpt.
        offset = context.position.start_page - 1
        for image_id, info in list(result.images.items()):
            page = (info.page or 1) + offset
            result.images[image_id] = replace(info, page=min(page, context.position.end_page))
        return result

    def summarize(self, text: str, max_chars: Optional[int] = None) -> str:
        """Short summary of text; falls back to its tail when the call fails."""
        max_chars = max_chars or self._config.summary_max_chars
        if not text.strip():
            return ""
        try:
            summary = self._call_with_backoff(
                SUMMARY_PROMPT.format(max_chars=max_chars, text=text[-12000:]),
                max_tokens=512,
            ).strip()
        except ProviderError as exc:
            print(f"Summarization failed: {exc}")
            summary = ""
        return (summary or text.strip()[-max_chars:])[:max_chars]

    def classify_image(self, png: bytes) -> Tuple[ImageType, str]:
        """(type, description) of an image; (OTHER, "Image") when the call fails."""
        try:
            data = parse_json_object(self._call_with_backoff(CLASSIFY_IMAGE_PROMPT, images=[png], max_tokens=256))
        except (ProviderError, ResponseParseError) as exc:
            print(f"Image classification failed: {exc}")
            return ImageType.OTHER, "Image"
        return (
            coerce_enum(ImageType, data.get("type"), ImageType.OTHER),
            str(data.get("description") or "Image"),
        )

    def validate_connection(self) -> bool:
        """True if the provider answers a trivial prompt."""
        try:
            self._call_with_backoff("Reply with OK.", max_tokens=16)
            return True
        except ProviderError as exc:
            print(f"Connection check failed for {self._provider.capability.display_name}: {exc}")
            return False

    def _call_with_backoff(
        self,
        prompt: str,
        images: Sequence[bytes] = (),
        document: Optional[bytes] = None,
        max_tokens: int = 4096,
    ) -> str:
        attempts = max(self._config.max_retries, 1)

        for attempt in range(attempts):
            try:
                return self._provider.generate(prompt, images=images, document=document, max_tokens=max_tokens)
            except ProviderError as exc:
                if attempt == attempts - 1 or _is_client_error(exc):
                    raise
                if exc.is_rate_limit:
                    delay = self._BASE_DELAY_SECONDS * (2 ** attempt)
                    print(f"Rate limit hit, retrying in {delay:.1f}s ...")
                    time.sleep(delay)
                else:
                    time.sleep(1.0)

        raise ProviderError("No attempts were made", provider=self._provider.provider_id.value)
