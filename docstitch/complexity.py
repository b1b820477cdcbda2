"""
Document complexity classification.

Scores a document from its analysis profile, its embedded outline and a few
sampled pages, and recommends how to convert it:

    direct  no structure pass; one call for the whole document when the
            provider reads PDFs natively, page by page otherwise
    light   structure pass, then fixed size windows
    full    structure pass, then section-aligned windows
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence

from .models import DocumentProfile, Heading, TextDensity


class ComplexityLevel(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class PipelineType(str, Enum):
    DIRECT = "direct"
    LIGHT = "light"
    FULL = "full"


MODERATE_THRESHOLD = 20
COMPLEX_THRESHOLD = 60

_SPARSE_CHARS = 500
_DENSE_CHARS = 2500

_NUMBERED_HEADING_RE = re.compile(r"^(\d+\.)+")
_CODE_RES = [
    re.compile(r"```[\s\S]*?```"),
    re.compile(r"\bdef\s+\w+\s*\("),
    re.compile(r"\bfunction\s+\w+\s*\("),
    re.compile(r"\bclass\s+\w+\s*[:{(]"),
    re.compile(r"</?[a-z][a-z0-9]*[^>]*>", re.IGNORECASE),
]
_MATH_RES = [
    re.compile(r"\\frac\{|\\sum|\\int|\\prod"),
    re.compile(r"[∑∫∏∂∇]"),
    re.compile(r"[α-ωΑ-Ω]"),
]


@dataclass(frozen=True)
class ComplexityFactors:
    page_count: int
    has_embedded_toc: bool
    estimated_images: int
    estimated_tables: int
    text_density: TextDensity
    structure_depth: int
    avg_chars_per_page: float
    has_code_blocks: bool
    has_math_formulas: bool


@dataclass(frozen=True)
class DocumentComplexity:
    level: ComplexityLevel
    score: int
    factors: ComplexityFactors
    pipeline: PipelineType
    reasoning: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            "level": self.level.value,
            "score": self.score,
            "pipeline": self.pipeline.value,
            "reasoning": list(self.reasoning),
        }


# ---------------------------------------------------------------------------
# Factors
# ---------------------------------------------------------------------------


def sample_page_numbers(total_pages: int, sample_size: int = 3) -> List[int]:
    """First, middle and last page, plus evenly spaced pages for larger samples."""
    if total_pages <= sample_size:
        return list(range(1, total_pages + 1))

    pages = {1, total_pages}
    if sample_size >= 3:
        pages.add(total_pages // 2)
    if sample_size > 3:
        step = max(total_pages // (sample_size - 1), 1)
        for page in range(step, total_pages, step):
            if len(pages) >= sample_size:
                break
            pages.add(page)
    return sorted(pages)[:sample_size]


def text_density(avg_chars_per_page: float) -> TextDensity:
    if avg_chars_per_page < _SPARSE_CHARS:
        return TextDensity.SPARSE
    if avg_chars_per_page > _DENSE_CHARS:
        return TextDensity.DENSE
    return TextDensity.NORMAL


def _estimate_structure_depth(texts: Sequence[str]) -> int:
    depth = 1
    for text in texts:
        for line in text.splitlines():
            match = _NUMBERED_HEADING_RE.match(line.strip())
            if match:
                depth = max(depth, match.group(0).count("."))
    return min(depth, 6)


def collect_factors(profile: DocumentProfile, pdf, outline: Sequence[Heading] = ()) -> ComplexityFactors:
    """Combine the analysis profile with what the PDF itself shows."""
    page_count = profile.page_count or pdf.page_count
    texts = [pdf.page_text(p) for p in sample_page_numbers(page_count)]
    avg_chars = sum(len(t) for t in texts) / len(texts) if texts else 0.0

    if outline:
        depth = max(h.level for h in outline)
    else:
        depth = _estimate_structure_depth(texts)

    sample = "\n".join(texts)
    return ComplexityFactors(
        page_count=page_count,
        has_embedded_toc=bool(outline),
        estimated_images=profile.estimated_images,
        estimated_tables=profile.estimated_tables,
        text_density=text_density(avg_chars),
        structure_depth=depth,
        avg_chars_per_page=avg_chars,
        has_code_blocks=profile.estimated_code_blocks > 0 or any(r.search(sample) for r in _CODE_RES),
        has_math_formulas=profile.has_math_formulas or any(r.search(sample) for r in _MATH_RES),
    )


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def complexity_score(factors: ComplexityFactors) -> int:
    """0-100; page count weighs most, then content, structure and density."""
    score = 0

    if factors.page_count > 100:
        score += 40
    elif factors.page_count > 50:
        score += 30
    elif factors.page_count > 20:
        score += 20
    elif factors.page_count > 5:
        score += 10
    else:
        score += 5

    if factors.has_embedded_toc:
        score += 10
    if factors.structure_depth > 4:
        score += 10
    elif factors.structure_depth > 2:
        score += 5

    if factors.estimated_images > 50:
        score += 12
    elif factors.estimated_images > 20:
        score += 8
    elif factors.estimated_images > 5:
        score += 4

    if factors.estimated_tables > 10:
        score += 10
    elif factors.estimated_tables > 3:
        score += 6
    elif factors.estimated_tables > 0:
        score += 3

    if factors.has_code_blocks:
        score += 4
    if factors.has_math_formulas:
        score += 4

    if factors.text_density is TextDensity.DENSE:
        score += 10
    elif factors.text_density is TextDensity.NORMAL:
        score += 5

    return min(score, 100)


def classify_factors(factors: ComplexityFactors) -> DocumentComplexity:
    score = complexity_score(factors)

    if factors.page_count <= 3 and factors.estimated_images <= 5 and not factors.has_embedded_toc:
        return DocumentComplexity(
            level=ComplexityLevel.SIMPLE,
            score=score,
            factors=factors,
            pipeline=PipelineType.DIRECT,
            reasoning=[f"Small document ({factors.page_count} pages) without an outline"],
        )

    if factors.has_embedded_toc and score < MODERATE_THRESHOLD:
        return DocumentComplexity(
            level=ComplexityLevel.MODERATE,
            score=score,
            factors=factors,
            pipeline=PipelineType.LIGHT,
            reasoning=["Embedded outline present, converting with structure"],
        )

    if score >= COMPLEX_THRESHOLD:
        reasoning = [f"High complexity score ({score}/100)"]
        if factors.page_count > 50:
            reasoning.append(f"Large document ({factors.page_count} pages)")
        if factors.estimated_images > 20:
            reasoning.append(f"Many images ({factors.estimated_images})")
        if factors.structure_depth > 3:
            reasoning.append(f"Deep heading hierarchy ({factors.structure_depth} levels)")
        return DocumentComplexity(ComplexityLevel.COMPLEX, score, factors, PipelineType.FULL, reasoning)

    if score >= MODERATE_THRESHOLD:
        return DocumentComplexity(
            ComplexityLevel.MODERATE,
            score,
            factors,
            PipelineType.LIGHT,
            [f"Moderate complexity score ({score}/100)"],
        )

    return DocumentComplexity(
        ComplexityLevel.SIMPLE,
        score,
        factors,
        PipelineType.DIRECT,
        [f"Low complexity score ({score}/100)"],
    )


def classify_complexity(profile: DocumentProfile, pdf, outline: Sequence[Heading] = ()) -> DocumentComplexity:
    """
    Classify a document and recommend a conversion pipeline.

    Args:
        profile: Profile from document analysis.
        pdf: Open document (page_text and page_count are used).
        outline: Headings from the PDF's embedded outline, if any.
    """
    return classify_factors(collect_factors(profile, pdf, outline))
