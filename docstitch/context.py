"""
Per-unit conversion context.

assemble_context() gathers everything a conversion call needs to know about
where it sits in the document: global facts, position, expected structure,
continuity from the previous unit and content-shape expectations. The result
is immutable and the continuity state it was built from is left untouched.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .models import (
    ContinuityState,
    DocumentProfile,
    Heading,
    PendingReference,
    Section,
    WindowSpec,
)
from .sections import flatten_forest, iter_sections


@dataclass(frozen=True)
class GlobalFacts:
    language: str
    total_pages: int
    header_pattern: Optional[str]
    footer_pattern: Optional[str]
    toc: Tuple[Heading, ...]


@dataclass(frozen=True)
class PositionFacts:
    unit_number: int
    total_units: int
    start_page: int
    end_page: int
    percent_complete: int


@dataclass(frozen=True)
class StructureFacts:
    sections_in_window: Tuple[Section, ...]
    expected_headings: Tuple[Heading, ...]
    current_section: Optional[str]
    continued_section: Optional[str]
    section_continues_after: bool


@dataclass(frozen=True)
class ContinuityFacts:
    previous_tail: str
    previous_summary: str
    pending_references: Tuple[PendingReference, ...]


@dataclass(frozen=True)
class ContentExpectations:
    estimated_images: int
    estimated_tables: int
    has_code_blocks: bool
    has_math_formulas: bool


@dataclass(frozen=True)
class ConversionContext:
    """Read-only input to one page or window conversion call."""

    global_facts: GlobalFacts
    position: PositionFacts
    structure: StructureFacts
    continuity: ContinuityFacts
    expectations: ContentExpectations

    @property
    def is_single_page(self) -> bool:
        return self.position.start_page == self.position.end_page


def assemble_context(
    window: WindowSpec,
    profile: DocumentProfile,
    state: ContinuityState,
    forest: Sequence[Section],
) -> ConversionContext:
    """
    Build the context for converting one window (or a single page).

    Args:
        window: The unit being converted.
        profile: Document profile from analysis.
        state: Continuity carried over from the previous unit.
        forest: Section forest of the whole document.

    Returns:
        An immutable ConversionContext.
    """
    toc = tuple(flatten_forest(forest))
    total_pages = profile.page_count or window.end_page

    expected = tuple(
        h for h in toc if window.start_page <= h.page <= window.end_page
    )

    current = None
    for section, _ in iter_sections(forest):
        if section.start_page <= window.start_page <= section.end_page:
            current = section

    pending = tuple(
        sorted(state.pending_references, key=lambda ref: (ref.kind.value, ref.id))
    )

    return ConversionContext(
        global_facts=GlobalFacts(
            language=profile.language,
            total_pages=total_pages,
            header_pattern=profile.header_pattern,
            footer_pattern=profile.footer_pattern,
            toc=toc,
        ),
        position=PositionFacts(
            unit_number=window.number,
            total_units=window.total,
            start_page=window.start_page,
            end_page=window.end_page,
            percent_complete=_percent(window.number, window.total),
        ),
        structure=StructureFacts(
            sections_in_window=tuple(window.sections_in_window),
            expected_headings=expected,
            current_section=current.title if current else None,
            continued_section=(
                window.continued_section.title if window.starts_mid_section else None
            ),
            section_continues_after=window.section_continues_after,
        ),
        continuity=ContinuityFacts(
            previous_tail=state.previous_tail,
            previous_summary=state.previous_summary,
            pending_references=pending,
        ),
        expectations=ContentExpectations(
            estimated_images=_scaled(profile.estimated_images, total_pages, window.page_count),
            estimated_tables=_scaled(profile.estimated_tables, total_pages, window.page_count),
            has_code_blocks=profile.estimated_code_blocks > 0,
            has_math_formulas=profile.has_math_formulas,
        ),
    )


def _percent(number: int, total: int) -> int:
    if total <= 0:
        return 100
    return int(math.floor(number * 100 / total + 0.5))


def _scaled(document_estimate: int, total_pages: int, window_pages: int) -> int:
    """Spread a whole-document estimate evenly over pages, rounding up."""
    if document_estimate <= 0:
        return 0
    return math.ceil(document_estimate / max(total_pages, 1) * window_pages)
