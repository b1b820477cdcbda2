"""
Section tree reconstruction.

Turns the flat, ordered heading list reported by structure extraction into a
forest of nested sections with page ranges. Headings are processed strictly in
list order; page numbers are never used to reorder or repair them.

A section ends on the page before the next heading (in list order) of the same
or a higher level, or on the last page of the document if there is none.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Sequence, Tuple

from .models import Heading, Section


@dataclass
class _OpenSection:
    heading: Heading
    end_page: int
    children: List["_OpenSection"] = field(default_factory=list)

    def freeze(self) -> Section:
        return Section(
            title=self.heading.text,
            level=self.heading.level,
            start_page=self.heading.page,
            end_page=self.end_page,
            children=tuple(child.freeze() for child in self.children),
        )


def build_section_forest(headings: Sequence[Heading], total_pages: int) -> List[Section]:
    """
    Build the section forest for a document.

    Args:
        headings: Headings in document order (not necessarily page order).
        total_pages: Page count of the document; closes the last section.

    Returns:
        Root sections in input order, each with nested children. The sections
        are frozen; this is the only place their page ranges are decided.
    """
    roots: List[_OpenSection] = []
    stack: List[_OpenSection] = []

    for heading in headings:
        section = _OpenSection(heading=heading, end_page=total_pages)

        # Close off siblings and anything deeper; only strict ancestors stay.
        # The heading that closes a section is the next one in list order at
        # the same or a higher level, so it also fixes where that section ends.
        while stack and stack[-1].heading.level >= heading.level:
            stack.pop().end_page = heading.page - 1

        if stack:
            stack[-1].children.append(section)
        else:
            roots.append(section)

        stack.append(section)

    return [root.freeze() for root in roots]


def iter_sections(forest: Sequence[Section]) -> Iterator[Tuple[Section, int]]:
    """Yield (section, depth) pairs in pre-order; roots have depth 0."""
    pending = [(section, 0) for section in reversed(forest)]
    while pending:
        section, depth = pending.pop()
        yield section, depth
        pending.extend((child, depth + 1) for child in reversed(section.children))


def flatten_forest(forest: Sequence[Section]) -> List[Heading]:
    """Project the forest back onto a heading list (the document's TOC)."""
    return [
        Heading(level=section.level, text=section.title, page=section.start_page)
        for section, _ in iter_sections(forest)
    ]


def find_page_anomalies(forest: Sequence[Section]) -> List[str]:
    """
    Describe every section whose page range is inconsistent.

    Two cases are reported: inverted ranges (end before start, caused by
    non-monotonic heading pages) and children that reach outside their
    parent's range. Nothing is corrected.
    """
    problems: List[str] = []

    def _visit(section: Section) -> None:
        if section.is_inverted:
            problems.append(
                f"Section '{section.title}' ends on page {section.end_page} "
                f"before it starts on page {section.start_page}"
            )
        for child in section.children:
            if child.start_page < section.start_page or child.end_page > section.end_page:
                problems.append(
                    f"Section '{child.title}' (pages {child.start_page}-{child.end_page}) "
                    f"is outside its parent '{section.title}' "
                    f"(pages {section.start_page}-{section.end_page})"
                )
            _visit(child)

    for root in forest:
        _visit(root)
    return problems


def headings_by_page(headings: Sequence[Heading]) -> Dict[int, List[Heading]]:
    index: Dict[int, List[Heading]] = {}
    for heading in headings:
        index.setdefault(heading.page, []).append(heading)
    return index


def max_depth(forest: Sequence[Section]) -> int:
    """Number of nesting levels in the forest (0 for an empty forest)."""
    return max((depth + 1 for _, depth in iter_sections(forest)), default=0)
