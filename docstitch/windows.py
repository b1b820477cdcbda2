"""
Window planning.

Splits a document into contiguous page ranges for chunked conversion. Cuts
are made at the target size unless a shallow section boundary lies within the
configured slack before the cut, in which case the window ends just before
that section so it starts fresh in the next window.
"""

from typing import List, Sequence, Tuple

from .models import Section, WindowSpec
from .sections import iter_sections


def plan_windows(
    forest: Sequence[Section],
    total_pages: int,
    target_size: int,
    slack: int = 0,
    boundary_depth: int = 2,
) -> List[WindowSpec]:
    """
    Plan the processing windows for a document.

    Args:
        forest: Section forest from build_section_forest.
        total_pages: Page count of the document.
        target_size: Preferred number of pages per window.
        slack: How many pages a window may be shortened by to end on a
            section boundary. 0 always cuts at the target size.
        boundary_depth: Sections shallower than this tree depth count as
            boundaries (1 = root sections only).

    Returns:
        Windows in page order, covering [1, total_pages] without gaps.
    """
    if target_size < 1:
        raise ValueError(f"target_size must be at least 1, got {target_size}")
    if slack < 0:
        raise ValueError(f"slack must not be negative, got {slack}")
    if total_pages <= 0:
        return []

    ordered = list(iter_sections(forest))
    boundaries = sorted(
        {section.start_page for section, depth in ordered if depth < boundary_depth}
    )
    ranges = _cut_ranges(total_pages, target_size, slack, boundaries)

    windows: List[WindowSpec] = []
    for number, (start, end) in enumerate(ranges, start=1):
        in_window = [s for s, _ in ordered if s.overlaps(start, end)]

        # Pre-order puts the deepest open section last.
        continued = None
        for section, _ in ordered:
            if section.start_page < start <= section.end_page:
                continued = section

        windows.append(
            WindowSpec(
                number=number,
                total=len(ranges),
                start_page=start,
                end_page=end,
                sections_in_window=in_window,
                continued_section=continued,
                section_continues_after=any(s.end_page > end for s in in_window),
            )
        )
    return windows


def _cut_ranges(
    total_pages: int, target_size: int, slack: int, boundaries: List[int]
) -> List[Tuple[int, int]]:
    ranges: List[Tuple[int, int]] = []
    start = 1
    while start <= total_pages:
        end = min(start + target_size - 1, total_pages)
        if end < total_pages:
            # A section starting on page p lets the window end on p - 1.
            candidates = [
                page - 1
                for page in boundaries
                if start < page <= end + 1 and page - 1 >= end - slack
            ]
            if candidates:
                end = max(candidates)
        ranges.append((start, end))
        start = end + 1
    return ranges
