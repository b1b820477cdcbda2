"""
Data model shared by the docstitch core and its collaborators.

Headings, sections, the document profile and the per-unit context are
immutable once created. Windows hold references to sections, not copies.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


class ContentType(str, Enum):
    INVOICE = "invoice"
    REPORT = "report"
    MANUAL = "manual"
    ACADEMIC = "academic"
    FORM = "form"
    OTHER = "other"


class TextDensity(str, Enum):
    SPARSE = "sparse"
    NORMAL = "normal"
    DENSE = "dense"


class ImageType(str, Enum):
    PHOTO = "photo"
    DIAGRAM = "diagram"
    CHART = "chart"
    LOGO = "logo"
    ICON = "icon"
    SCREENSHOT = "screenshot"
    OTHER = "other"


class ReferenceKind(str, Enum):
    FOOTNOTE = "footnote"
    FIGURE = "figure"
    TABLE = "table"


def coerce_enum(enum_cls, value, default):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default


# ---------------------------------------------------------------------------
# Document structure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Heading:
    """A heading as reported by structure extraction, in document order."""

    level: int
    text: str
    page: int

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level, "text": self.text, "page": self.page}


@dataclass(frozen=True)
class Section:
    """
    A node of the section forest. Built only by ``sections.build_section_forest``.

    ``end_page`` is derived from the next heading in list order at the same
    or a higher level, so it can fall below ``start_page`` when the source
    reports pages out of order. That case is reported by
    ``sections.find_page_anomalies`` and left as is.
    """

    title: str
    level: int
    start_page: int
    end_page: int
    children: Tuple["Section", ...] = ()

    @property
    def is_inverted(self) -> bool:
        return self.end_page < self.start_page

    def overlaps(self, start_page: int, end_page: int) -> bool:
        return self.start_page <= end_page and self.end_page >= start_page

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "level": self.level,
            "start_page": self.start_page,
            "end_page": self.end_page,
            "children": [c.to_dict() for c in self.children],
        }


@dataclass(frozen=True)
class DocumentProfile:
    """Snapshot of a document's characteristics, produced once by analysis."""

    language: str = "Unknown"
    page_count: int = 0
    has_toc: bool = False
    estimated_images: int = 0
    estimated_tables: int = 0
    estimated_code_blocks: int = 0
    header_pattern: Optional[str] = None
    footer_pattern: Optional[str] = None
    content_type: ContentType = ContentType.OTHER
    text_density: TextDensity = TextDensity.NORMAL
    has_math_formulas: bool = False
    has_copyrighted_content: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any], page_count: int = 0) -> "DocumentProfile":
        """Build a profile from loosely typed analysis JSON."""

        def _int(key: str) -> int:
            try:
                return max(0, int(data.get(key) or 0))
            except (TypeError, ValueError):
                return 0

        def _pattern(key: str) -> Optional[str]:
            value = data.get(key)
            if isinstance(value, str) and value.strip() and value.lower() != "null":
                return value.strip()
            return None

        language = data.get("language")
        return cls(
            language=language.strip() if isinstance(language, str) and language.strip() else "Unknown",
            page_count=page_count or _int("pageCount") or _int("page_count"),
            has_toc=bool(data.get("hasTOC", data.get("has_toc", False))),
            estimated_images=_int("estimatedImages"),
            estimated_tables=_int("estimatedTables"),
            estimated_code_blocks=_int("estimatedCodeBlocks"),
            header_pattern=_pattern("headerPattern"),
            footer_pattern=_pattern("footerPattern"),
            content_type=coerce_enum(ContentType, data.get("contentType"), ContentType.OTHER),
            text_density=coerce_enum(TextDensity, data.get("textDensity"), TextDensity.NORMAL),
            has_math_formulas=bool(data.get("hasMathFormulas", False)),
            has_copyrighted_content=bool(data.get("hasCopyrightedContent", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "language": self.language,
            "page_count": self.page_count,
            "has_toc": self.has_toc,
            "estimated_images": self.estimated_images,
            "estimated_tables": self.estimated_tables,
            "estimated_code_blocks": self.estimated_code_blocks,
            "header_pattern": self.header_pattern,
            "footer_pattern": self.footer_pattern,
            "content_type": self.content_type.value,
            "text_density": self.text_density.value,
            "has_math_formulas": self.has_math_formulas,
            "has_copyrighted_content": self.has_copyrighted_content,
        }


@dataclass
class WindowSpec:
    """A contiguous page range handled by one conversion call."""

    number: int
    total: int
    start_page: int
    end_page: int
    sections_in_window: List[Section] = field(default_factory=list)
    continued_section: Optional[Section] = None
    section_continues_after: bool = False

    @property
    def page_count(self) -> int:
        return self.end_page - self.start_page + 1

    @property
    def pages(self) -> range:
        return range(self.start_page, self.end_page + 1)

    @property
    def starts_mid_section(self) -> bool:
        return self.continued_section is not None


# ---------------------------------------------------------------------------
# Conversion results and continuity
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PendingReference:
    """A cross-reference seen in one unit whose target has not appeared yet."""

    id: str
    kind: ReferenceKind = ReferenceKind.FOOTNOTE


@dataclass(frozen=True)
class ImageInfo:
    """An image located by the model; bbox is [ymin, xmin, ymax, xmax] on 0-1000."""

    id: str
    bbox: Tuple[float, float, float, float] = (0, 0, 1000, 1000)
    description: str = "Image"
    type: ImageType = ImageType.OTHER
    page: Optional[int] = None


@dataclass
class ConversionResult:
    """Outcome of converting one page or window."""

    content: str = ""
    images: Dict[str, ImageInfo] = field(default_factory=dict)
    summary: str = ""
    last_paragraph: str = ""
    warnings: List[str] = field(default_factory=list)
    resolved_references: List[str] = field(default_factory=list)
    unresolved_references: List[PendingReference] = field(default_factory=list)
    degraded: bool = False


@dataclass(frozen=True)
class ContinuityState:
    """State threaded from one unit to the next within a single document."""

    previous_tail: str = ""
    previous_summary: str = ""
    pending_references: FrozenSet[PendingReference] = frozenset()
    units_folded: int = 0

    @property
    def awaiting_unit(self) -> int:
        return self.units_folded + 1
