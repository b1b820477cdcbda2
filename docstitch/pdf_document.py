"""
PDF access backed by PyMuPDF.

Pages are addressed 1-based everywhere in docstitch; this is the only module
that translates to PyMuPDF's 0-based indices.
"""

import io
from pathlib import Path
from typing import List, Optional, Sequence, Union

import fitz
from PIL import Image

from .models import Heading


class PDFDocument:
    """Read-only view of one PDF: text, page renders, sub-documents, crops."""

    def __init__(self, doc: fitz.Document, name: str = "document"):
        self._doc = doc
        self.name = name

    @classmethod
    def open(cls, path: Union[str, Path]) -> "PDFDocument":
        src = Path(path)
        if not src.exists():
            raise FileNotFoundError(f"PDF file not found: {src}")
        return cls(fitz.open(src), name=src.stem)

    @classmethod
    def from_bytes(cls, pdf_bytes: bytes, name: str = "document") -> "PDFDocument":
        return cls(fitz.open(stream=pdf_bytes, filetype="pdf"), name=name)

    def __enter__(self) -> "PDFDocument":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._doc.close()

    @property
    def page_count(self) -> int:
        return len(self._doc)

    def _page(self, page: int) -> fitz.Page:
        if not 1 <= page <= self.page_count:
            raise IndexError(f"Page {page} out of range 1-{self.page_count}")
        return self._doc[page - 1]

    def page_text(self, page: int) -> str:
        return self._page(page).get_text("text")

    def pages_text(self, pages: Sequence[int]) -> List[str]:
        return [self.page_text(p) for p in pages]

    def to_bytes(self) -> bytes:
        return self._doc.tobytes()

    def outline(self) -> List[Heading]:
        """Embedded bookmarks as headings; entries without a target page are dropped."""
        headings: List[Heading] = []
        for entry in self._doc.get_toc(simple=True):
            level, title, page = entry[:3]
            title = title.strip()
            if title and 1 <= page <= self.page_count:
                headings.append(Heading(level=min(max(level, 1), 6), text=title, page=page))
        return headings

    def extract_page_range(self, start_page: int, end_page: int) -> bytes:
        """A standalone PDF holding pages start_page..end_page inclusive."""
        self._page(start_page)
        self._page(end_page)
        excerpt = fitz.open()
        try:
            excerpt.insert_pdf(self._doc, from_page=start_page - 1, to_page=end_page - 1)
            return excerpt.tobytes()
        finally:
            excerpt.close()

    def _render(self, page: int, dpi: int) -> Image.Image:
        pix = self._page(page).get_pixmap(dpi=dpi, alpha=False)
        return Image.frombytes("RGB", [pix.width, pix.height], pix.samples)

    def render_page(self, page: int, dpi: int = 150, max_size: Optional[int] = None) -> bytes:
        """Render a page to PNG bytes, scaled down to fit max_size when given."""
        img = self._render(page, dpi)
        if max_size:
            img.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
        return _to_png(img)

    def crop_region(self, page: int, bbox: Sequence[float], dpi: int = 150) -> bytes:
        """
        Crop a region of a page to PNG bytes.

        Args:
            page: 1-based page number.
            bbox: [ymin, xmin, ymax, xmax] on a 0-1000 scale of the page.
            dpi: Render resolution.
        """
        img = self._render(page, dpi)
        ymin, xmin, ymax, xmax = bbox
        box = (
            int(xmin / 1000 * img.width),
            int(ymin / 1000 * img.height),
            max(int(xmax / 1000 * img.width), int(xmin / 1000 * img.width) + 1),
            max(int(ymax / 1000 * img.height), int(ymin / 1000 * img.height) + 1),
        )
        return _to_png(img.crop(box))


def _to_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
