"""
Markdown post-processing applied when converted units are stitched together.
"""

import re
from typing import Callable, Dict, Mapping, Optional, Sequence

from .models import ImageInfo

# Pattern reported for running footers/headers that are bare page numbers.
PAGE_NUMBER_PATTERN = r"\d+"

_PLACEHOLDER_RE = re.compile(r"\[IMAGE:\s*([A-Za-z0-9_\-]+)\s*\]")
_LINKED_PLACEHOLDER_RE = re.compile(r"!\[([^\]]*)\]\(\s*(img_[A-Za-z0-9_\-]*)?\s*\)")
_SENTENCE_END_RE = re.compile(r"[.!?:;'\"”)\]*`|]$")


def _line_regex(pattern: str) -> str:
    if pattern == PAGE_NUMBER_PATTERN:
        return PAGE_NUMBER_PATTERN
    return re.escape(pattern)


def strip_repeating_elements(
    content: str, header: Optional[str] = None, footer: Optional[str] = None
) -> str:
    """Remove whole lines matching the running header or footer."""
    for pattern in (header, footer):
        if pattern:
            content = re.sub(
                r"^[ \t]*%s[ \t]*(?:\n|$)" % _line_regex(pattern),
                "",
                content,
                flags=re.MULTILINE,
            )
    return content


ImageResolver = Callable[[ImageInfo], Optional[str]]


def replace_image_placeholders(
    content: str,
    images: Mapping[str, ImageInfo],
    resolver: Optional[ImageResolver] = None,
) -> str:
    """
    Replace image placeholders with Markdown images.

    Args:
        content: Markdown containing [IMAGE:id] or ![caption](id) placeholders.
        images: Images reported for the unit, keyed by id.
        resolver: Returns a path or data URL for an image, or None when the
            image could not be produced.

    Placeholders that cannot be resolved become a quoted description.
    """
    resolved: Dict[str, Optional[str]] = {}

    def _target(image_id: str) -> Optional[str]:
        if image_id not in resolved:
            info = images.get(image_id)
            resolved[image_id] = resolver(info) if (info and resolver) else None
        return resolved[image_id]

    def _render(image_id: Optional[str], caption: str) -> str:
        info = images.get(image_id) if image_id else None
        description = caption or (info.description if info else "") or "Image"
        target = _target(image_id) if image_id else None
        if target:
            return f"![{description}]({target})"
        return f"> *[Image: {description}]*"

    content = _LINKED_PLACEHOLDER_RE.sub(
        lambda m: _render(m.group(2), m.group(1).strip()), content
    )
    return _PLACEHOLDER_RE.sub(lambda m: _render(m.group(1), ""), content)


def ends_mid_sentence(content: str) -> bool:
    text = content.rstrip()
    if not text:
        return False
    last_line = text.rsplit("\n", 1)[-1].lstrip()
    if last_line.startswith(("#", ">", "|", "```", "$$")):
        return False
    return not _SENTENCE_END_RE.search(text)


def merge_units(contents: Sequence[str]) -> str:
    """
    Join converted units into one document.

    A unit that ends mid-sentence is joined to the next with a single space,
    unless the next one opens with a heading; otherwise units are separated
    by a blank line.
    """
    merged = ""
    for content in contents:
        content = content.strip()
        if not content:
            continue
        if not merged:
            merged = content
        elif ends_mid_sentence(merged) and not content.startswith("#"):
            merged = merged.rstrip() + " " + content
        else:
            merged = merged.rstrip() + "\n\n" + content
    return merged + "\n" if merged else ""
