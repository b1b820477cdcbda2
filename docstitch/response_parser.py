"""
Parsing of model answers.

Two kinds of answers come back from the providers: bare JSON objects (document
analysis, heading extraction, image classification) and conversion answers
laid out in marked blocks:

    [CONTENT]
    ...markdown...
    [IMAGES]
    ```json
    {"img_1": {"bbox": [ymin, xmin, ymax, xmax], "description": "...", "type": "chart"}}
    ```
    [REFERENCES]
    ```json
    {"unresolved": [{"id": "fig-3", "kind": "figure"}], "resolved": ["tbl-1"]}
    ```
    [SUMMARY]
    ...
    [LAST_PARAGRAPH]
    ...

parse_conversion_response() never raises; whatever cannot be recovered is
reported as a warning on the result.
"""

import json
import re
from typing import Any, Dict, List, Optional, Tuple

from .errors import ResponseParseError
from .models import (
    ConversionResult,
    ImageInfo,
    ImageType,
    PendingReference,
    ReferenceKind,
    coerce_enum,
)

LAST_PARAGRAPH_MAX_CHARS = 500

_MARKERS = ("CONTENT", "IMAGES", "REFERENCES", "SUMMARY", "LAST_PARAGRAPH")
_MARKER_RE = re.compile(r"^\s*\[(%s)\]\s*$" % "|".join(_MARKERS), re.MULTILINE)

_FOOTNOTE_REF_RE = re.compile(r"\[\^([^\]\s]+)\](?!:)")
_FOOTNOTE_DEF_RE = re.compile(r"^\s*\[\^([^\]\s]+)\]:", re.MULTILINE)


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------


def extract_json_object(text: str) -> Optional[str]:
    """Return the outermost {...} in text, or everything after an unclosed '{'."""
    # Remove any markdown code fences.
    text = re.sub(r"```(?:json)?\s*", "", text, flags=re.IGNORECASE)
    text = text.strip().rstrip("`")

    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    return text[start:]


def repair_json(raw: str) -> str:
    """Best-effort fix of the JSON mistakes models commonly make."""
    try:
        json.loads(raw)
        return raw
    except json.JSONDecodeError:
        pass

    # 1. Remove trailing commas before closing brackets.
    raw = re.sub(r",\s*([}\]])", r"\1", raw)

    # 2. Ensure property names are double-quoted.
    raw = re.sub(r"(?<=[{,\s])([A-Za-z_][A-Za-z0-9_]*)\s*:(?!//)", r'"\1":', raw)

    # 3. Replace Python-style None/True/False.
    raw = re.sub(r":\s*None\b", ": null", raw)
    raw = re.sub(r":\s*True\b", ": true", raw)
    raw = re.sub(r":\s*False\b", ": false", raw)

    try:
        json.loads(raw)
        return raw
    except json.JSONDecodeError:
        pass

    # Truncated answer: cut back to the last closed object and close whatever
    # arrays and objects are still open.
    last_brace = raw.rfind("}")
    if last_brace > 0:
        candidate = raw[: last_brace + 1]
        candidate = re.sub(r",\s*$", "", candidate)
        open_brackets = candidate.count("[") - candidate.count("]")
        open_braces = candidate.count("{") - candidate.count("}")
        candidate += "]" * max(open_brackets, 0) + "}" * max(open_braces, 0)
        try:
            json.loads(candidate)
            return candidate
        except json.JSONDecodeError:
            pass

    return raw


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Parse the JSON object embedded in a model answer.

    Raises:
        ResponseParseError: no object found, or it cannot be repaired.
    """
    json_str = extract_json_object(text or "")
    if not json_str:
        raise ResponseParseError("No JSON object found in model response")

    try:
        data = json.loads(repair_json(json_str))
    except json.JSONDecodeError as exc:
        raise ResponseParseError(f"JSON parse failed after repair: {exc}") from exc

    if not isinstance(data, dict):
        raise ResponseParseError("Model response JSON is not an object")
    return data


# ---------------------------------------------------------------------------
# Conversion answers
# ---------------------------------------------------------------------------


def split_blocks(text: str) -> Dict[str, str]:
    """Map each [MARKER] found in text to the stripped text that follows it."""
    blocks: Dict[str, str] = {}
    matches = list(_MARKER_RE.finditer(text))
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        name = match.group(1)
        if name not in blocks:
            blocks[name] = text[match.end() : end].strip()
    return blocks


def extract_last_paragraph(content: str, max_chars: int = LAST_PARAGRAPH_MAX_CHARS) -> str:
    """Last paragraph of markdown that is not a heading, cut to its final max_chars."""
    paragraphs = [p.strip() for p in re.split(r"\n\s*\n", content) if p.strip()]
    for paragraph in reversed(paragraphs):
        if not paragraph.startswith("#"):
            return paragraph[-max_chars:]
    return ""


def find_footnote_references(content: str) -> Tuple[List[str], List[str]]:
    """
    Footnote ids used and defined in a piece of markdown.

    Returns:
        (referenced ids without a definition, defined ids), each in order of
        first appearance.
    """
    defined = _unique(_FOOTNOTE_DEF_RE.findall(content))
    referenced = _unique(_FOOTNOTE_REF_RE.findall(content))
    return [ref for ref in referenced if ref not in defined], defined


def parse_conversion_response(text: str, page: Optional[int] = None) -> ConversionResult:
    """
    Turn a conversion answer into a ConversionResult.

    Args:
        text: Raw model answer.
        page: Page number to stamp on located images (single-page units).
    """
    text = text or ""
    warnings: List[str] = []
    blocks = split_blocks(text)

    if "CONTENT" in blocks:
        content = blocks["CONTENT"]
    else:
        content = _strip_fences(text).strip()
        warnings.append("Response had no [CONTENT] block; using the raw answer as content")

    images = _parse_images(blocks.get("IMAGES"), page, warnings)

    unresolved_ids, defined_ids = find_footnote_references(content)
    unresolved = [PendingReference(ref_id) for ref_id in unresolved_ids]
    resolved = list(defined_ids)
    _merge_reference_block(blocks.get("REFERENCES"), unresolved, resolved, warnings)

    last_paragraph = blocks.get("LAST_PARAGRAPH", "").strip()
    if not last_paragraph:
        last_paragraph = extract_last_paragraph(content)

    return ConversionResult(
        content=content,
        images=images,
        summary=blocks.get("SUMMARY", "").strip(),
        last_paragraph=last_paragraph[-LAST_PARAGRAPH_MAX_CHARS:],
        warnings=warnings,
        resolved_references=resolved,
        unresolved_references=unresolved,
    )


def _parse_images(
    block: Optional[str], page: Optional[int], warnings: List[str]
) -> Dict[str, ImageInfo]:
    if not block:
        return {}
    try:
        data = parse_json_object(block)
    except ResponseParseError as exc:
        warnings.append(f"Could not parse [IMAGES] block: {exc}")
        return {}

    images: Dict[str, ImageInfo] = {}
    for image_id, raw in data.items():
        if not isinstance(raw, dict):
            continue
        images[image_id] = ImageInfo(
            id=image_id,
            bbox=_parse_bbox(raw.get("bbox")),
            description=str(raw.get("description") or "Image"),
            type=coerce_enum(ImageType, raw.get("type"), ImageType.OTHER),
            page=_parse_page(raw.get("page"), page),
        )
    return images


def _parse_bbox(value: Any) -> Tuple[float, float, float, float]:
    if isinstance(value, (list, tuple)) and len(value) == 4:
        try:
            ymin, xmin, ymax, xmax = (min(max(float(v), 0.0), 1000.0) for v in value)
        except (TypeError, ValueError):
            return (0, 0, 1000, 1000)
        if ymax > ymin and xmax > xmin:
            return (ymin, xmin, ymax, xmax)
    return (0, 0, 1000, 1000)


def _parse_page(value: Any, default: Optional[int]) -> Optional[int]:
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _merge_reference_block(
    block: Optional[str],
    unresolved: List[PendingReference],
    resolved: List[str],
    warnings: List[str],
) -> None:
    if not block:
        return
    try:
        data = parse_json_object(block)
    except ResponseParseError as exc:
        warnings.append(f"Could not parse [REFERENCES] block: {exc}")
        return

    known = {ref.id for ref in unresolved}
    for item in data.get("unresolved") or []:
        if isinstance(item, dict) and item.get("id"):
            ref = PendingReference(
                str(item["id"]),
                coerce_enum(ReferenceKind, item.get("kind"), ReferenceKind.FOOTNOTE),
            )
        elif isinstance(item, str) and item:
            ref = PendingReference(item)
        else:
            continue
        if ref.id not in known:
            unresolved.append(ref)
            known.add(ref.id)

    for item in data.get("resolved") or []:
        ref_id = item.get("id") if isinstance(item, dict) else item
        if ref_id and str(ref_id) not in resolved:
            resolved.append(str(ref_id))


def _strip_fences(text: str) -> str:
    return re.sub(r"^```(?:markdown|md)?\s*\n|\n?```\s*$", "", text.strip(), flags=re.IGNORECASE)


def _unique(items: List[str]) -> List[str]:
    seen = set()
    ordered = []
    for item in items:
        if item not in seen:
            seen.add(item)
            ordered.append(item)
    return ordered
