"""
Prompt templates.

The conversion prompt is assembled from fixed instruction sections plus a
context block rendered from a ConversionContext, so every page or window call
knows where it sits in the document and how the previous unit ended.
"""

from typing import List

from .context import ConversionContext

ANALYSIS_PROMPT = """\
Analyze this document and describe its overall characteristics.

Return ONLY a JSON object with these keys:
{{
  "language": "main language of the text, e.g. English",
  "hasTOC": true or false,
  "estimatedImages": number of images and figures in the whole document,
  "estimatedTables": number of tables in the whole document,
  "estimatedCodeBlocks": number of code listings in the whole document,
  "headerPattern": "text repeated at the top of every page, or null",
  "footerPattern": "text repeated at the bottom of every page, or null",
  "contentType": "invoice" | "report" | "manual" | "academic" | "form" | "other",
  "textDensity": "sparse" | "normal" | "dense",
  "hasMathFormulas": true or false,
  "hasCopyrightedContent": true if this looks like published copyrighted material
}}

The document has {page_count} pages.
{sample}"""

HEADINGS_PROMPT = """\
List every heading of this document in reading order.

Return ONLY a JSON object of the form:
{{"headings": [{{"level": 1, "text": "Introduction", "page": 1}}, ...]}}

Rules:
- level is 1 for chapters or top-level titles, 2 for sections, up to 6.
- page is the 1-based page on which the heading appears.
- Do not invent headings; skip running headers and footers.
- The document is written in {language} and has {page_count} pages.
{sample}"""

SUMMARY_PROMPT = """\
Summarize the following text in at most {max_chars} characters. Keep names,
numbers and the topic of the last paragraph. Output only the summary.

{text}"""

CLASSIFY_IMAGE_PROMPT = """\
Classify this image. Return ONLY a JSON object:
{"type": "photo" | "diagram" | "chart" | "logo" | "icon" | "screenshot" | "other",
 "description": "one sentence"}"""

_CONVERSION_BASE = """\
You are an expert document converter that turns PDF pages into high-quality Markdown.

Convert ALL content of {scope} with MAXIMUM ACCURACY.

REQUIREMENTS:

1. TEXT ACCURACY (highest priority)
   - Preserve every character exactly, including diacritics and special symbols.
   - Do not skip, omit, or hallucinate any content.
   - Preserve all numbers, dates, measurements, and units exactly as shown.

2. DOCUMENT STRUCTURE
   - Use Markdown headings to represent the logical hierarchy: #, ##, ###, ####.
   - Use the heading levels listed under EXPECTED HEADINGS when given.
   - Maintain the original reading order (top-to-bottom, left-to-right).
   - Leave out running headers, footers and page numbers.

3. TABLES
   - Convert all tables to Markdown pipe syntax.
   - Preserve all cell content; do not omit any rows or columns.

4. LISTS
   - Ordered lists: 1., 2., 3.
   - Unordered lists: -
   - Preserve nesting with proper indentation.

5. IMAGES AND FIGURES
   - For each image or figure insert a placeholder on its own line: [IMAGE:img_N]
   - Number images img_1, img_2, ... in reading order.
   - Report each image under [IMAGES] with its bounding box as
     [ymin, xmin, ymax, xmax] on a 0-1000 scale of its page.
"""

_FORMULA_SECTION = """\
6. MATHEMATICAL FORMULAS
   - Inline math: $formula$
   - Display/block math: $$formula$$
   - Use standard LaTeX: \\frac{}{}, \\sum, \\int, \\alpha, \\beta, etc.
   - Ensure all LaTeX is syntactically valid.
"""

_CONVERSION_FOOTER = """\
7. SPECIAL FORMATTING
   - Bold: **text**, italic: *text*, code/monospace: `code`
   - Code listings in fenced blocks with the language when known.
   - Footnotes as [^id] markers with [^id]: definitions where they appear.

8. OUTPUT FORMAT
   Answer in exactly these blocks, nothing before or after:

[CONTENT]
the Markdown
[IMAGES]
```json
{"img_1": {"bbox": [ymin, xmin, ymax, xmax], "description": "...", "type": "photo|diagram|chart|logo|icon|screenshot|other", "page": 1}}
```
[REFERENCES]
```json
{"unresolved": [{"id": "...", "kind": "footnote|figure|table"}], "resolved": ["..."]}
```
[SUMMARY]
two or three sentences on what this part covers
[LAST_PARAGRAPH]
the last paragraph of the content, verbatim

Use {} for [IMAGES] when there are none.
"""


def build_conversion_prompt(context: ConversionContext, preserve_formulas: bool = True) -> str:
    """Full prompt for converting the unit described by context."""
    position = context.position
    if context.is_single_page:
        scope = f"page {position.start_page} of {context.global_facts.total_pages}"
    else:
        scope = (
            f"pages {position.start_page}-{position.end_page} "
            f"of {context.global_facts.total_pages} (the attached PDF excerpt)"
        )

    prompt = _CONVERSION_BASE.format(scope=scope)
    if preserve_formulas:
        prompt += _FORMULA_SECTION
    prompt += _CONVERSION_FOOTER
    return prompt + "\n" + render_context(context)


def render_context(context: ConversionContext) -> str:
    """Render the document context block appended to a conversion prompt."""
    facts = context.global_facts
    position = context.position
    structure = context.structure
    continuity = context.continuity
    expectations = context.expectations

    lines: List[str] = ["DOCUMENT CONTEXT:"]
    lines.append(f"- Language: {facts.language}")
    lines.append(
        f"- Part {position.unit_number} of {position.total_units} "
        f"(pages {position.start_page}-{position.end_page} of {facts.total_pages}, "
        f"{position.percent_complete}% through the document)"
    )
    if facts.header_pattern:
        lines.append(f"- Running header to omit: {facts.header_pattern}")
    if facts.footer_pattern:
        lines.append(f"- Running footer to omit: {facts.footer_pattern}")

    if structure.current_section:
        lines.append(f"- Current section: {structure.current_section}")
    if structure.continued_section:
        lines.append(
            f"- This part starts in the middle of '{structure.continued_section}'; "
            "do not repeat its heading."
        )
    if structure.section_continues_after:
        lines.append("- The last section continues after this part; do not conclude it.")

    if structure.expected_headings:
        lines.append("")
        lines.append("EXPECTED HEADINGS:")
        for heading in structure.expected_headings:
            lines.append(f"{'#' * heading.level} {heading.text} (page {heading.page})")

    hints = []
    if expectations.estimated_images:
        hints.append(f"about {expectations.estimated_images} image(s)")
    if expectations.estimated_tables:
        hints.append(f"about {expectations.estimated_tables} table(s)")
    if expectations.has_code_blocks:
        hints.append("code listings")
    if expectations.has_math_formulas:
        hints.append("mathematical formulas")
    if hints:
        lines.append("")
        lines.append("Expect " + ", ".join(hints) + ".")

    if continuity.previous_summary or continuity.previous_tail:
        lines.append("")
        lines.append("PREVIOUS PART:")
        if continuity.previous_summary:
            lines.append(f"Summary: {continuity.previous_summary}")
        if continuity.previous_tail:
            lines.append("It ended with:")
            lines.append(f'"""{continuity.previous_tail}"""')
            lines.append(
                "If the first paragraph here continues that text, start mid-sentence "
                "without repeating it."
            )

    if continuity.pending_references:
        lines.append("")
        lines.append("OPEN REFERENCES (report under resolved if defined here):")
        for ref in continuity.pending_references:
            lines.append(f"- {ref.kind.value} {ref.id}")

    return "\n".join(lines) + "\n"
