"""
End-to-end tests for the conversion pipeline (docstitch/converter.py) with a
scripted provider and an in-memory document.

Run: python -m pytest tests/test_converter.py -q
"""

import json
import time
from pathlib import Path

import fitz
import pytest

from conftest import FakePDF, FakeProvider, conversion_answer, h, part_number

from docstitch import llm_providers
from docstitch.capabilities import ProviderId
from docstitch.complexity import PipelineType
from docstitch.converter import PDFToMarkdownConverter
from docstitch.errors import ConfigurationError, ProviderError
from docstitch.selector import ProviderRegistry

HEADINGS = {
    "headings": [
        {"level": 1, "text": "Intro", "page": 1},
        {"level": 1, "text": "Methods", "page": 5},
        {"level": 1, "text": "Results", "page": 9},
        {"level": 2, "text": "Details", "page": 10},
    ]
}

WINDOW_ANSWERS = {
    1: conversion_answer(
        "# Intro\n\nACME Annual Report\n\nIntro text continues",
        summary="Intro summary.",
        last_paragraph="Intro text continues",
    ),
    2: conversion_answer(
        "into methods.[^1]\n\n# Methods\n\nMethods body.",
        summary="Methods summary.",
        last_paragraph="Methods body.",
    ),
    3: conversion_answer(
        "# Results\n\nResults body.\n\n## Details\n\nFine print.\n\n[^1]: The note.",
        summary="Results summary.",
        last_paragraph="Fine print.",
    ),
}


def _responder(answers, analysis=None, headings=None, fail_parts=(), slow_parts=()):
    def respond(prompt, images, document):
        if prompt.startswith("Analyze this document"):
            return analysis if analysis is not None else json.dumps({"language": "English"})
        if prompt.startswith("List every heading"):
            if isinstance(headings, Exception):
                raise headings
            return json.dumps(headings if headings is not None else HEADINGS)
        if prompt.startswith("Summarize"):
            return "Generated summary."
        if prompt.startswith("Classify this image"):
            return '{"type": "logo", "description": "Company logo"}'
        part = part_number(prompt)
        if part in fail_parts:
            raise ProviderError("boom", status_code=500)
        if part in slow_parts:
            time.sleep(0.5)
        return answers[part]

    return respond


def _converter(config, provider):
    registry = ProviderRegistry(config)
    registry.register(provider)
    return PDFToMarkdownConverter(registry=registry)


@pytest.fixture
def claude_config(make_config):
    return make_config(anthropic_api_key="a", window_size=5, window_slack=2, boundary_depth=1, pipeline="full")


class TestWindowedConversion:
    def test_windows_follow_sections(self, claude_config):
        provider = FakeProvider(ProviderId.CLAUDE, _responder(WINDOW_ANSWERS))
        result = _converter(claude_config, provider).convert_document(FakePDF(12))

        assert result.provider is ProviderId.CLAUDE
        assert [(w.start_page, w.end_page) for w in result.windows] == [(1, 4), (5, 8), (9, 12)]
        assert [d for d in (c["document"] for c in provider.calls[2:])] == [
            b"pdf-1-4",
            b"pdf-5-8",
            b"pdf-9-12",
        ]
        assert [s.title for s in result.forest] == ["Intro", "Methods", "Results"]
        assert result.forest[2].children[0].title == "Details"

        summary = result.to_dict()
        assert summary["provider"] == "claude"
        assert summary["windows"] == [(1, 4), (5, 8), (9, 12)]
        assert [s["title"] for s in summary["sections"]] == ["Intro", "Methods", "Results"]

    def test_analysis_gets_whole_pdf(self, claude_config):
        provider = FakeProvider(ProviderId.CLAUDE, _responder(WINDOW_ANSWERS))
        result = _converter(claude_config, provider).convert_document(FakePDF(12))
        assert provider.calls[0]["document"] == b"%PDF-fake"
        assert result.profile.page_count == 12
        assert result.profile.header_pattern == "ACME Annual Report"

    def test_continuity_reaches_next_window(self, claude_config):
        provider = FakeProvider(ProviderId.CLAUDE, _responder(WINDOW_ANSWERS))
        _converter(claude_config, provider).convert_document(FakePDF(12))

        prompts = provider.prompts_containing("DOCUMENT CONTEXT")
        assert len(prompts) == 3
        assert "PREVIOUS PART" not in prompts[0]
        assert "Summary: Intro summary." in prompts[1]
        assert "Intro text continues" in prompts[1]
        assert "# Methods (page 5)" in prompts[1]
        assert "OPEN REFERENCES" in prompts[2]
        assert "- footnote 1" in prompts[2]

    def test_markdown_is_stitched(self, claude_config):
        provider = FakeProvider(ProviderId.CLAUDE, _responder(WINDOW_ANSWERS))
        result = _converter(claude_config, provider).convert_document(FakePDF(12))

        assert "ACME Annual Report" not in result.markdown
        assert "Intro text continues into methods.[^1]" in result.markdown
        assert result.markdown.index("# Methods") < result.markdown.index("# Results")
        assert result.warnings == []
        assert not result.degraded

    def test_failed_window_is_degraded(self, claude_config):
        provider = FakeProvider(ProviderId.CLAUDE, _responder(WINDOW_ANSWERS, fail_parts={2}))
        result = _converter(claude_config, provider).convert_document(FakePDF(12))

        assert result.degraded
        assert [u.degraded for u in result.units] == [False, True, False]
        assert "[Error converting window 2 (pages 5-8)]" in result.markdown
        assert "# Results" in result.markdown
        assert "window 2 (pages 5-8): Conversion of window 2 (pages 5-8) failed: boom" in result.warnings
        third = provider.prompts_containing("Part 3 of 3")[0]
        assert "PREVIOUS PART" not in third

    def test_timed_out_window_is_degraded(self, make_config):
        config = make_config(
            anthropic_api_key="a", window_size=5, window_slack=2, boundary_depth=1, unit_timeout=0.1, pipeline="full"
        )
        provider = FakeProvider(ProviderId.CLAUDE, _responder(WINDOW_ANSWERS, slow_parts={1}))
        result = _converter(config, provider).convert_document(FakePDF(12))
        assert result.units[0].degraded
        assert any("no answer within 0.1s" in w for w in result.warnings)
        assert not result.units[1].degraded

    def test_timed_out_window_does_not_hold_up_the_rest(self, make_config):
        config = make_config(
            anthropic_api_key="a",
            window_size=2,
            window_slack=0,
            max_workers=1,
            unit_timeout=0.2,
            pipeline="full",
        )
        provider = FakeProvider(
            ProviderId.CLAUDE, _responder(WINDOW_ANSWERS, headings={"headings": []}, slow_parts={1})
        )
        result = _converter(config, provider).convert_document(FakePDF(6))

        assert [(w.start_page, w.end_page) for w in result.windows] == [(1, 2), (3, 4), (5, 6)]
        assert [u.degraded for u in result.units] == [True, False, False]
        assert any("no answer within 0.2s" in w for w in result.warnings)
        assert "# Results" in result.markdown

    def test_unresolved_reference_warning(self, claude_config):
        answers = dict(WINDOW_ANSWERS)
        answers[3] = conversion_answer("# Results\n\nNo notes here.", summary="s", last_paragraph="x")
        provider = FakeProvider(ProviderId.CLAUDE, _responder(answers))
        result = _converter(claude_config, provider).convert_document(FakePDF(12))
        assert result.warnings == ["Unresolved references at end of document: 1"]

    def test_parallel_mode_keeps_order_without_continuity(self, make_config):
        config = make_config(
            anthropic_api_key="a",
            window_size=5,
            window_slack=2,
            boundary_depth=1,
            parallel_windows=True,
            pipeline="full",
        )
        provider = FakeProvider(ProviderId.CLAUDE, _responder(WINDOW_ANSWERS))
        result = _converter(config, provider).convert_document(FakePDF(12))

        assert [u.summary for u in result.units] == ["Intro summary.", "Methods summary.", "Results summary."]
        assert all("PREVIOUS PART" not in p for p in provider.prompts_containing("DOCUMENT CONTEXT"))
        assert "Intro text continues into methods." in result.markdown


class TestRecoveries:
    def test_analysis_failure_uses_defaults(self, claude_config):
        provider = FakeProvider(ProviderId.CLAUDE, _responder(WINDOW_ANSWERS, analysis="no json"))
        result = _converter(claude_config, provider).convert_document(FakePDF(12))
        assert result.profile.language == "Unknown"
        assert result.profile.page_count == 12
        assert any(w.startswith("Document analysis failed") for w in result.warnings)
        assert len(result.units) == 3

    def test_malformed_analysis_body_uses_defaults(self, make_config, monkeypatch):
        pages = {n: conversion_answer(f"Page {n}.", summary="s") for n in (1, 2, 3)}

        class _Response:
            status_code = 200
            ok = True
            text = "<html>gateway</html>"

            def __init__(self, content=None):
                self._content = content

            def json(self):
                if self._content is None:
                    raise ValueError("Expecting value: line 1 column 1 (char 0)")
                return {"choices": [{"message": {"content": self._content}}]}

        def fake_post(url, headers=None, json=None, timeout=None):
            prompt = json["messages"][0]["content"][0]["text"]
            if prompt.startswith("Analyze this document"):
                return _Response()
            return _Response(pages[part_number(prompt)])

        monkeypatch.setattr(llm_providers.requests, "post", fake_post)
        converter = PDFToMarkdownConverter(make_config(openai_api_key="o"))
        result = converter.convert_document(FakePDF(3))

        assert result.provider is ProviderId.OPENAI
        assert result.profile.language == "Unknown"
        assert any(w.startswith("Document analysis failed") for w in result.warnings)
        assert result.markdown == "Page 1.\n\nPage 2.\n\nPage 3.\n"

    def test_heading_failure_converts_without_sections(self, claude_config):
        provider = FakeProvider(
            ProviderId.CLAUDE, _responder(WINDOW_ANSWERS, headings=ProviderError("down", status_code=503))
        )
        result = _converter(claude_config, provider).convert_document(FakePDF(15))
        assert result.forest == []
        assert [(w.start_page, w.end_page) for w in result.windows] == [(1, 5), (6, 10), (11, 15)]
        assert any(w.startswith("Structure extraction failed") for w in result.warnings)

    def test_out_of_order_headings_are_reported(self, claude_config):
        headings = {"headings": [{"level": 1, "text": "Late", "page": 8}, {"level": 1, "text": "Early", "page": 2}]}
        answers = {n: conversion_answer(f"Part {n}.") for n in range(1, 5)}
        provider = FakeProvider(ProviderId.CLAUDE, _responder(answers, headings=headings))
        result = _converter(claude_config, provider).convert_document(FakePDF(12))
        assert result.forest[0].is_inverted
        assert any("'Late'" in w for w in result.warnings)

    def test_no_provider_configured(self, make_config):
        with pytest.raises(ConfigurationError):
            PDFToMarkdownConverter(make_config())


class TestPipelines:
    def test_simple_document_is_one_call(self, make_config):
        answers = {1: conversion_answer("# Memo\n\nShort body.", summary="A memo.")}
        provider = FakeProvider(ProviderId.CLAUDE, _responder(answers))
        result = _converter(make_config(anthropic_api_key="a"), provider).convert_document(FakePDF(3))

        assert result.complexity.pipeline is PipelineType.DIRECT
        assert [(w.start_page, w.end_page) for w in result.windows] == [(1, 3)]
        assert provider.prompts_containing("List every heading") == []
        assert [c["document"] for c in provider.calls if "DOCUMENT CONTEXT" in c["prompt"]] == [b"pdf-1-3"]
        assert result.markdown.startswith("# Memo")
        assert result.to_dict()["complexity"]["pipeline"] == "direct"

    def test_simple_document_too_long_for_one_call_is_windowed(self, make_config):
        answers = {n: conversion_answer(f"Part {n}.", summary="s") for n in range(1, 5)}
        provider = FakeProvider(ProviderId.CLAUDE, _responder(answers))
        config = make_config(anthropic_api_key="a", pipeline="direct", window_size=50, window_slack=0)
        result = _converter(config, provider).convert_document(FakePDF(160))

        assert [(w.start_page, w.end_page) for w in result.windows] == [(1, 50), (51, 100), (101, 150), (151, 160)]
        assert provider.prompts_containing("List every heading") == []

    def test_outline_replaces_heading_extraction(self, claude_config):
        outline = [h(1, "Intro", 1), h(1, "Methods", 5), h(1, "Results", 9), h(2, "Details", 10)]
        provider = FakeProvider(ProviderId.CLAUDE, _responder(WINDOW_ANSWERS))
        result = _converter(claude_config, provider).convert_document(FakePDF(12, outline=outline))

        assert provider.prompts_containing("List every heading") == []
        assert result.profile.has_toc
        assert result.headings == outline
        assert [(w.start_page, w.end_page) for w in result.windows] == [(1, 4), (5, 8), (9, 12)]
        assert result.forest[2].children[0].title == "Details"

    def test_outline_selects_light_pipeline(self, make_config):
        outline = [h(1, "Intro", 1), h(1, "Methods", 5)]
        answers = {n: conversion_answer(f"Part {n}.", summary="s") for n in range(1, 4)}
        provider = FakeProvider(ProviderId.CLAUDE, _responder(answers))
        config = make_config(anthropic_api_key="a", window_size=5, window_slack=2)
        result = _converter(config, provider).convert_document(FakePDF(12, outline=outline))

        assert result.complexity.pipeline is PipelineType.LIGHT
        assert [(w.start_page, w.end_page) for w in result.windows] == [(1, 5), (6, 10), (11, 12)]

    def test_vision_provider_direct_pipeline_goes_page_by_page(self, make_config):
        answers = {n: conversion_answer(f"Page {n}.", summary="s") for n in (1, 2)}
        provider = FakeProvider(ProviderId.GEMINI, _responder(answers))
        result = _converter(make_config(gemini_api_key="g"), provider).convert_document(FakePDF(2))

        assert result.complexity.pipeline is PipelineType.DIRECT
        assert [(w.start_page, w.end_page) for w in result.windows] == [(1, 1), (2, 2)]
        assert provider.prompts_containing("List every heading") == []


class TestPageByPage:
    PAGE_ANSWERS = {n: conversion_answer(f"Page {n} text.", last_paragraph=f"Page {n} text.") for n in (1, 2, 3)}

    def test_vision_provider_converts_each_page(self, make_config):
        provider = FakeProvider(ProviderId.GEMINI, _responder(self.PAGE_ANSWERS))
        result = _converter(make_config(gemini_api_key="g"), provider).convert_document(FakePDF(3))

        assert result.provider is ProviderId.GEMINI
        assert [(w.start_page, w.end_page) for w in result.windows] == [(1, 1), (2, 2), (3, 3)]
        images = [c["images"] for c in provider.calls if "DOCUMENT CONTEXT" in c["prompt"]]
        assert images == [[b"png-1"], [b"png-2"], [b"png-3"]]
        assert all(c["document"] is None for c in provider.calls)
        assert result.markdown == "Page 1 text.\n\nPage 2 text.\n\nPage 3 text.\n"

    def test_missing_summaries_are_generated(self, make_config):
        provider = FakeProvider(ProviderId.GEMINI, _responder(self.PAGE_ANSWERS))
        result = _converter(make_config(gemini_api_key="g"), provider).convert_document(FakePDF(3))
        assert [u.summary for u in result.units] == ["Generated summary."] * 3
        assert "Summary: Generated summary." in provider.prompts_containing("Part 2 of 3")[0]

    def test_analysis_uses_text_sample(self, make_config):
        provider = FakeProvider(ProviderId.GEMINI, _responder(self.PAGE_ANSWERS))
        _converter(make_config(gemini_api_key="g"), provider).convert_document(FakePDF(3))
        assert "Body text of page 2." in provider.calls[0]["prompt"]

    def test_images_are_cropped_and_linked(self, make_config, tmp_path):
        answers = dict(self.PAGE_ANSWERS)
        answers[2] = conversion_answer(
            "Chart below.\n\n[IMAGE:img_1]",
            images='{"img_1": {"bbox": [0, 0, 500, 500], "description": "A chart", "type": "chart"}}',
        )
        answers[3] = conversion_answer("Logo:\n\n[IMAGE:img_2]", images='{"img_2": {}}')
        images_dir = tmp_path / "images"
        images_dir.mkdir()

        pdf = FakePDF(3)
        provider = FakeProvider(ProviderId.GEMINI, _responder(answers))
        converter = _converter(make_config(gemini_api_key="g", extract_images=True), provider)
        result = converter.convert_document(pdf, images_dir=images_dir)

        assert "![A chart](images/doc_p2_img_1.png)" in result.markdown
        assert "![Company logo](images/doc_p3_img_2.png)" in result.markdown
        assert (images_dir / "doc_p2_img_1.png").read_bytes() == b"crop-2"
        assert (2, (0, 0, 500, 500)) in pdf.crops

    def test_images_without_extraction_become_descriptions(self, make_config):
        answers = dict(self.PAGE_ANSWERS)
        answers[1] = conversion_answer("[IMAGE:img_1]", images='{"img_1": {"description": "Map"}}')
        provider = FakeProvider(ProviderId.GEMINI, _responder(answers))
        result = _converter(make_config(gemini_api_key="g"), provider).convert_document(FakePDF(3))
        assert result.markdown.startswith("> *[Image: Map]*")


class TestFileConversion:
    def _write_pdf(self, path, pages):
        doc = fitz.open()
        for n in range(1, pages + 1):
            page = doc.new_page()
            page.insert_text((72, 72), f"Real page {n}")
        doc.save(str(path))
        doc.close()

    def test_convert_file(self, make_config, tmp_path):
        src = tmp_path / "report.pdf"
        self._write_pdf(src, 2)
        answers = {n: conversion_answer(f"Real page {n}.", summary="s") for n in (1, 2)}
        provider = FakeProvider(ProviderId.GEMINI, _responder(answers))

        out = _converter(make_config(gemini_api_key="g"), provider).convert_file(str(src))

        assert Path(out).name == "report.md"
        assert Path(out).read_text(encoding="utf-8") == "Real page 1.\n\nReal page 2.\n"
        rendered = [c["images"][0] for c in provider.calls if "DOCUMENT CONTEXT" in c["prompt"]]
        assert all(img.startswith(b"\x89PNG") for img in rendered)

    def test_convert_bytes(self, make_config, tmp_path):
        src = tmp_path / "one.pdf"
        self._write_pdf(src, 1)
        provider = FakeProvider(ProviderId.GEMINI, _responder({1: conversion_answer("Only page.")}))
        markdown = _converter(make_config(gemini_api_key="g"), provider).convert_bytes(src.read_bytes())
        assert markdown == "Only page.\n"

    def test_missing_file(self, make_config):
        converter = _converter(make_config(gemini_api_key="g"), FakeProvider(ProviderId.GEMINI))
        with pytest.raises(FileNotFoundError):
            converter.convert_file("/nonexistent/file.pdf")
