"""
PDF-to-Markdown converter.

Drives one document through the pipeline: provider selection, analysis,
complexity classification, structure extraction (or the embedded outline),
section forest, window planning, then one conversion call per window
(native-PDF providers) or per page (vision providers), with continuity
threaded from each unit to the next. Failed units are replaced by degraded
results so the document is always converted to the end.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout, as_completed
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional

from tqdm import tqdm

from .capabilities import ProviderCapability, ProviderId
from .complexity import DocumentComplexity, PipelineType, classify_complexity
from .config import DocStitchConfig
from .context import assemble_context
from .continuity import degraded_result, fold_continuity
from .errors import ConfigurationError, ProviderError, ResponseParseError
from .extractor import DocumentExtractor, detect_repeating_patterns, sample_analysis_text
from .models import (
    ContinuityState,
    ConversionResult,
    DocumentProfile,
    Heading,
    ImageInfo,
    ImageType,
    Section,
    WindowSpec,
)
from .pdf_document import PDFDocument
from .postprocess import merge_units, replace_image_placeholders, strip_repeating_elements
from .sections import build_section_forest, find_page_anomalies
from .selector import ProviderRegistry
from .windows import plan_windows

_HEADING_TEXT_LIMIT = 120_000


@dataclass
class DocumentResult:
    """Everything produced while converting one document."""

    name: str
    markdown: str
    units: List[ConversionResult] = field(default_factory=list)
    profile: DocumentProfile = field(default_factory=DocumentProfile)
    headings: List[Heading] = field(default_factory=list)
    forest: List[Section] = field(default_factory=list)
    windows: List[WindowSpec] = field(default_factory=list)
    provider: Optional[ProviderId] = None
    complexity: Optional[DocumentComplexity] = None
    warnings: List[str] = field(default_factory=list)
    degraded: bool = False

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "provider": self.provider.value if self.provider else None,
            "complexity": self.complexity.to_dict() if self.complexity else None,
            "profile": self.profile.to_dict(),
            "sections": [s.to_dict() for s in self.forest],
            "windows": [(w.start_page, w.end_page) for w in self.windows],
            "warnings": list(self.warnings),
            "degraded": self.degraded,
        }


class PDFToMarkdownConverter:
    """Converts PDF documents to Markdown with an LLM, one window or page at a time."""

    def __init__(
        self,
        config: Optional[DocStitchConfig] = None,
        registry: Optional[ProviderRegistry] = None,
    ):
        self._config = config or (registry.config if registry else DocStitchConfig())
        self._config.validate()
        self._registry = registry or ProviderRegistry(self._config)
        # PyMuPDF documents must not be used from two threads at once.
        self._pdf_lock = threading.Lock()

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def convert_file(self, pdf_path: str, output_path: Optional[str] = None) -> str:
        """
        Convert a PDF file to a Markdown file.

        Args:
            pdf_path: Path to the source PDF.
            output_path: Destination Markdown path. Auto-generated when None.

        Returns:
            Absolute path to the generated Markdown file.
        """
        src = Path(pdf_path)
        if not src.exists():
            raise FileNotFoundError(f"PDF file not found: {src}")

        if output_path is None:
            out_dir = Path(self._config.output_dir)
            out_dir.mkdir(parents=True, exist_ok=True)
            dest = out_dir / f"{src.stem}.md"
        else:
            dest = Path(output_path)
            dest.parent.mkdir(parents=True, exist_ok=True)

        images_dir = None
        if self._config.extract_images:
            images_dir = dest.parent / "images"
            images_dir.mkdir(parents=True, exist_ok=True)

        with PDFDocument.open(src) as pdf:
            result = self.convert_document(pdf, name=src.name, images_dir=images_dir)

        dest.write_text(result.markdown, encoding="utf-8")
        print(f"Saved: {dest}")
        return str(dest.resolve())

    def convert_bytes(self, pdf_bytes: bytes, name: str = "document") -> str:
        """
        Convert PDF bytes to a Markdown string (no file I/O).

        Returns:
            The stitched Markdown of the whole document.
        """
        with PDFDocument.from_bytes(pdf_bytes, name=name) as pdf:
            return self.convert_document(pdf, name=name).markdown

    def convert_document(
        self,
        pdf,
        name: Optional[str] = None,
        images_dir: Optional[Path] = None,
    ) -> DocumentResult:
        """
        Convert an open document.

        Args:
            pdf: A PDFDocument, or any object with the same page accessors.
            name: Display name used in status lines.
            images_dir: Where cropped figures are written when image
                extraction is on. Links are made relative to its parent.

        Raises:
            ConfigurationError: no configured provider can take the document.
        """
        name = name or getattr(pdf, "name", "document")
        page_count = pdf.page_count
        warnings: List[str] = []

        preliminary = DocumentProfile(
            page_count=page_count,
            has_copyrighted_content=self._config.has_copyrighted_content,
        )
        provider_id = self._registry.best_for(preliminary)
        if provider_id is None:
            raise ConfigurationError("No LLM provider is configured")
        extractor = DocumentExtractor(self._registry.get(provider_id), self._config)
        capability = extractor.provider.capability

        print(f"Converting {name} ({page_count} pages) with {capability.display_name} ...")
        if page_count == 0:
            return DocumentResult(name=name, markdown="", provider=provider_id)

        profile = self._analyze(extractor, pdf, page_count, warnings)

        outline = pdf.outline() if hasattr(pdf, "outline") else []
        if outline:
            profile = replace(profile, has_toc=True)
        complexity = classify_complexity(profile, pdf, outline)
        pipeline = self._pipeline_for(complexity)
        print(
            f"Using {pipeline.value} pipeline "
            f"(complexity: {complexity.level.value}, score: {complexity.score})"
        )

        if outline:
            headings = outline
        elif pipeline is PipelineType.DIRECT:
            headings = []
        else:
            headings = self._extract_headings(extractor, pdf, profile, warnings)

        forest = build_section_forest(headings, page_count)
        warnings.extend(find_page_anomalies(forest))

        windows = self._plan(forest, page_count, pipeline, capability)

        if self._config.parallel_windows:
            results = self._run_parallel(extractor, pdf, windows, profile, forest)
        else:
            results = self._run_sequential(extractor, pdf, windows, profile, forest)

        state = ContinuityState()
        contents: List[str] = []
        for window, unit in zip(windows, results):
            state = fold_continuity(state, unit)
            label = _unit_label(window)
            warnings.extend(f"{label}: {w}" for w in unit.warnings)

            content = strip_repeating_elements(unit.content, profile.header_pattern, profile.footer_pattern)
            images = unit.images
            resolver = None
            if self._config.extract_images and images_dir is not None:
                images = self._describe_images(extractor, pdf, window, images)
                resolver = self._image_resolver(pdf, window, images_dir, name)
            contents.append(replace_image_placeholders(content, images, resolver))

        if state.pending_references:
            ids = ", ".join(sorted(ref.id for ref in state.pending_references))
            warnings.append(f"Unresolved references at end of document: {ids}")

        for warning in warnings:
            print(f"Warning: {warning}")

        return DocumentResult(
            name=name,
            markdown=merge_units(contents),
            units=results,
            profile=profile,
            headings=headings,
            forest=forest,
            windows=windows,
            provider=provider_id,
            complexity=complexity,
            warnings=warnings,
            degraded=any(unit.degraded for unit in results),
        )

    # ------------------------------------------------------------------
    # Analysis and structure
    # ------------------------------------------------------------------

    def _analyze(self, extractor: DocumentExtractor, pdf, page_count: int, warnings: List[str]) -> DocumentProfile:
        header, footer = detect_repeating_patterns(pdf)
        text = sample_analysis_text(pdf)

        pdf_bytes = None
        images: List[bytes] = []
        if extractor.provider.capability.accepts_page_count(page_count):
            pdf_bytes = pdf.to_bytes()
        elif not any(pdf.page_text(p).strip() for p in range(1, min(page_count, 5) + 1)):
            # No text layer: let the model look at the first page instead.
            images = [pdf.render_page(1, self._config.dpi, self._config.image_size)]

        try:
            profile = extractor.analyze(pdf_bytes=pdf_bytes, text=text, page_count=page_count, images=images)
        except (ProviderError, ResponseParseError) as exc:
            warnings.append(f"Document analysis failed, using defaults: {exc}")
            profile = DocumentProfile(page_count=page_count)

        return replace(
            profile,
            page_count=page_count,
            header_pattern=header or profile.header_pattern,
            footer_pattern=footer or profile.footer_pattern,
            has_copyrighted_content=profile.has_copyrighted_content or self._config.has_copyrighted_content,
        )

    def _extract_headings(
        self, extractor: DocumentExtractor, pdf, profile: DocumentProfile, warnings: List[str]
    ) -> List[Heading]:
        pdf_bytes = None
        text = ""
        if extractor.provider.capability.accepts_page_count(profile.page_count):
            pdf_bytes = pdf.to_bytes()
        else:
            parts = [f"--- Page {p} ---\n{pdf.page_text(p).strip()}" for p in range(1, profile.page_count + 1)]
            text = "\n\n".join(parts)[:_HEADING_TEXT_LIMIT]

        try:
            return extractor.extract_headings(profile, pdf_bytes=pdf_bytes, text=text)
        except (ProviderError, ResponseParseError) as exc:
            warnings.append(f"Structure extraction failed, converting without headings: {exc}")
            return []

    def _pipeline_for(self, complexity: DocumentComplexity) -> PipelineType:
        if self._config.pipeline == "auto":
            return complexity.pipeline
        return PipelineType(self._config.pipeline)

    def _plan(
        self, forest: List[Section], page_count: int, pipeline: PipelineType, capability: ProviderCapability
    ) -> List[WindowSpec]:
        """
        Vision providers always go page by page. Native PDF providers take the
        whole document in one call on the direct pipeline when it fits, fixed
        size windows on the light pipeline and section-aligned windows on full.
        """
        if not capability.supports_native_pdf:
            return plan_windows(forest, page_count, 1)
        if pipeline is PipelineType.DIRECT and capability.accepts_page_count(page_count):
            return plan_windows(forest, page_count, page_count)

        target = min(self._config.window_size, capability.max_pdf_pages or self._config.window_size)
        return plan_windows(
            forest,
            page_count,
            target,
            slack=self._config.window_slack if pipeline is PipelineType.FULL else 0,
            boundary_depth=self._config.boundary_depth,
        )

    # ------------------------------------------------------------------
    # Unit processing
    # ------------------------------------------------------------------

    def _convert_unit(self, extractor: DocumentExtractor, pdf, window: WindowSpec, context) -> ConversionResult:
        if window.page_count == 1 and not extractor.provider.capability.supports_native_pdf:
            with self._pdf_lock:
                png = pdf.render_page(window.start_page, self._config.dpi, self._config.image_size)
            return extractor.convert_page(png, context)

        with self._pdf_lock:
            excerpt = pdf.extract_page_range(window.start_page, window.end_page)
        return extractor.convert_window(excerpt, context)

    def _complete(self, extractor: DocumentExtractor, result: ConversionResult) -> ConversionResult:
        """Fill a missing summary so the next unit still gets one."""
        if result.summary or result.degraded or not result.content.strip():
            return result
        result.summary = extractor.summarize(result.content, self._config.summary_max_chars)
        return result

    def _run_sequential(self, extractor, pdf, windows, profile, forest) -> List[ConversionResult]:
        state = ContinuityState()
        results: List[ConversionResult] = []

        for window in tqdm(windows, desc="Converting"):
            context = assemble_context(window, profile, state, forest)
            # One worker per unit: a timed-out call is abandoned, never waited on.
            pool = ThreadPoolExecutor(max_workers=1)
            future = pool.submit(self._convert_unit, extractor, pdf, window, context)
            try:
                result = future.result(timeout=self._config.unit_timeout)
            except FuturesTimeout:
                result = degraded_result(
                    _unit_label(window),
                    TimeoutError(f"no answer within {self._config.unit_timeout:g}s"),
                )
            except Exception as exc:
                result = degraded_result(_unit_label(window), exc)
            finally:
                pool.shutdown(wait=False, cancel_futures=True)

            result = self._complete(extractor, result)
            state = fold_continuity(state, result)
            results.append(result)

        return results

    def _run_parallel(self, extractor, pdf, windows, profile, forest) -> List[ConversionResult]:
        # Every unit starts from an empty continuity state; results are
        # buffered and handed back in window order.
        initial = ContinuityState()
        results: Dict[int, ConversionResult] = {}

        with ThreadPoolExecutor(max_workers=self._config.max_workers) as pool:
            futures = {
                pool.submit(
                    self._convert_unit,
                    extractor,
                    pdf,
                    window,
                    assemble_context(window, profile, initial, forest),
                ): i
                for i, window in enumerate(windows)
            }
            with tqdm(total=len(windows), desc="Converting") as bar:
                for future in as_completed(futures):
                    i = futures[future]
                    try:
                        results[i] = future.result()
                    except Exception as exc:
                        results[i] = degraded_result(_unit_label(windows[i]), exc)
                    bar.update(1)

        return [results[i] for i in range(len(windows))]

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def _describe_images(self, extractor: DocumentExtractor, pdf, window: WindowSpec, images: Dict[str, ImageInfo]) -> Dict[str, ImageInfo]:
        """Ask the model about images it located without describing them."""
        described = dict(images)
        for image_id, info in images.items():
            if info.description != "Image" or info.type is not ImageType.OTHER:
                continue
            try:
                with self._pdf_lock:
                    png = pdf.crop_region(info.page or window.start_page, info.bbox, self._config.dpi)
            except Exception as exc:
                print(f"Warning: could not crop image {image_id}: {exc}")
                continue
            image_type, description = extractor.classify_image(png)
            described[image_id] = replace(info, type=image_type, description=description)
        return described

    def _image_resolver(self, pdf, window: WindowSpec, images_dir: Path, name: str):
        stem = Path(name).stem

        def _resolve(info: ImageInfo) -> Optional[str]:
            page = info.page or window.start_page
            try:
                with self._pdf_lock:
                    png = pdf.crop_region(page, info.bbox, self._config.dpi)
            except Exception as exc:
                print(f"Warning: could not crop image {info.id} from page {page}: {exc}")
                return None

            filename = f"{stem}_p{page}_{info.id}.png"
            (images_dir / filename).write_bytes(png)
            return f"{images_dir.name}/{filename}"

        return _resolve


def _unit_label(window: WindowSpec) -> str:
    if window.start_page == window.end_page:
        return f"page {window.start_page}"
    return f"window {window.number} (pages {window.start_page}-{window.end_page})"
