"""
Command-line interface for PDF-to-Markdown conversion.

Usage:
    docstitch <pdf_path> [options]

Examples:
    docstitch report.pdf
    docstitch report.pdf --provider gemini --output report.md
    docstitch book.pdf --provider claude --window-size 30 --slack 5
    docstitch notes.pdf --provider claude --pipeline direct
    docstitch scan.pdf --provider openai --model gpt-4o --parallel --workers 8
    docstitch --list-providers
"""

import argparse
import sys

from .config import DocStitchConfig
from .converter import PDFToMarkdownConverter
from .errors import ConfigurationError
from .selector import ProviderRegistry

_MODEL_ATTRS = {
    "claude": "anthropic_model",
    "openai": "openai_model",
    "gemini": "gemini_model",
    "groq": "groq_model",
    "ollama": "ollama_model",
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docstitch",
        description="Convert a PDF document to Markdown using an LLM, window by window.",
    )

    parser.add_argument("pdf_path", nargs="?", help="Path to the source PDF file.")

    parser.add_argument(
        "-o", "--output",
        metavar="PATH",
        help="Destination Markdown file path. Default: auto-generated in output_dir.",
    )
    parser.add_argument(
        "-p", "--provider",
        choices=["auto", "claude", "gemini", "openai", "groq", "ollama"],
        help="LLM provider to use. Overrides DOCSTITCH_LLM_PROVIDER from .env.",
    )
    parser.add_argument(
        "-m", "--model",
        help="Model name for the selected provider.",
    )
    parser.add_argument(
        "-w", "--workers",
        type=int,
        help="Number of worker threads. Default: 4.",
    )
    parser.add_argument(
        "--window-size",
        type=int,
        help="Pages per window for providers that read PDFs natively.",
    )
    parser.add_argument(
        "--slack",
        type=int,
        help="Pages a window may be shortened by to end on a section boundary.",
    )
    parser.add_argument(
        "--pipeline",
        choices=["auto", "direct", "light", "full"],
        help="Conversion pipeline. Default: chosen from the document's complexity.",
    )
    parser.add_argument(
        "--parallel",
        action="store_true",
        help="Convert units concurrently; continuity between them is dropped.",
    )
    parser.add_argument(
        "--copyrighted",
        action="store_true",
        help="Treat the document as copyrighted and avoid filtering providers.",
    )
    parser.add_argument(
        "--no-native",
        action="store_true",
        help="Do not prefer providers that read PDFs natively.",
    )
    parser.add_argument(
        "--no-formulas",
        action="store_true",
        help="Disable LaTeX formula preservation in the conversion prompt.",
    )
    parser.add_argument(
        "--extract-images",
        action="store_true",
        help="Crop located figures and save them under images/ next to the output.",
    )
    parser.add_argument(
        "--list-providers",
        action="store_true",
        help="Show known providers, whether they are configured and exit.",
    )

    return parser


def apply_args(config: DocStitchConfig, args: argparse.Namespace) -> DocStitchConfig:
    """Overlay command-line options on a config loaded from the environment."""
    if args.provider:
        config.llm_provider = args.provider

    if args.model:
        model_attr = _MODEL_ATTRS.get(config.llm_provider)
        if model_attr:
            setattr(config, model_attr, args.model)
        else:
            print("Warning: --model needs an explicit --provider; ignoring it")

    if args.workers:
        config.max_workers = args.workers
    if args.window_size:
        config.window_size = args.window_size
    if args.slack is not None:
        config.window_slack = args.slack
    if args.pipeline:
        config.pipeline = args.pipeline
    if args.parallel:
        config.parallel_windows = True
    if args.copyrighted:
        config.has_copyrighted_content = True
    if args.no_native:
        config.prefer_native_pdf = False
    if args.no_formulas:
        config.preserve_formulas = False
    if args.extract_images:
        config.extract_images = True
    return config


def _print_providers(registry: ProviderRegistry) -> None:
    for info in registry.provider_info(page_count=100):
        status = "configured" if info["configured"] else "not configured"
        pages = info["max_pdf_pages"] or "unbounded"
        print(
            f"{info['id']:<8} {info['name']:<20} {status:<15} "
            f"native_pdf={info['native_pdf']} max_pages={pages} "
            f"~${info['estimated_cost']:.2f}/100 pages"
        )


def main(argv=None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    config = apply_args(DocStitchConfig(), args)

    if args.list_providers:
        _print_providers(ProviderRegistry(config))
        return
    if not args.pdf_path:
        parser.error("pdf_path is required")

    try:
        converter = PDFToMarkdownConverter(config)
        output_path = converter.convert_file(args.pdf_path, args.output)
    except (ConfigurationError, FileNotFoundError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    print(f"Done: {output_path}")


if __name__ == "__main__":
    main()
