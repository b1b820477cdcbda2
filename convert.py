"""
Script to convert PDFs to Markdown using the docstitch package.

Usage:
    python convert.py <pdf_file> [--provider auto|claude|gemini|openai|groq|ollama]
"""
import sys
from pathlib import Path

# Ensure the project root is in sys.path
sys.path.insert(0, str(Path(__file__).parent))

from docstitch.cli import main

if __name__ == "__main__":
    main()
