"""Entry point for running archive_ocr_compare as a module.

Usage:
    python -m archive_ocr_compare <command> [options]
"""
from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
