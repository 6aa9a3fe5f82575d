"""OCR quality comparison for digitized newspaper archives.

This package focuses on one linear, human-supervised run:
- search the archive form and download a matching PDF
- render a page and read its baseline text layer
- recognize the same page with a cloud OCR service (and optionally locally)
- report literal phrase matches per text source

Article segmentation is out of scope.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
