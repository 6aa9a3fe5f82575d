from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import cv2
import numpy as np
from PIL import Image, ImageEnhance

from .errors import ConfigurationError
from .types import RecognizedText


def _poly_to_xyxy(poly: list[list[float]] | list[tuple[float, float]]) -> tuple[int, int, int, int]:
    xs = [p[0] for p in poly]
    ys = [p[1] for p in poly]
    x0, y0, x1, y1 = min(xs), min(ys), max(xs), max(ys)
    return int(x0), int(y0), int(x1), int(y1)


def preprocess_image(image: Image.Image) -> Image.Image:
    """Binarize, denoise and sharpen a scanned page before recognition."""
    gray = cv2.cvtColor(np.array(image.convert("RGB")), cv2.COLOR_RGB2GRAY)

    # adaptive threshold copes with uneven lighting on newsprint scans
    binary = cv2.adaptiveThreshold(gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 11, 2)
    denoised = cv2.fastNlMeansDenoising(binary, None, 10, 7, 21)
    kernel = np.array([[-1, -1, -1], [-1, 9, -1], [-1, -1, -1]])
    sharpened = cv2.filter2D(denoised, -1, kernel)

    processed = ImageEnhance.Contrast(Image.fromarray(sharpened)).enhance(1.5)
    return processed.convert("RGB")


def tokens_to_text(tokens: list[dict[str, Any]], line_tolerance: int = 10) -> str:
    """Join OCR tokens in reading order: rows top to bottom, then left to right."""
    if not tokens:
        return ""
    ordered = sorted(tokens, key=lambda t: (t["bbox_xyxy"][1], t["bbox_xyxy"][0]))

    lines: list[list[dict[str, Any]]] = []
    line_y: int | None = None
    for t in ordered:
        y0 = t["bbox_xyxy"][1]
        if line_y is None or abs(y0 - line_y) > line_tolerance:
            lines.append([])
            line_y = y0
        lines[-1].append(t)

    return "\n".join(" ".join(t["text"] for t in sorted(line, key=lambda t: t["bbox_xyxy"][0])) for line in lines)


@dataclass
class LocalOcrExtractor:
    lang: str = "en"
    preprocess: bool = False
    _reader: Any | None = None

    def _get_reader(self) -> Any:
        if self._reader is None:
            try:
                import easyocr
            except ImportError as e:
                raise ConfigurationError("local OCR requires easyocr (pip install archive-ocr-compare[local-ocr])") from e
            self._reader = easyocr.Reader(self.lang.split(","), gpu=False)
        return self._reader

    def extract_tokens(self, image: Image.Image) -> list[dict[str, Any]]:
        if self.preprocess:
            image = preprocess_image(image)
        results = self._get_reader().readtext(np.array(image))

        tokens = []
        for bbox, text, confidence in results:
            xyxy = _poly_to_xyxy(bbox)
            tokens.append({
                "text": text,
                "confidence": float(confidence),
                "bbox_xyxy": [xyxy[0], xyxy[1], xyxy[2], xyxy[3]],
            })
        return tokens

    def recognize(self, page_id: str, image: Image.Image) -> RecognizedText:
        return RecognizedText(job_id=f"local:{page_id}", text=tokens_to_text(self.extract_tokens(image)))
