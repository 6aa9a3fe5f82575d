"""Local OCR helpers that do not need an EasyOCR model."""
from __future__ import annotations

from PIL import Image, ImageDraw

from archive_ocr_compare.ocr import LocalOcrExtractor, preprocess_image, tokens_to_text


def _tok(text, x0, y0):
    return {"text": text, "confidence": 0.9, "bbox_xyxy": [x0, y0, x0 + 40, y0 + 12]}


class TestTokensToText:
    def test_reading_order(self):
        tokens = [_tok("Meredith", 60, 12), _tok("left", 10, 40), _tok("James", 10, 10)]
        assert tokens_to_text(tokens) == "James Meredith\nleft"

    def test_empty(self):
        assert tokens_to_text([]) == ""


class TestPreprocess:
    def test_keeps_size_and_mode(self):
        img = Image.new("RGB", (120, 60), color=(230, 225, 210))
        ImageDraw.Draw(img).text((10, 20), "Meredith", fill=(20, 20, 20))

        out = preprocess_image(img)

        assert out.size == (120, 60)
        assert out.mode == "RGB"


def test_recognize_with_injected_reader():
    class Reader:
        def readtext(self, arr):
            assert arr.shape == (20, 80, 3)
            return [
                ([[40, 2], [78, 2], [78, 14], [40, 14]], "Meredith", 0.81),
                ([[2, 3], [36, 3], [36, 15], [2, 15]], "James", 0.95),
            ]

    extractor = LocalOcrExtractor(_reader=Reader())
    text = extractor.recognize("page_001", Image.new("RGB", (80, 20), color=(255, 255, 255)))

    assert text.text == "James Meredith"
    assert text.job_id == "local:page_001"
