"""Page rendering and baseline text extraction with PyMuPDF."""
from __future__ import annotations

import pytest
from PIL import Image

from archive_ocr_compare.errors import OutOfRange, RenderError
from archive_ocr_compare.renderer import PageRenderer, page_count


class TestPageRenderer:
    def test_render_returns_image_and_baseline(self, make_pdf):
        pdf = make_pdf(["Mr. Meredith spoke at noon.", "Second page"])

        page = PageRenderer(dpi=72).render(pdf, 1)

        assert isinstance(page.image, Image.Image)
        assert page.image.size == (612, 792)
        assert page.image.mode == "RGB"
        assert "Mr. Meredith spoke at noon." in page.baseline_text
        assert page.source_ref == "issue.pdf#page=1"
        assert page.page_number == 1
        assert page.image_path is None

    def test_dpi_scales_image(self, make_pdf):
        pdf = make_pdf(["x"])
        page = PageRenderer(dpi=144).render(pdf, 1)
        assert page.image.size == (1224, 1584)

    def test_last_page(self, make_pdf):
        pdf = make_pdf(["first", "second", "third"])
        page = PageRenderer(dpi=50).render(pdf, 3)
        assert "third" in page.baseline_text

    def test_blank_page_gives_empty_text(self, make_pdf):
        pdf = make_pdf([""])
        page = PageRenderer(dpi=50).render(pdf, 1)

        assert page.image is not None
        assert page.baseline_text.strip() == ""

    @pytest.mark.parametrize("page_number", [0, -1, 3, 100])
    def test_out_of_range(self, make_pdf, page_number):
        pdf = make_pdf(["one", "two"])
        with pytest.raises(OutOfRange):
            PageRenderer(dpi=50).render(pdf, page_number)

    def test_out_of_range_is_index_error(self, make_pdf):
        pdf = make_pdf(["one"])
        with pytest.raises(IndexError):
            PageRenderer(dpi=50).render(pdf, 2)

    def test_corrupt_document(self, tmp_path):
        bad = tmp_path / "broken.pdf"
        bad.write_bytes(b"%PDF-1.4\nthis is not really a pdf")
        with pytest.raises(RenderError):
            PageRenderer(dpi=50).render(bad, 1)

    def test_missing_document(self, tmp_path):
        with pytest.raises(RenderError):
            PageRenderer(dpi=50).render(tmp_path / "nope.pdf", 1)

    def test_writes_artifacts_into_run_dir(self, make_pdf, run_paths):
        pdf = make_pdf(["James Meredith"])
        page = PageRenderer(dpi=50, paths=run_paths).render(pdf, 1)

        assert page.image_path == "pages/page_001.png"
        assert (run_paths.run_dir / "pages" / "page_001.png").exists()
        baseline = (run_paths.text_dir / "page_001_baseline.txt").read_text(encoding="utf-8")
        assert baseline == page.baseline_text


def test_page_count(make_pdf):
    assert page_count(make_pdf(["a", "b", "c"])) == 3
