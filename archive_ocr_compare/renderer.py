from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path

import fitz  # PyMuPDF
from PIL import Image

from .errors import OutOfRange, RenderError
from .job import RunPaths
from .types import RenderedPage
from .utils import write_text


def _open(document: str | Path) -> fitz.Document:
    path = Path(document)
    if not path.is_file():
        raise RenderError(f"document not found: {path}")
    try:
        doc = fitz.open(path)
    except Exception as e:
        raise RenderError(f"cannot open document {path.name}: {e}") from e
    if not doc.is_pdf or doc.page_count == 0:
        doc.close()
        raise RenderError(f"not a readable PDF: {path.name}")
    return doc


def page_count(document: str | Path) -> int:
    doc = _open(document)
    try:
        return doc.page_count
    finally:
        doc.close()


@dataclass(frozen=True)
class PageRenderer:
    dpi: int = 200
    paths: RunPaths | None = None

    def render(self, document: str | Path, page_number: int) -> RenderedPage:
        """Render one 1-based page and read its text layer.

        The image and the baseline text come from two separate PyMuPDF calls and
        are never reconciled; the text is returned exactly as PyMuPDF gives it.
        """
        path = Path(document)
        doc = _open(path)
        try:
            if not isinstance(page_number, int) or not 1 <= page_number <= doc.page_count:
                raise OutOfRange(f"page {page_number} outside 1..{doc.page_count} in {path.name}")

            zoom = self.dpi / 72.0
            matrix = fitz.Matrix(zoom, zoom)
            try:
                page = doc.load_page(page_number - 1)
                pix = page.get_pixmap(matrix=matrix, alpha=False)
                img = Image.open(BytesIO(pix.tobytes("png"))).convert("RGB")
                baseline_text = page.get_text("text")
            except Exception as e:
                raise RenderError(f"failed to render {path.name} page {page_number}: {e}") from e
        finally:
            doc.close()

        page_id = f"page_{page_number:03d}"
        rel_path = None
        if self.paths is not None:
            rel_path = f"pages/{page_id}.png"
            abs_path = self.paths.run_dir / rel_path
            abs_path.parent.mkdir(parents=True, exist_ok=True)
            img.save(abs_path, format="PNG")
            write_text(self.paths.text_dir / f"{page_id}_baseline.txt", baseline_text)

        return RenderedPage(
            source_ref=f"{path.name}#page={page_number}",
            page_number=page_number,
            image=img,
            baseline_text=baseline_text,
            image_path=rel_path,
        )
