"""Shared fakes for the comparison pipeline tests.

Nothing here touches the network or sleeps: HTTP goes through FakeSession,
the cloud OCR service through FakeTransport, time through FakeClock.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import fitz
import pytest
import requests

from archive_ocr_compare.job import create_run_dirs, init_run_outputs
from archive_ocr_compare.types import JobStatus, OcrJob


# ═══════════════════════════════════════════════════════════════════════════════
# FAKES
# ═══════════════════════════════════════════════════════════════════════════════

class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeTransport:
    """Scripted cloud OCR service.

    ``statuses`` is consumed one entry per status poll; the last entry repeats.
    """

    def __init__(
        self,
        *,
        submit_status: JobStatus = JobStatus.SUBMITTED,
        statuses: list[JobStatus] | None = None,
        result: bytes = b"",
        error: str | None = None,
        finished_list: list[OcrJob] | None = None,
        job_id: str = "task-1",
    ) -> None:
        self.job_id = job_id
        self.submit_status = submit_status
        self.statuses = list(statuses or [JobStatus.FINISHED])
        self.result = result
        self.error = error
        self.finished_list = finished_list
        self.calls: list[tuple[str, Any]] = []
        self.submitted: list[tuple[bytes, str]] = []

    def _job(self, status: JobStatus) -> OcrJob:
        return OcrJob(
            id=self.job_id,
            status=status,
            result_url=f"https://results.example/{self.job_id}" if status is JobStatus.FINISHED else None,
            error=self.error if status is JobStatus.FAILED else None,
        )

    def submit(self, image_bytes: bytes, export_format: str) -> OcrJob:
        self.calls.append(("submit", export_format))
        self.submitted.append((image_bytes, export_format))
        return self._job(self.submit_status)

    def status(self, job_id: str) -> OcrJob:
        self.calls.append(("status", job_id))
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return self._job(status)

    def list_finished(self) -> list[OcrJob]:
        self.calls.append(("list_finished", None))
        if self.finished_list is not None:
            return list(self.finished_list)
        return []

    def download(self, url: str) -> bytes:
        self.calls.append(("download", url))
        return self.result

    def count(self, name: str) -> int:
        return sum(1 for c in self.calls if c[0] == name)


class FakeResponse:
    def __init__(self, *, text: str = "", content: bytes | None = None, status_code: int = 200, url: str = "") -> None:
        self.text = text
        self.content = content if content is not None else text.encode("utf-8")
        self.status_code = status_code
        self.url = url
        self.closed = False

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error for url: {self.url}")

    def iter_content(self, chunk_size: int = 1024):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Routes requests by (METHOD, url) to canned responses and records every call."""

    def __init__(self, routes: dict[tuple[str, str], FakeResponse | Exception] | None = None) -> None:
        self.routes = dict(routes or {})
        self.calls: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        route = self.routes.get((method, url))
        if route is None:
            raise requests.ConnectionError(f"no route for {method} {url}")
        if isinstance(route, Exception):
            raise route
        if not route.url:
            route.url = url
        return route

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self.request("GET", url, **kwargs)


# ═══════════════════════════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════════════════════════

@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_transport() -> Callable[..., FakeTransport]:
    return FakeTransport


@pytest.fixture
def make_session() -> Callable[..., FakeSession]:
    return FakeSession


@pytest.fixture
def make_response() -> Callable[..., FakeResponse]:
    return FakeResponse


@pytest.fixture
def make_pdf(tmp_path: Path) -> Callable[..., Path]:
    """Write a small PDF with one text line per page."""

    def _make(pages: list[str], name: str = "issue.pdf") -> Path:
        path = tmp_path / name
        doc = fitz.open()
        for text in pages:
            page = doc.new_page(width=612, height=792)
            if text:
                page.insert_text((72, 72), text, fontsize=12)
        doc.save(path)
        doc.close()
        return path

    return _make


@pytest.fixture
def run_paths(tmp_path: Path):
    paths = create_run_dirs(tmp_path / "workspace", "2026-01-01/00-00-00__test")
    init_run_outputs(paths)
    return paths


SEARCH_FORM_HTML = """
<html><head><title>Newspaper Archive</title></head>
<body>
<div id="search">
  <form action="/results" method="get" name="searchForm">
    <input type="hidden" name="collection" value="mississippi">
    <input type="text" name="q" value="">
    <select name="field">
      <option value="all" selected>All fields</option>
      <option value="fulltext">Full text</option>
      <option value="title">Title</option>
    </select>
    <input type="submit" name="go" value="Search">
  </form>
</div>
</body></html>
"""

# 13 snippets; only one contains the contiguous phrase "James Meredith".
MEREDITH_SNIPPETS = [
    "Clarion-Ledger 1962 ... the registrar told James Meredith that he would ...",
    "Meredith, James H. applied again on Tuesday",
    "Jamcs Meredith was escorted by marshals",
    "James H. Meredith entered the Lyceum",
    "Mr. Meredith declined to comment",
    "James Mere dith arrived in Oxford",
    "JAMES MEREDITH case reached the Fifth Circuit",
    "James Meridith, 29, an Air Force veteran",
    "James  Mer-edith and his attorneys",
    "the Meredith family of Kosciusko",
    "James Meredtih enrolled",
    "Governor Barnett and James",
    "Meredith's application was filed",
]

MEREDITH_RESULTS_HTML = (
    "<html><body><h2>Results</h2><ul id=\"results\">"
    + "".join(
        f'<li class="result"><a href="/docs/issue_{i:02d}.pdf">Issue {i}</a>'
        f'<p class="snippet">{s}</p></li>'
        for i, s in enumerate(MEREDITH_SNIPPETS)
    )
    + "</ul></body></html>"
)


@pytest.fixture
def search_form_html() -> str:
    return SEARCH_FORM_HTML


@pytest.fixture
def meredith_results_html() -> str:
    return MEREDITH_RESULTS_HTML
