from __future__ import annotations

from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Iterator

from .cloud_ocr import CloudOcrClient
from .comparator import compare_sources, filter_results, match_results
from .errors import ArchiveOcrError, ConfigurationError, OutOfRange
from .job import RunPaths, record_error, record_event, snapshot_input
from .locator import DocumentLocator
from .ocr import LocalOcrExtractor
from .renderer import PageRenderer
from .structured import low_confidence, parse_characters
from .types import MatchReport, OcrJob, RenderedPage, SearchResult, TextSource
from .utils import utc_now_iso, write_json, write_text
from .writer import RunWriter


@dataclass
class RunOptions:
    phrase: str
    page_number: int = 1
    input_path: str | None = None  # local PDF; skips search + download
    keywords: str | None = None
    search_field: str | None = None
    result_index: int | None = None  # None: first result whose snippet contains the phrase
    before: int = 10
    after: int = 10
    dpi: int = 200
    local_ocr: bool = False
    cloud_ocr: bool = True
    structured_xml: bool = False
    low_confidence_threshold: int = 60


@dataclass
class ComparisonResult:
    document_path: Path
    page: RenderedPage
    reports: dict[TextSource, MatchReport]
    search_results: list[SearchResult] = field(default_factory=list)


class ComparisonPipeline:
    def __init__(
        self,
        paths: RunPaths,
        opts: RunOptions,
        *,
        locator: DocumentLocator | None = None,
        cloud: CloudOcrClient | None = None,
        local_ocr: LocalOcrExtractor | None = None,
        renderer: PageRenderer | None = None,
    ):
        self.paths = paths
        self.opts = opts
        self.locator = locator
        self.cloud = cloud
        self.local_ocr = local_ocr
        self.renderer = renderer or PageRenderer(dpi=opts.dpi, paths=paths)
        self.writer = RunWriter(paths=paths)

    @contextmanager
    def _stage(self, name: str) -> Iterator[None]:
        # Failures are recorded, then surfaced; partial artifacts stay on disk.
        record_event(self.paths, name, status="started")
        try:
            yield
        except ArchiveOcrError as e:
            record_error(self.paths, stage=name, message=f"{type(e).__name__}: {e}")
            raise
        record_event(self.paths, name, status="done")

    def _locate(self, metrics: dict[str, Any]) -> tuple[Path, list[SearchResult]]:
        if self.opts.input_path:
            with self._stage("input"):
                return snapshot_input(self.paths, self.opts.input_path), []

        if self.locator is None or not self.opts.keywords:
            with self._stage("input"):
                raise ConfigurationError("either input_path or keywords with a locator is required")

        with self._stage("search"):
            results = self.locator.search(self.opts.keywords, self.opts.search_field)
            write_json(self.paths.text_dir / "search_results.json", [asdict(r) for r in results])
            hits = match_results(results, self.opts.phrase, before=self.opts.before, after=self.opts.after)
            metrics["search_results"] = len(results)
            metrics["search_matches"] = hits.count

            if self.opts.result_index is not None:
                if not 0 <= self.opts.result_index < len(results):
                    raise OutOfRange(f"result index {self.opts.result_index} outside 0..{len(results) - 1}")
                chosen = results[self.opts.result_index]
            else:
                candidates = filter_results(results, self.opts.phrase)
                if not candidates:
                    raise ArchiveOcrError(f"no search result snippet contains {self.opts.phrase!r}")
                chosen = candidates[0]

        with self._stage("download"):
            document = self.locator.download(chosen.url, self.paths.input_dir)
            record_event(self.paths, "download", url=chosen.url, path=str(document))
        return document, results

    def _cloud_pass(self, page: RenderedPage, page_id: str, metrics: dict[str, Any]) -> str:
        assert self.cloud is not None

        def on_poll(job: OcrJob, polls: int) -> None:
            record_event(self.paths, "cloud_ocr", job_id=job.id, status=job.status.value, poll=polls)

        with self._stage("cloud_ocr"):
            recognized = self.cloud.recognize(page.image, on_poll=on_poll)
            metrics["cloud_ocr_polls"] += self.cloud.last_poll_count
            write_text(self.paths.text_dir / f"{page_id}_cloud.txt", recognized.text)

        if self.opts.structured_xml:
            with self._stage("cloud_ocr_xml"):
                _, body = self.cloud.recognize_raw(page.image, "xml", on_poll=on_poll)
                metrics["cloud_ocr_polls"] += self.cloud.last_poll_count
                (self.paths.text_dir / f"{page_id}_cloud.xml").write_bytes(body)
                suspicious = low_confidence(parse_characters(body), self.opts.low_confidence_threshold)
                write_json(
                    self.paths.reports_dir / "low_confidence_chars.json",
                    [{"char": c.char, "confidence": c.confidence, "variants": c.variants} for c in suspicious],
                )
        return recognized.text

    def run(self, run_id: str) -> ComparisonResult:
        metrics: dict[str, Any] = {
            "created_at": utc_now_iso(),
            "search_results": 0,
            "search_matches": 0,
            "page_number": self.opts.page_number,
            "baseline_chars": 0,
            "local_ocr_chars": 0,
            "cloud_ocr_chars": 0,
            "cloud_ocr_polls": 0,
        }
        document, results = self._locate(metrics)

        run_meta = {
            "run_id": run_id,
            "phrase": self.opts.phrase,
            "document": document.name,
            "page_number": self.opts.page_number,
            "created_at": metrics["created_at"],
        }

        with self._stage("render"):
            page = self.renderer.render(document, self.opts.page_number)
        page_id = f"page_{page.page_number:03d}"

        texts: dict[TextSource, str] = {TextSource.BASELINE: page.baseline_text}
        metrics["baseline_chars"] = len(page.baseline_text)

        if self.opts.local_ocr:
            extractor = self.local_ocr or LocalOcrExtractor()
            with self._stage("local_ocr"):
                local = extractor.recognize(page_id, page.image)
                write_text(self.paths.text_dir / f"{page_id}_local.txt", local.text)
            texts[TextSource.LOCAL_OCR] = local.text
            metrics["local_ocr_chars"] = len(local.text)

        if self.opts.cloud_ocr:
            if self.cloud is None:
                with self._stage("cloud_ocr"):
                    raise ConfigurationError("cloud_ocr requested without a CloudOcrClient")
            texts[TextSource.CLOUD_OCR] = self._cloud_pass(page, page_id, metrics)
            metrics["cloud_ocr_chars"] = len(texts[TextSource.CLOUD_OCR])

        with self._stage("compare"):
            reports = compare_sources(texts, self.opts.phrase, before=self.opts.before, after=self.opts.after)
            self.writer.write_final(run_meta=run_meta, reports=reports, metrics=metrics)

        return ComparisonResult(document_path=document, page=page, reports=reports, search_results=results)
