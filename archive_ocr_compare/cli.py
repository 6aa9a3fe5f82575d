from __future__ import annotations

import argparse
from pathlib import Path

from .cloud_ocr import CloudOcrClient
from .comparator import compare_sources, format_report, match_results
from .config import AppConfig, cloud_config_from_env, load_config
from .errors import ArchiveOcrError, ConfigurationError
from .job import create_run_dirs, init_run_outputs, new_run_id
from .locator import DocumentLocator
from .ocr import LocalOcrExtractor
from .pipeline import ComparisonPipeline, RunOptions
from .renderer import PageRenderer
from .types import TextSource
from .utils import read_text, write_text


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="archive_ocr_compare")
    p.add_argument("--config", default=None, help="JSON config (archive + cloudOcr sections)")
    sub = p.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", help="Search the archive form and list results")
    search.add_argument("--keywords", required=True)
    search.add_argument("--field", default=None, help="Search field scope (form selector value)")
    search.add_argument("--phrase", default=None, help="Only show snippets containing this phrase")
    search.add_argument("--before", type=int, default=10)

    render = sub.add_parser("render", help="Render one PDF page and dump its baseline text")
    render.add_argument("--input", required=True, help="PDF path")
    render.add_argument("--page", type=int, required=True, help="1-based page number")
    render.add_argument("--dpi", type=int, default=200)
    render.add_argument("--out-dir", required=True)

    cloud = sub.add_parser("cloud-ocr", help="Recognize an image with the cloud OCR service")
    cloud.add_argument("--image", required=True)
    cloud.add_argument("--format", default=None, choices=["txt", "xml"], help="Export format (default: cloudOcr.exportFormat)")
    cloud.add_argument("--out", required=True)

    compare = sub.add_parser("compare", help="Phrase-match two or more text files")
    compare.add_argument("--phrase", required=True)
    compare.add_argument("--before", type=int, default=10)
    compare.add_argument("--after", type=int, default=10)
    compare.add_argument(
        "--text",
        action="append",
        required=True,
        metavar="SOURCE=PATH",
        help=f"Text file per source; SOURCE is one of {', '.join(s.value for s in TextSource)}",
    )

    run = sub.add_parser("run", help="Run the full comparison pipeline")
    run.add_argument("--phrase", required=True)
    run.add_argument("--page", type=int, default=1)
    run.add_argument("--input", default=None, help="Local PDF (skips search + download)")
    run.add_argument("--keywords", default=None)
    run.add_argument("--field", default=None)
    run.add_argument("--result-index", type=int, default=None)
    run.add_argument("--before", type=int, default=10)
    run.add_argument("--after", type=int, default=10)
    run.add_argument("--dpi", type=int, default=200)
    run.add_argument("--workspace", default="./workspace", help="Workspace root")
    run.add_argument("--local-ocr", action="store_true", help="Also run EasyOCR on the rendered page")
    run.add_argument("--no-cloud-ocr", action="store_true")
    run.add_argument("--structured-xml", action="store_true", help="Also fetch the structured XML export")
    run.add_argument("--lang", default="en", help="EasyOCR language codes, comma separated")

    return p


def _cloud_client(cfg: AppConfig) -> CloudOcrClient:
    return CloudOcrClient(cloud_config_from_env(cfg.cloud_ocr))


def _parse_text_args(values: list[str]) -> dict[TextSource, str]:
    texts: dict[TextSource, str] = {}
    for v in values:
        name, sep, path = v.partition("=")
        if not sep:
            raise SystemExit(f"--text expects SOURCE=PATH, got {v!r}")
        try:
            source = TextSource(name)
        except ValueError:
            raise SystemExit(f"unknown source {name!r}") from None
        try:
            texts[source] = read_text(path)
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigurationError(f"cannot read --text {path}: {e}") from e
    return texts


def cmd_search(args: argparse.Namespace, cfg: AppConfig) -> int:
    results = DocumentLocator(config=cfg.archive).search(args.keywords, args.field)
    print(f"results={len(results)}")
    if args.phrase:
        report = match_results(results, args.phrase, before=args.before)
        print(f"matches={report.count}")
        for m in report.matches:
            print(f"...{m.preceding_context}[{m.matched_phrase}]")
    for r in results:
        print(f"{r.url}\t{r.context}")
    return 0


def cmd_render(args: argparse.Namespace, cfg: AppConfig) -> int:
    page = PageRenderer(dpi=args.dpi).render(args.input, args.page)
    out_dir = Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    image_path = out_dir / f"page_{page.page_number:03d}.png"
    text_path = out_dir / f"page_{page.page_number:03d}_baseline.txt"
    page.image.save(image_path, format="PNG")
    write_text(text_path, page.baseline_text)
    print(f"image={image_path}")
    print(f"baseline={text_path} chars={len(page.baseline_text)}")
    return 0


def cmd_cloud_ocr(args: argparse.Namespace, cfg: AppConfig) -> int:
    client = _cloud_client(cfg)
    job, body = client.recognize_raw(args.image, args.format)
    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(body)
    print(f"job_id={job.id} polls={client.last_poll_count} out={out}")
    return 0


def cmd_compare(args: argparse.Namespace, cfg: AppConfig) -> int:
    texts = _parse_text_args(args.text)
    reports = compare_sources(texts, args.phrase, before=args.before, after=args.after)
    for report in reports.values():
        for line in format_report(report):
            print(line)
    return 0


def cmd_run(args: argparse.Namespace, cfg: AppConfig) -> int:
    run_id = new_run_id()
    paths = create_run_dirs(args.workspace, run_id)
    init_run_outputs(paths)

    opts = RunOptions(
        phrase=args.phrase,
        page_number=args.page,
        input_path=args.input,
        keywords=args.keywords,
        search_field=args.field,
        result_index=args.result_index,
        before=args.before,
        after=args.after,
        dpi=args.dpi,
        local_ocr=bool(args.local_ocr),
        cloud_ocr=not args.no_cloud_ocr,
        structured_xml=bool(args.structured_xml),
    )
    pipeline = ComparisonPipeline(
        paths=paths,
        opts=opts,
        locator=None if args.input else DocumentLocator(config=cfg.archive),
        cloud=_cloud_client(cfg) if opts.cloud_ocr else None,
        local_ocr=LocalOcrExtractor(lang=args.lang) if opts.local_ocr else None,
    )
    result = pipeline.run(run_id=run_id)
    for report in result.reports.values():
        print(f"{report.source.value}={report.count}")
    print(str(paths.run_dir))
    return 0


COMMANDS = {
    "search": cmd_search,
    "render": cmd_render,
    "cloud-ocr": cmd_cloud_ocr,
    "compare": cmd_compare,
    "run": cmd_run,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    handler = COMMANDS.get(args.command)
    if handler is None:
        raise SystemExit(2)

    try:
        cfg = load_config(args.config)
        return handler(args, cfg)
    except ArchiveOcrError as e:
        print(f"{args.command}_failed: {type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
