from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from .job import RunPaths
from .types import MatchReport, TextSource
from .utils import utc_now_iso, write_json


@dataclass
class RunWriter:
    paths: RunPaths

    def write_report(self, report: MatchReport) -> None:
        write_json(self.paths.reports_dir / f"{report.source.value}.json", report.to_dict())

    def write_final(
        self,
        run_meta: dict[str, Any],
        reports: Mapping[TextSource, MatchReport],
        metrics: dict[str, Any],
    ) -> None:
        now = utc_now_iso()

        # Mark completion only when final outputs are successfully written.
        metrics_out = dict(metrics)
        metrics_out["finished"] = True
        metrics_out["completed_at"] = now
        metrics_out["match_counts"] = {src.value: r.count for src, r in reports.items()}

        run_out = dict(run_meta)
        run_out["finished"] = True
        run_out["completed_at"] = now

        for report in reports.values():
            self.write_report(report)
        write_json(self.paths.result_json, {"run": run_out, "reports": [r.to_dict() for r in reports.values()]})
        write_json(self.paths.metrics_json, metrics_out)
