from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from PIL import Image


@dataclass(frozen=True)
class SearchResult:
    url: str
    context: str  # whitespace-normalized snippet around the hit


@dataclass(frozen=True)
class RenderedPage:
    source_ref: str  # e.g. issue.pdf#page=3
    page_number: int  # 1-based
    image: Image.Image = field(compare=False, repr=False)
    baseline_text: str = field(repr=False)
    image_path: str | None = None  # relative path under run dir (pages/page_003.png)


class JobStatus(str, Enum):
    SUBMITTED = "Submitted"
    PENDING = "Pending"
    FINISHED = "Finished"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.FINISHED, JobStatus.FAILED)


_ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.SUBMITTED: {JobStatus.SUBMITTED, JobStatus.PENDING, JobStatus.FINISHED, JobStatus.FAILED},
    JobStatus.PENDING: {JobStatus.PENDING, JobStatus.FINISHED, JobStatus.FAILED},
    JobStatus.FINISHED: set(),
    JobStatus.FAILED: set(),
}


@dataclass(frozen=True)
class OcrJob:
    id: str
    status: JobStatus = JobStatus.SUBMITTED
    result_url: str | None = None
    error: str | None = None

    def transition(self, status: JobStatus, *, result_url: str | None = None, error: str | None = None) -> "OcrJob":
        """Return the job moved to ``status``.

        Terminal jobs never move again and a pending job never goes back to submitted.
        """
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(f"invalid job transition: {self.status.value} -> {status.value}")
        return replace(
            self,
            status=status,
            result_url=result_url if result_url is not None else self.result_url,
            error=error if error is not None else self.error,
        )


@dataclass(frozen=True)
class RecognizedText:
    job_id: str
    text: str


class TextSource(str, Enum):
    BASELINE = "Baseline"
    CLOUD_OCR = "CloudOcr"
    LOCAL_OCR = "LocalOcr"
    SEARCH_SNIPPET = "SearchSnippet"


@dataclass(frozen=True)
class Match:
    preceding_context: str
    matched_phrase: str
    following_context: str
    start: int  # character offset of the match in the source text

    def to_dict(self) -> dict[str, Any]:
        return {
            "preceding_context": self.preceding_context,
            "matched_phrase": self.matched_phrase,
            "following_context": self.following_context,
            "start": self.start,
        }


@dataclass(frozen=True)
class MatchReport:
    source: TextSource
    phrase: str
    matches: tuple[Match, ...] = ()

    @property
    def count(self) -> int:
        return len(self.matches)

    def __len__(self) -> int:
        return len(self.matches)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.value,
            "phrase": self.phrase,
            "count": self.count,
            "matches": [m.to_dict() for m in self.matches],
        }
