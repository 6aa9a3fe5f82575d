"""Client for an asynchronous cloud OCR service.

The service protocol is submit -> poll -> download:

- ``processImage`` accepts the raw image bytes and answers with a task envelope
- ``getTaskStatus`` / ``listFinishedTasks`` report task status
- a ``Completed`` task carries a ``resultUrl`` to fetch the recognized document

Every service answer is the same XML envelope::

    <response><task id="..." status="Queued" resultUrl="..." error="..."/></response>

Polling is driven by :class:`JobPoller`, which takes an injected clock so tests
can advance time without sleeping.
"""
from __future__ import annotations

import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Any, Callable, Protocol

import requests
from PIL import Image

from .config import CloudOcrConfig
from .errors import ConfigurationError, NetworkError, OcrServiceError, ParseError, Timeout
from .types import JobStatus, OcrJob, RecognizedText

# Service task statuses mapped onto the job lifecycle.
SERVICE_STATUS: dict[str, JobStatus] = {
    "Submitted": JobStatus.SUBMITTED,
    "Queued": JobStatus.PENDING,
    "InProgress": JobStatus.PENDING,
    "Completed": JobStatus.FINISHED,
    "ProcessingFailed": JobStatus.FAILED,
    "NotEnoughCredits": JobStatus.FAILED,
    "Deleted": JobStatus.FAILED,
}


class Clock(Protocol):
    def monotonic(self) -> float: ...

    def sleep(self, seconds: float) -> None: ...


class SystemClock:
    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class Transport(Protocol):
    def submit(self, image_bytes: bytes, export_format: str) -> OcrJob: ...

    def status(self, job_id: str) -> OcrJob: ...

    def list_finished(self) -> list[OcrJob]: ...

    def download(self, url: str) -> bytes: ...


def parse_task_response(body: bytes | str) -> list[OcrJob]:
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise ParseError(f"malformed OCR service response: {e}") from e

    jobs = []
    for task in root.iter("task"):
        raw_status = task.get("status", "")
        if raw_status not in SERVICE_STATUS:
            raise ParseError(f"unknown OCR task status: {raw_status!r}")
        task_id = task.get("id")
        if not task_id:
            raise ParseError("OCR task without id")
        jobs.append(
            OcrJob(
                id=task_id,
                status=SERVICE_STATUS[raw_status],
                result_url=task.get("resultUrl") or None,
                error=task.get("error") or (raw_status if SERVICE_STATUS[raw_status] is JobStatus.FAILED else None),
            )
        )
    return jobs


def _single_task(body: bytes | str) -> OcrJob:
    jobs = parse_task_response(body)
    if len(jobs) != 1:
        raise ParseError(f"expected one task in OCR service response, got {len(jobs)}")
    return jobs[0]


@dataclass
class HttpTransport:
    config: CloudOcrConfig
    session: Any = None
    language: str = "English"

    def __post_init__(self) -> None:
        if self.session is None:
            self.session = requests.Session()

    @property
    def _auth(self) -> tuple[str, str]:
        return (str(self.config.application_id), str(self.config.secret))

    def _call(self, method: str, endpoint: str, **kwargs: Any) -> bytes:
        url = f"{self.config.base_url.rstrip('/')}/{endpoint}"
        try:
            resp = self.session.request(method, url, auth=self._auth, timeout=30, **kwargs)
        except requests.RequestException as e:
            raise NetworkError(f"{method} {url} failed: {e}") from e
        if resp.status_code in (401, 403):
            raise OcrServiceError(f"authentication rejected (HTTP {resp.status_code})")
        try:
            resp.raise_for_status()
        except requests.RequestException as e:
            raise NetworkError(f"{method} {url} failed: {e}") from e
        return resp.content

    def submit(self, image_bytes: bytes, export_format: str) -> OcrJob:
        body = self._call(
            "POST",
            "processImage",
            params={"exportFormat": export_format, "language": self.language},
            data=image_bytes,
        )
        return _single_task(body)

    def status(self, job_id: str) -> OcrJob:
        return _single_task(self._call("GET", "getTaskStatus", params={"taskId": job_id}))

    def list_finished(self) -> list[OcrJob]:
        return parse_task_response(self._call("GET", "listFinishedTasks"))

    def download(self, url: str) -> bytes:
        # Result URLs are pre-signed; service credentials must not be sent along.
        try:
            resp = self.session.get(url, timeout=60)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise NetworkError(f"GET {url} failed: {e}") from e
        return resp.content


@dataclass
class JobPoller:
    """Drive one job from Submitted to Finished/Failed.

    ``step`` performs exactly one status query and one transition. ``run``
    repeats it with ``poll_interval_s`` sleeps and raises Timeout once
    ``timeout_s`` has elapsed on ``clock``.
    """

    transport: Transport
    job: OcrJob
    poll_interval_s: float
    timeout_s: float
    clock: Clock = field(default_factory=SystemClock)
    use_finished_list: bool = False
    on_poll: Callable[[OcrJob, int], None] | None = None
    polls: int = 0

    def _observe(self) -> OcrJob | None:
        if not self.use_finished_list:
            return self.transport.status(self.job.id)
        mine = [j for j in self.transport.list_finished() if j.id == self.job.id]
        if len(mine) > 1:
            raise ParseError(f"finished-task list reports job {self.job.id} {len(mine)} times")
        return mine[0] if mine else None

    def step(self) -> OcrJob:
        if self.job.status.is_terminal:
            return self.job

        observed = self._observe()
        self.polls += 1
        if observed is None or observed.status is JobStatus.SUBMITTED:
            status = JobStatus.PENDING
        else:
            status = observed.status

        self.job = self.job.transition(
            status,
            result_url=observed.result_url if observed else None,
            error=observed.error if observed else None,
        )
        if self.on_poll is not None:
            self.on_poll(self.job, self.polls)
        return self.job

    def run(self) -> OcrJob:
        started = self.clock.monotonic()
        while True:
            job = self.step()
            if job.status.is_terminal:
                return job
            elapsed = self.clock.monotonic() - started
            if elapsed >= self.timeout_s:
                raise Timeout(f"job {job.id} not finished after {elapsed:.1f}s ({self.polls} polls)")
            self.clock.sleep(min(self.poll_interval_s, self.timeout_s - elapsed))


def encode_image(image: Image.Image | bytes | str | Path) -> bytes:
    if isinstance(image, bytes):
        return image
    if isinstance(image, (str, Path)):
        try:
            return Path(image).read_bytes()
        except OSError as e:
            raise ConfigurationError(f"cannot read image {image}: {e}") from e
    buf = BytesIO()
    image.convert("RGB").save(buf, format="PNG")
    return buf.getvalue()


class CloudOcrClient:
    def __init__(
        self,
        config: CloudOcrConfig,
        transport: Transport | None = None,
        clock: Clock | None = None,
        *,
        use_finished_list: bool = False,
    ):
        # Credentials are checked before any transport exists.
        self.config = config.validate()
        self.transport = transport if transport is not None else HttpTransport(config)
        self.clock = clock if clock is not None else SystemClock()
        self.use_finished_list = use_finished_list
        self.last_poll_count = 0

    def submit(self, image: Image.Image | bytes | str | Path, export_format: str | None = None) -> OcrJob:
        observed = self.transport.submit(encode_image(image), export_format or self.config.export_format)
        job = OcrJob(id=observed.id)
        if observed.status is not JobStatus.SUBMITTED:
            job = job.transition(observed.status, result_url=observed.result_url, error=observed.error)
        return job

    def wait(self, job: OcrJob, on_poll: Callable[[OcrJob, int], None] | None = None) -> OcrJob:
        poller = JobPoller(
            transport=self.transport,
            job=job,
            poll_interval_s=self.config.poll_interval_s,
            timeout_s=self.config.timeout_s,
            clock=self.clock,
            use_finished_list=self.use_finished_list,
            on_poll=on_poll,
        )
        try:
            done = poller.run()
        finally:
            self.last_poll_count = poller.polls
        if done.status is JobStatus.FAILED:
            raise OcrServiceError(done.error or "unknown failure", job_id=done.id)
        if not done.result_url:
            raise OcrServiceError("finished without a result URL", job_id=done.id)
        return done

    def recognize_raw(
        self,
        image: Image.Image | bytes | str | Path,
        export_format: str | None = None,
        on_poll: Callable[[OcrJob, int], None] | None = None,
    ) -> tuple[OcrJob, bytes]:
        done = self.wait(self.submit(image, export_format), on_poll=on_poll)
        return done, self.transport.download(str(done.result_url))

    def recognize(
        self,
        image: Image.Image | bytes | str | Path,
        on_poll: Callable[[OcrJob, int], None] | None = None,
    ) -> RecognizedText:
        done, body = self.recognize_raw(image, "txt", on_poll=on_poll)
        try:
            text = body.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ParseError(f"job {done.id} result is not UTF-8 text: {e}") from e
        return RecognizedText(job_id=done.id, text=text)
