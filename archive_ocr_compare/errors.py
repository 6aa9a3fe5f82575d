from __future__ import annotations


class ArchiveOcrError(Exception):
    """Base class for every error raised by the comparison pipeline."""


class NetworkError(ArchiveOcrError):
    pass


class ParseError(ArchiveOcrError):
    pass


class OutOfRange(ArchiveOcrError, IndexError):
    pass


class RenderError(ArchiveOcrError):
    pass


class Timeout(ArchiveOcrError, TimeoutError):
    pass


class ConfigurationError(ArchiveOcrError, ValueError):
    pass


class OcrServiceError(ArchiveOcrError):
    def __init__(self, reason: str, job_id: str | None = None):
        self.reason = reason
        self.job_id = job_id
        msg = f"job {job_id} failed: {reason}" if job_id else reason
        super().__init__(msg)
