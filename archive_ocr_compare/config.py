from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .errors import ConfigurationError
from .utils import load_json

# Recognized cloud OCR options, keyed by their name in the config file.
CLOUD_OCR_OPTIONS: dict[str, str] = {
    "applicationId": "application_id",
    "secret": "secret",
    "pollIntervalMs": "poll_interval_ms",
    "timeoutMs": "timeout_ms",
    "baseUrl": "base_url",
    "exportFormat": "export_format",
}

ARCHIVE_OPTIONS: dict[str, str] = {
    "baseUrl": "base_url",
    "searchPath": "search_path",
    "keywordField": "keyword_field",
    "scopeField": "scope_field",
    "userAgent": "user_agent",
    "timeoutS": "timeout_s",
}

ENV_APPLICATION_ID = "CLOUD_OCR_APPLICATION_ID"
ENV_SECRET = "CLOUD_OCR_SECRET"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class CloudOcrConfig:
    application_id: str | None = None
    secret: str | None = field(default=None, repr=False)
    poll_interval_ms: int = 2000
    timeout_ms: int = 120_000
    base_url: str = "https://cloud.ocrsdk.com"
    export_format: str = "txt"

    def validate(self) -> "CloudOcrConfig":
        if not self.application_id:
            raise ConfigurationError("cloud OCR applicationId is missing")
        if not self.secret:
            raise ConfigurationError("cloud OCR secret is missing")
        if int(self.poll_interval_ms) <= 0:
            raise ConfigurationError(f"pollIntervalMs must be positive: {self.poll_interval_ms}")
        if int(self.timeout_ms) <= 0:
            raise ConfigurationError(f"timeoutMs must be positive: {self.timeout_ms}")
        return self

    @property
    def poll_interval_s(self) -> float:
        return self.poll_interval_ms / 1000.0

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0


@dataclass(frozen=True)
class ArchiveConfig:
    base_url: str = ""
    search_path: str = "/search"
    keyword_field: str = "q"
    scope_field: str = "field"
    user_agent: str = DEFAULT_USER_AGENT
    timeout_s: float = 30.0


@dataclass(frozen=True)
class AppConfig:
    archive: ArchiveConfig
    cloud_ocr: CloudOcrConfig


def _map_options(section: str, data: Mapping[str, Any], known: dict[str, str]) -> dict[str, Any]:
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ConfigurationError(f"unknown {section} option(s): {', '.join(unknown)}")
    return {known[k]: v for k, v in data.items()}


def cloud_config_from_dict(data: Mapping[str, Any]) -> CloudOcrConfig:
    return CloudOcrConfig(**_map_options("cloudOcr", data, CLOUD_OCR_OPTIONS))


def archive_config_from_dict(data: Mapping[str, Any]) -> ArchiveConfig:
    return ArchiveConfig(**_map_options("archive", data, ARCHIVE_OPTIONS))


def load_config(config_path: str | Path | None) -> AppConfig:
    try:
        data: dict[str, Any] = load_json(config_path) if config_path else {}
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"cannot read config {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"config must be a JSON object: {config_path}")
    return AppConfig(
        archive=archive_config_from_dict(data.get("archive", {})),
        cloud_ocr=cloud_config_from_dict(data.get("cloudOcr", {})),
    )


def cloud_config_from_env(
    base: CloudOcrConfig | None = None,
    environ: Mapping[str, str] | None = None,
) -> CloudOcrConfig:
    """Fill missing credentials from the environment.

    Values already present in ``base`` win over the environment.
    """
    env = os.environ if environ is None else environ
    base = base or CloudOcrConfig()
    return CloudOcrConfig(
        application_id=base.application_id or env.get(ENV_APPLICATION_ID) or None,
        secret=base.secret or env.get(ENV_SECRET) or None,
        poll_interval_ms=base.poll_interval_ms,
        timeout_ms=base.timeout_ms,
        base_url=base.base_url,
        export_format=base.export_format,
    )
