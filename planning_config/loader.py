"""
Settings loader (``planning_config.loader``).

Responsibility
--------------
Reads the YAML settings file, applies environment overrides, and parses
the result into the frozen dataclasses of ``planning_config.schema``.
Callers use ``planning_config.get_active_config()`` instead of this
module.

Invariants enforced
-------------------
* Required keys are never defaulted silently: a missing ``database.url``
  raises ``ValueError``.
* ``compute_checksum`` is deterministic over the merged settings, so two
  processes with the same effective settings report the same checksum.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from planning_config.schema import (
    VALID_LOG_LEVELS,
    VALID_WEEK_STARTS,
    DatabaseSettings,
    KernelSettings,
    LoggingSettings,
    ReportingSettings,
)

ENV_DATABASE_URL = "PLANNING_DATABASE_URL"
ENV_LOG_LEVEL = "PLANNING_LOG_LEVEL"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping")
    return data


def apply_environment(
    data: dict[str, Any], environ: Mapping[str, str],
) -> dict[str, Any]:
    """Return a copy of ``data`` with environment overrides applied."""
    merged = {key: dict(value) if isinstance(value, dict) else value
              for key, value in data.items()}
    if environ.get(ENV_DATABASE_URL):
        merged.setdefault("database", {})["url"] = environ[ENV_DATABASE_URL]
    if environ.get(ENV_LOG_LEVEL):
        merged.setdefault("logging", {})["level"] = environ[ENV_LOG_LEVEL]
    return merged


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"Section '{name}' must be a mapping")
    return value


def _non_negative_int(section: dict[str, Any], key: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"database.{key} must be a non-negative integer, got {value!r}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    url = data.get("url")
    if not url or not isinstance(url, str):
        raise ValueError("database.url is required")
    echo = data.get("echo", False)
    if not isinstance(echo, bool):
        raise ValueError(f"database.echo must be a boolean, got {echo!r}")
    return DatabaseSettings(
        url=url,
        echo=echo,
        pool_size=_non_negative_int(data, "pool_size", 20),
        max_overflow=_non_negative_int(data, "max_overflow", 10),
        pool_timeout=_non_negative_int(data, "pool_timeout", 30),
        pool_recycle=_non_negative_int(data, "pool_recycle", 3600),
    )


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    level = str(data.get("level", "INFO")).upper()
    if level not in VALID_LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {VALID_LOG_LEVELS}, got {level!r}")
    return LoggingSettings(level=level)


def parse_reporting(data: dict[str, Any]) -> ReportingSettings:
    # Windows are always UTC.
    unknown = sorted(set(data) - {"week_start"})
    if unknown:
        raise ValueError(f"Unknown reporting settings: {unknown}")
    week_start = str(data.get("week_start", "monday")).lower()
    if week_start not in VALID_WEEK_STARTS:
        raise ValueError(
            f"reporting.week_start must be one of {VALID_WEEK_STARTS}, got {week_start!r}"
        )
    return ReportingSettings(week_start=week_start)


def parse_settings(data: dict[str, Any], source: str = "") -> KernelSettings:
    """
    Parse merged settings data.

    Raises:
        ValueError: On a missing required key or an invalid value.
    """
    return KernelSettings(
        name=str(data.get("name", "planning-kernel")),
        version=str(data.get("version", "1")),
        database=parse_database(_section(data, "database")),
        logging=parse_logging(_section(data, "logging")),
        reporting=parse_reporting(_section(data, "reporting")),
        source=source,
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
