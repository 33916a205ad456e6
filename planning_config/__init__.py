"""
planning_config -- single public entrypoint for runtime settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_config()``.  No other component reads settings files or
    environment variables directly.

Architecture position:
    Configuration.  Sits above ``planning_kernel``; the kernel MUST NEVER
    import from ``planning_config``.  Callers pass the resulting values
    (database URL, log level) into kernel functions.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``ValueError`` -- missing required keys or invalid values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``planning_config_loaded`` log entry with the settings name, version
    and checksum.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from planning_config.loader import apply_environment, load_yaml_file, parse_settings
from planning_config.schema import (
    DatabaseSettings,
    KernelSettings,
    LoggingSettings,
    ReportingSettings,
)

_logger = logging.getLogger("planning_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DatabaseSettings",
    "KernelSettings",
    "LoggingSettings",
    "ReportingSettings",
    "get_active_config",
]


def get_active_config(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> KernelSettings:
    """The ONLY public settings entrypoint.

    Args:
        config_path: YAML settings file.  Defaults to
            ``planning_config/sets/default.yaml``.
        environ: Environment mapping used for overrides.  Defaults to
            ``os.environ``.

    Raises:
        FileNotFoundError: If the settings file does not exist.
        ValueError: If validation fails.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    if not path.is_file():
        raise FileNotFoundError(f"Settings file not found: {path}")

    data = apply_environment(
        load_yaml_file(path), os.environ if environ is None else environ,
    )
    settings = parse_settings(data, source=str(path))

    _logger.info(
        "planning_config_loaded",
        extra={
            "config_name": settings.name,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "database_backend": "sqlite" if settings.database.is_sqlite else "server",
            "log_level": settings.logging.level,
        },
    )
    return settings
