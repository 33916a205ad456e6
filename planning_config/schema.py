"""
Runtime settings schema.

Frozen dataclasses produced by ``planning_config.loader`` from a YAML
settings file.  ``KernelSettings`` is the only artifact handed to callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
VALID_WEEK_STARTS = ("monday", "sunday")

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection and pool settings.  Pool values apply to server databases only."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 3600

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class ReportingSettings:
    """Reporting windows.  Windows are UTC calendar days, weeks and months."""

    week_start: str = "monday"


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KernelSettings:
    """Validated settings for one process."""

    name: str
    version: str
    database: DatabaseSettings
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    reporting: ReportingSettings = field(default_factory=ReportingSettings)
    source: str = ""
    checksum: str = ""
