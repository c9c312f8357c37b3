"""
Settings loader (``payroll_config.settings``).

Parses a deployment YAML file such as::

    database:
      url: postgresql://payroll:secret@db/payroll
      pool_size: 10
      create_tables: false
    logging:
      level: INFO
    payroll:
      allow_salary_fallback: true
      approver_roles: [super_admin, account_admin]
    leave:
      weekend_days: [6, 7]

Every section is optional.  The ``payroll`` and ``leave`` sections are kept
as plain mappings; the module configs validate them when a session is built.

``compute_checksum`` hashes the parsed document so a running deployment can
log exactly which settings it started with.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from payroll_kernel.logging_config import get_logger

logger = get_logger("config.settings")

SECTIONS = frozenset({"database", "logging", "payroll", "leave"})
DATABASE_KEYS = frozenset({
    "url", "echo", "pool_size", "max_overflow", "pool_timeout", "pool_recycle", "create_tables",
})


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
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


@dataclass(frozen=True)
class DatabaseSettings:
    """Arguments for ``init_engine_from_url``."""

    url: str = "sqlite://"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    create_tables: bool = False

    def __post_init__(self):
        if not self.url:
            raise ValueError("database.url cannot be empty")
        if self.pool_size < 1:
            raise ValueError(f"database.pool_size must be positive, got {self.pool_size}")
        if self.max_overflow < 0:
            raise ValueError(f"database.max_overflow cannot be negative, got {self.max_overflow}")

    def engine_kwargs(self) -> dict[str, Any]:
        return {
            "echo": self.echo,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
            "pool_recycle": self.pool_recycle,
        }


@dataclass(frozen=True)
class PayrollSettings:
    """One deployment's settings, as read from YAML."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    log_level: str = "INFO"
    payroll: dict[str, Any] = field(default_factory=dict)
    leave: dict[str, Any] = field(default_factory=dict)
    checksum: str = ""
    source: str | None = None

    def __post_init__(self):
        level = self.log_level.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"logging.level must be a logging level name, got '{self.log_level}'")
        object.__setattr__(self, "log_level", level)

    @property
    def level(self) -> int:
        return logging.getLevelNamesMapping()[self.log_level]


def settings_from_dict(data: dict[str, Any], source: str | None = None) -> PayrollSettings:
    """Build ``PayrollSettings`` from an already-parsed document."""
    unknown = set(data) - SECTIONS
    if unknown:
        raise ValueError(f"Unknown settings sections: {sorted(unknown)}")

    database = _section(data, "database")
    unknown_db = set(database) - DATABASE_KEYS
    if unknown_db:
        raise ValueError(f"Unknown database settings: {sorted(unknown_db)}")

    return PayrollSettings(
        database=DatabaseSettings(**database),
        log_level=str(_section(data, "logging").get("level", "INFO")),
        payroll=_section(data, "payroll"),
        leave=_section(data, "leave"),
        checksum=compute_checksum(data),
        source=source,
    )


def load_settings(path: Path | str) -> PayrollSettings:
    """Read and validate a settings file."""
    path = Path(path)
    settings = settings_from_dict(load_yaml_file(path), source=str(path))
    logger.info(
        "settings_loaded",
        extra={
            "source": settings.source,
            "checksum": settings.checksum,
            "dialect": settings.database.url.split(":", 1)[0],
        },
    )
    return settings


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"'{name}' section must be a mapping, got {type(value).__name__}")
    return dict(value)
