"""
Configuration Loader (``coldstore_config.loader``).

Responsibility
--------------
Loads YAML settings files, merges them over the packaged defaults and
parses the result into ``coldstore_config.schema`` dataclasses.  The single
public entry point for runtime config is
``coldstore_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong shape or types  -> ``ValueError`` with the offending key.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from coldstore_config.schema import (
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
    TransactionSettings,
)

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


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


def merge_settings(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_settings(merged[key], value)
        else:
            merged[key] = value
    return merged


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' must be a mapping")
    return section


def _int(section: dict[str, Any], key: str, default: int, minimum: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ValueError(f"'{key}' must be an integer >= {minimum}, got {value!r}")
    return value


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    """Build LedgerSettings from a merged settings dict."""
    db = _section(data, "database")
    url = db.get("url")
    if not isinstance(url, str) or not url:
        raise ValueError("'database.url' is required")

    tx = _section(data, "transactions")
    backoff = tx.get("backoff_seconds", 0.05)
    if isinstance(backoff, bool) or not isinstance(backoff, (int, float)) or backoff < 0:
        raise ValueError(f"'backoff_seconds' must be a non-negative number, got {backoff!r}")

    log = _section(data, "logging")
    level = str(log.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"'logging.level' must be one of {sorted(_LOG_LEVELS)}, got {level!r}")

    return LedgerSettings(
        database=DatabaseSettings(
            url=url,
            echo=bool(db.get("echo", False)),
            pool_size=_int(db, "pool_size", 20, 1),
            max_overflow=_int(db, "max_overflow", 10, 0),
            pool_timeout=_int(db, "pool_timeout", 30, 1),
        ),
        transactions=TransactionSettings(
            max_attempts=_int(tx, "max_attempts", 3, 1),
            backoff_seconds=float(backoff),
        ),
        logging=LoggingSettings(level=level),
    )


def log_level(settings: LedgerSettings) -> int:
    """The ``logging`` module constant for the configured level."""
    return logging.getLevelName(settings.logging.level)


def retry_options(settings: LedgerSettings) -> dict[str, Any]:
    """
    Keyword arguments for ``coldstore_kernel.db.engine.run_in_transaction``.

    Usage::

        run_in_transaction(work, **retry_options(get_active_config()))
    """
    return {
        "max_attempts": settings.transactions.max_attempts,
        "backoff_seconds": settings.transactions.backoff_seconds,
    }
