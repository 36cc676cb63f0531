"""
coldstore_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration -- sits above ``coldstore_kernel``.  The kernel MUST
    NEVER import from ``coldstore_config``; callers (scripts, service
    wiring) pass the resulting values into kernel functions such as
    ``init_engine_from_url`` and ``run_in_transaction``.

Resolution order (later wins):
    1. Packaged ``defaults.yaml``.
    2. The YAML file passed as ``path`` (or named by ``COLDSTORE_CONFIG``).
    3. ``COLDSTORE_DATABASE_URL`` and ``COLDSTORE_LOG_LEVEL``.

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``ValueError`` -- the merged settings fail validation.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from coldstore_config.loader import (
    load_yaml_file,
    log_level,
    merge_settings,
    parse_settings,
    retry_options,
)
from coldstore_config.schema import (
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
    TransactionSettings,
)

_logger = logging.getLogger("coldstore_kernel.config")

_DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

ENV_CONFIG_PATH = "COLDSTORE_CONFIG"
ENV_DATABASE_URL = "COLDSTORE_DATABASE_URL"
ENV_LOG_LEVEL = "COLDSTORE_LOG_LEVEL"


def get_active_config(path: Path | str | None = None) -> LedgerSettings:
    """The ONLY public configuration entrypoint.

    Args:
        path: Optional YAML file overriding the packaged defaults.  Falls
            back to the file named by ``COLDSTORE_CONFIG`` when omitted.

    Returns:
        Frozen LedgerSettings.

    Raises:
        FileNotFoundError: If the override file does not exist.
        ValueError: If the merged settings are invalid.
    """
    data = load_yaml_file(_DEFAULTS_FILE)

    override = path or os.environ.get(ENV_CONFIG_PATH)
    if override:
        data = merge_settings(data, load_yaml_file(Path(override)))

    env_url = os.environ.get(ENV_DATABASE_URL)
    if env_url:
        data = merge_settings(data, {"database": {"url": env_url}})
    env_level = os.environ.get(ENV_LOG_LEVEL)
    if env_level:
        data = merge_settings(data, {"logging": {"level": env_level}})

    settings = parse_settings(data)
    _logger.info(
        "config_loaded",
        extra={
            "config_source": str(override) if override else "defaults",
            "dialect": settings.database.url.split(":", 1)[0],
            "max_attempts": settings.transactions.max_attempts,
        },
    )
    return settings


__all__ = [
    "ENV_CONFIG_PATH",
    "ENV_DATABASE_URL",
    "ENV_LOG_LEVEL",
    "DatabaseSettings",
    "LedgerSettings",
    "LoggingSettings",
    "TransactionSettings",
    "get_active_config",
    "log_level",
    "retry_options",
]
