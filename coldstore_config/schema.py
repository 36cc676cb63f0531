"""
LedgerSettings schema.

Typed, frozen settings produced by the loader from YAML.  Nothing outside
``coldstore_config`` constructs these from files or the environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30


@dataclass(frozen=True)
class TransactionSettings:
    """Retry policy for units of work aborted with TransientError."""

    max_attempts: int = 3
    backoff_seconds: float = 0.05


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class LedgerSettings:
    database: DatabaseSettings
    transactions: TransactionSettings = field(default_factory=TransactionSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
