"""Configuration for the finance tracker core.

Defaults live here and every field can be overridden through a
``FINTRACK_*`` environment variable.  Malformed overrides are ignored
and the default is kept.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

MIN_PIN_LENGTH = 4
MAX_PIN_LENGTH = 6

_ENV_PREFIX = "FINTRACK_"


@dataclass(frozen=True)
class TrackerConfig:
    pin_length: int = 4
    max_failed_attempts: int = 5
    lockout_seconds: int = 300
    lock_timeout_minutes: int = 5
    search_debounce: float = 0.3
    refresh_interval: float = 0.1
    backup_reminder_days: int = 7
    pie_label_threshold: float = 0.05
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "TrackerConfig":
        """Build a config from ``FINTRACK_*`` variables, keeping defaults for bad values."""
        env = os.environ if environ is None else environ
        defaults = cls()

        def read(name: str, cast, default):
            raw = env.get(_ENV_PREFIX + name)
            if raw is None or raw == "":
                return default
            try:
                return cast(raw)
            except ValueError:
                return default

        pin_length = read("PIN_LENGTH", int, defaults.pin_length)
        if not MIN_PIN_LENGTH <= pin_length <= MAX_PIN_LENGTH:
            pin_length = defaults.pin_length
        lock_timeout = read("LOCK_TIMEOUT", int, defaults.lock_timeout_minutes)
        if lock_timeout < 0:
            lock_timeout = defaults.lock_timeout_minutes

        return cls(
            pin_length=pin_length,
            max_failed_attempts=max(1, read("MAX_FAILED_ATTEMPTS", int, defaults.max_failed_attempts)),
            lockout_seconds=max(0, read("LOCKOUT_SECONDS", int, defaults.lockout_seconds)),
            lock_timeout_minutes=lock_timeout,
            search_debounce=read("SEARCH_DEBOUNCE", float, defaults.search_debounce),
            refresh_interval=read("REFRESH_INTERVAL", float, defaults.refresh_interval),
            backup_reminder_days=read("BACKUP_REMINDER_DAYS", int, defaults.backup_reminder_days),
            log_level=read("LOG_LEVEL", str.upper, defaults.log_level),
        )


def configure_logging(config: TrackerConfig) -> None:
    level = logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
