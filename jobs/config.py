"""Runtime configuration for fetching, caching and reconciling case data."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

from pipelines.reconcile import IncreasePolicy
from pipelines.sources.feed import FEED_URL
from pipelines.sources.historical import HISTORICAL_CSV_URL
from pipelines.sources.population import POPULATION_CSV_URL
from storage.db import DEFAULT_DB_PATH

APP_NAME = "case-signals"
APP_VERSION = "0.2.0"

ENV_PREFIX = "CASE_SIGNALS_"

_DURATION_UNITS: Mapping[str, int] = {
    "s": 1,
    "sec": 1,
    "secs": 1,
    "second": 1,
    "seconds": 1,
    "m": 60,
    "min": 60,
    "mins": 60,
    "minute": 60,
    "minutes": 60,
    "h": 3600,
    "hr": 3600,
    "hour": 3600,
    "hours": 3600,
    "d": 86400,
    "day": 86400,
    "days": 86400,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)\s*([a-z]*)")


def parse_duration(raw: str | int | float | timedelta) -> timedelta:
    """Parse ``90``, ``10s``, ``1 hour`` or ``1h 30min`` into a ``timedelta``."""

    if isinstance(raw, timedelta):
        return raw
    if isinstance(raw, (int, float)):
        return timedelta(seconds=raw)
    text = raw.strip().lower()
    if not text:
        raise ValueError("Duration must not be empty.")
    seconds = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if text[position:match.start()].strip():
            break
        amount, unit = match.groups()
        if unit and unit not in _DURATION_UNITS:
            raise ValueError(f"Unknown duration unit '{unit}' in {raw!r}.")
        seconds += float(amount) * _DURATION_UNITS.get(unit or "s", 1)
        position = match.end()
    if position == 0 or text[position:].strip():
        raise ValueError(f"Could not parse duration {raw!r}.")
    return timedelta(seconds=seconds)


@dataclass(frozen=True)
class Settings:
    """Explicit configuration handed to the fetch, cache and reconcile steps."""

    historical_url: str = HISTORICAL_CSV_URL
    feed_url: str = FEED_URL
    population_url: str = POPULATION_CSV_URL
    user_agent: str = f"{APP_NAME}/{APP_VERSION}"
    timeout: timedelta = timedelta(seconds=10)
    stale_after: timedelta = timedelta(hours=1)
    increase_policy: IncreasePolicy = IncreasePolicy.SATURATING
    db_path: Path = DEFAULT_DB_PATH
    locale: str = "en"

    @property
    def timeout_seconds(self) -> float:
        return self.timeout.total_seconds()

    def with_overrides(self, **changes) -> "Settings":
        return replace(self, **{key: value for key, value in changes.items() if value is not None})


def _env(name: str, environ: Mapping[str, str]) -> str | None:
    value = environ.get(f"{ENV_PREFIX}{name}")
    if value is None or not value.strip():
        return None
    return value.strip()


def detect_locale(environ: Mapping[str, str]) -> str:
    explicit = _env("LOCALE", environ)
    if explicit:
        return explicit[:2].lower()
    for key in ("LC_ALL", "LC_MESSAGES", "LANG"):
        value = environ.get(key)
        if value and value not in ("C", "POSIX"):
            return value[:2].lower()
    return "en"


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build ``Settings`` from the environment (``.env`` files included)."""

    if environ is None:
        load_dotenv()
        environ = os.environ

    defaults = Settings()
    timeout = _env("TIMEOUT", environ)
    stale_after = _env("STALE_AFTER", environ)
    policy = _env("INCREASE_POLICY", environ)
    db_path = _env("DB_PATH", environ)

    return Settings(
        historical_url=_env("HISTORICAL_URL", environ) or defaults.historical_url,
        feed_url=_env("FEED_URL", environ) or defaults.feed_url,
        population_url=_env("POPULATION_URL", environ) or defaults.population_url,
        user_agent=_env("USER_AGENT", environ) or defaults.user_agent,
        timeout=parse_duration(timeout) if timeout else defaults.timeout,
        stale_after=parse_duration(stale_after) if stale_after else defaults.stale_after,
        increase_policy=IncreasePolicy(policy.lower()) if policy else defaults.increase_policy,
        db_path=Path(db_path) if db_path else defaults.db_path,
        locale=detect_locale(environ),
    )


__all__ = ["APP_NAME", "APP_VERSION", "Settings", "detect_locale", "load_settings", "parse_duration"]
