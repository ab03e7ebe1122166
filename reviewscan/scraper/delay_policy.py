"""Randomised waits between navigating actions."""

from __future__ import annotations

import json
import random
from dataclasses import dataclass
from typing import Optional

from . import config
from .logging_utils import _scraper_event
from .storage import KeyValueTier
from .utils import log_line


@dataclass(frozen=True)
class DelaySettings:
    min_ms: int
    max_ms: int

    def to_dict(self) -> dict:
        return {"min": self.min_ms, "max": self.max_ms}


def default_delay() -> DelaySettings:
    """The configured range, read at call time so runtime adjustments apply."""

    return DelaySettings(
        min_ms=config.DELAY_BETWEEN_PAGES_MIN_MS,
        max_ms=config.DELAY_BETWEEN_PAGES_MAX_MS,
    )


def next_delay(min_ms: int, max_ms: int, *, rng: Optional[random.Random] = None) -> int:
    """Return a uniform random integer in ``[min_ms, max_ms]``."""

    low, high = int(min_ms), int(max_ms)
    if low > high:
        low, high = high, low
    return (rng or random).randint(low, high)


def normalize_delay_settings(min_ms: int, max_ms: int) -> DelaySettings:
    """Loosely validate a configured delay range.

    Nothing is rejected: negative values are clamped to zero, an inverted
    range is swapped, and very small values only produce a warning.
    """

    low, high = max(0, int(min_ms)), max(0, int(max_ms))
    if low > high:
        _scraper_event(
            "state",
            phase="config",
            kind="delay_range_swapped",
            min_ms=low,
            max_ms=high,
        )
        low, high = high, low
    if low < config.DELAY_WARN_FLOOR_MS:
        log_line(
            f"[CONFIG] Delay minimum {low}ms is below {config.DELAY_WARN_FLOOR_MS}ms; "
            "the listing may start serving challenges."
        )
    return DelaySettings(min_ms=low, max_ms=high)


def load_delay_settings(tier: KeyValueTier) -> DelaySettings:
    """Read the configured range; missing or zero values fall back to defaults."""

    try:
        raw = tier.get(config.DELAY_SETTINGS_KEY)
    except Exception as exc:  # noqa: BLE001
        log_line(f"[CONFIG] Unable to read delay settings: {exc}")
        return default_delay()

    if not raw:
        return default_delay()

    default = default_delay()
    try:
        payload = json.loads(raw)
        min_ms = int(payload.get("min") or default.min_ms)
        max_ms = int(payload.get("max") or default.max_ms)
    except (TypeError, ValueError, AttributeError) as exc:
        log_line(f"[CONFIG] Ignoring malformed delay settings {raw!r}: {exc}")
        return default

    return DelaySettings(min_ms=min_ms, max_ms=max_ms)


def save_delay_settings(tier: KeyValueTier, min_ms: int, max_ms: int) -> DelaySettings:
    settings = normalize_delay_settings(min_ms, max_ms)
    tier.set(config.DELAY_SETTINGS_KEY, json.dumps(settings.to_dict()))
    return settings


__all__ = [
    "DelaySettings",
    "default_delay",
    "next_delay",
    "normalize_delay_settings",
    "load_delay_settings",
    "save_delay_settings",
]
