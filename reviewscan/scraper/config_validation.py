from __future__ import annotations

from typing import Literal

from . import config
from .delay_policy import normalize_delay_settings
from .logging_utils import _scraper_event
from .utils import log_line

Entrypoint = Literal["ui", "cli", "tests"]


def _raise_config_error(message: str, *, entrypoint: Entrypoint, error: str) -> None:
    _scraper_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint})")
    raise ValueError(message)


def validate_runtime_config(entrypoint: Entrypoint) -> None:
    """Validate runtime configuration for the given entrypoint.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    The delay range is only normalised (swapped or clamped) and logged.
    """

    if config.MIN_FREE_MB < 0:
        _raise_config_error(
            "MIN_FREE_MB must be non-negative.",
            entrypoint=entrypoint,
            error="min_free_mb_invalid",
        )

    if config.TICK_INTERVAL_SECONDS <= 0:
        _raise_config_error(
            "TICK_INTERVAL_SECONDS must be greater than zero.",
            entrypoint=entrypoint,
            error="invalid_tick_interval",
        )

    timeout_fields = [
        ("PLAYWRIGHT_NAV_TIMEOUT_SECONDS", config.PLAYWRIGHT_NAV_TIMEOUT_SECONDS),
        ("PAGE_LOAD_TIMEOUT_MS", config.PAGE_LOAD_TIMEOUT_MS),
        ("PAGE_LOAD_CHECK_INTERVAL_MS", config.PAGE_LOAD_CHECK_INTERVAL_MS),
    ]

    for field_name, value in timeout_fields:
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
            )

    settings = normalize_delay_settings(
        config.DELAY_BETWEEN_PAGES_MIN_MS, config.DELAY_BETWEEN_PAGES_MAX_MS
    )
    if (settings.min_ms, settings.max_ms) != (
        config.DELAY_BETWEEN_PAGES_MIN_MS,
        config.DELAY_BETWEEN_PAGES_MAX_MS,
    ):
        _scraper_event(
            "state",
            phase="config",
            context="runtime_validation",
            kind="config_adjustment",
            field="DELAY_BETWEEN_PAGES",
            value=(config.DELAY_BETWEEN_PAGES_MIN_MS, config.DELAY_BETWEEN_PAGES_MAX_MS),
            adjusted=(settings.min_ms, settings.max_ms),
            entrypoint=entrypoint,
        )
        config.DELAY_BETWEEN_PAGES_MIN_MS = settings.min_ms
        config.DELAY_BETWEEN_PAGES_MAX_MS = settings.max_ms


__all__ = ["validate_runtime_config", "Entrypoint"]
