"""Configuration constants for the review scraper service."""
from __future__ import annotations

import os
from pathlib import Path

DATA_DIR: Path = Path(os.getenv("REVIEWSCAN_DATA_DIR", "data"))
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
EXPORTS_DIR: Path = DATA_DIR / "exports"
# SQLite database backing the durable storage tier and export history.
DB_PATH: Path = DATA_DIR / "reviewscan.db"

DEFAULT_START_URL: str = os.getenv("REVIEWSCAN_START_URL", "")

# Keys shared by both storage tiers.
SESSION_KEY: str = "review_scraper_session"
SCANNING_KEY: str = "isScanning"
DELAY_SETTINGS_KEY: str = "delaySettings"


def _parse_int(env_var: str, default: int, *, minimum: int | None = None) -> int:
    """Parse an integer from the environment, falling back to ``default``."""

    try:
        value = int(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    if minimum is not None:
        return max(minimum, value)
    return value


def _parse_flag(env_var: str, default: str) -> bool:
    return os.getenv(env_var, default).strip().lower() not in {"0", "false", "no"}


# Randomised wait between pages (milliseconds).
DELAY_BETWEEN_PAGES_MIN_MS: int = _parse_int("REVIEWSCAN_DELAY_MIN_MS", 2000)
DELAY_BETWEEN_PAGES_MAX_MS: int = _parse_int("REVIEWSCAN_DELAY_MAX_MS", 5000)
# Values below this only produce a warning.
DELAY_WARN_FLOOR_MS: int = 1000

# Fixed wait before switching to the next filter.
DELAY_BETWEEN_FILTERS_MS: int = _parse_int("REVIEWSCAN_DELAY_BETWEEN_FILTERS_MS", 3000)
# Wait after clicking "next" before re-reading the page number.
POST_NAVIGATION_WAIT_MS: int = _parse_int("REVIEWSCAN_POST_NAVIGATION_WAIT_MS", 3000)
# Settle time after a filter activation once content is ready.
FILTER_SETTLE_MS: int = _parse_int("REVIEWSCAN_FILTER_SETTLE_MS", 2000)
SCROLL_PAUSE_MS: int = _parse_int("REVIEWSCAN_SCROLL_PAUSE_MS", 1000)

PAGE_LOAD_CHECK_INTERVAL_MS: int = _parse_int("REVIEWSCAN_PAGE_LOAD_CHECK_INTERVAL_MS", 500)
PAGE_LOAD_TIMEOUT_MS: int = _parse_int("REVIEWSCAN_PAGE_LOAD_TIMEOUT_MS", 10000)

TICK_INTERVAL_SECONDS: float = float(os.getenv("REVIEWSCAN_TICK_INTERVAL_SECONDS", "1.0"))
# Delay before the first tick once the start page has loaded.
INITIAL_TICK_DELAY_SECONDS: float = float(
    os.getenv("REVIEWSCAN_INITIAL_TICK_DELAY_SECONDS", "0.5")
)

# Playwright navigation timeout for page.goto calls (seconds).
PLAYWRIGHT_NAV_TIMEOUT_SECONDS: int = _parse_int(
    "REVIEWSCAN_NAV_TIMEOUT_SECONDS", 25, minimum=1
)
HEADLESS: bool = _parse_flag("REVIEWSCAN_HEADLESS", "1")

# Durable-tier writes go through a single background worker when enabled.
ENABLE_BACKGROUND_WRITES: bool = _parse_flag("REVIEWSCAN_BACKGROUND_WRITES", "1")

EXPORTS_KEEP_MAX: int = _parse_int("REVIEWSCAN_EXPORTS_KEEP_MAX", 10, minimum=1)
MIN_FREE_MB: int = _parse_int("REVIEWSCAN_MIN_FREE_MB", 50)

USER_AGENT: str = os.getenv(
    "REVIEWSCAN_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/142.0.0.0 Safari/537.36",
)
