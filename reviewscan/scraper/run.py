"""Playwright runner that drives the traversal controller on a fixed tick.

The browser, the storage tiers and the control flags are wired together
here. ``run_scrape`` is used both by the Flask control surface (on a
background thread) and by the command line.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from playwright.sync_api import Error as PWError
from playwright.sync_api import Page
from playwright.sync_api import TimeoutError as PWTimeout
from playwright.sync_api import sync_playwright

from . import config, db
from .config_validation import validate_runtime_config
from .control import ScrapeControl
from .controller import TickOutcome, TraversalController
from .events import EventBus
from .logging_utils import _scraper_event
from .page_inspector import PageInspector
from .session_store import SessionStore
from .storage import BackgroundWriter, MemoryTier, SqliteTier
from .utils import ensure_dirs, log_line, setup_run_logger

UA = config.USER_AGENT

TERMINAL_OUTCOMES = frozenset({TickOutcome.COMPLETE, TickOutcome.HALTED})


@dataclass
class ScraperRuntime:
    """Process-wide collaborators shared by the runner and the control surface."""

    fast: MemoryTier
    durable: SqliteTier
    writer: BackgroundWriter
    store: SessionStore
    events: EventBus
    control: ScrapeControl


def build_runtime() -> ScraperRuntime:
    ensure_dirs()
    fast = MemoryTier()
    durable = SqliteTier()
    writer = BackgroundWriter()
    store = SessionStore(fast, durable, writer=writer)
    bus = EventBus()
    control = ScrapeControl(durable, store, bus)
    return ScraperRuntime(
        fast=fast,
        durable=durable,
        writer=writer,
        store=store,
        events=bus,
        control=control,
    )


def _is_target_closed_error(exc: Exception) -> bool:
    message = str(exc).lower()
    return "target closed" in message or "has been closed" in message


def _safe_goto(page: Page, url: str, *, label: str, wait_until: str = "domcontentloaded") -> bool:
    """Navigate to ``url`` with bounded timeouts and structured logging."""

    try:
        _scraper_event("nav", step="goto", label=label, url=url)
        page.goto(
            url,
            wait_until=wait_until,
            timeout=config.PLAYWRIGHT_NAV_TIMEOUT_SECONDS * 1000,
        )
        return True
    except PWTimeout as exc:
        _scraper_event(
            "error",
            phase="nav",
            step="goto_timeout",
            label=label,
            url=url,
            error=str(exc),
        )
        return False
    except PWError as exc:
        step = "goto_target_closed" if _is_target_closed_error(exc) else "goto_error"
        _scraper_event(
            "error",
            phase="nav",
            step=step,
            label=label,
            url=url,
            error=str(exc),
        )
        return False


class TickLoop:
    """Fixed-interval scheduler for controller ticks.

    The first tick fires after a short initial delay, then one tick per
    interval. Waiting goes through the page so Playwright keeps processing
    navigation events between ticks. The loop ends on completion or halt,
    once a stop has been observed, when the page is closed, or after
    ``max_ticks``.
    """

    def __init__(
        self,
        controller: TraversalController,
        inspector: PageInspector,
        control: ScrapeControl,
        *,
        interval_seconds: float = config.TICK_INTERVAL_SECONDS,
        initial_delay_seconds: float = config.INITIAL_TICK_DELAY_SECONDS,
    ) -> None:
        self.controller = controller
        self.inspector = inspector
        self.control = control
        self.interval_ms = int(interval_seconds * 1000)
        self.initial_delay_ms = int(initial_delay_seconds * 1000)
        self.ticks = 0

    def _should_stop(self, outcome: TickOutcome) -> bool:
        if outcome in TERMINAL_OUTCOMES:
            return True
        return outcome == TickOutcome.IDLE and not self.control.is_scanning()

    def run(self, max_ticks: Optional[int] = None) -> TickOutcome:
        outcome = TickOutcome.NOT_READY
        self.inspector.wait(self.initial_delay_ms)
        while True:
            if self.inspector.page.is_closed():
                log_line("[RUN] Page closed; ending tick loop")
                return outcome

            outcome = self.controller.tick()
            self.ticks += 1
            if self._should_stop(outcome):
                return outcome
            if max_ticks is not None and self.ticks >= max_ticks:
                log_line(f"[RUN] Reached max ticks ({max_ticks}); last outcome {outcome.value}")
                return outcome

            self.inspector.wait(self.interval_ms)


def _resolve_start_url(start_url: Optional[str], runtime: ScraperRuntime) -> str:
    if start_url:
        return start_url
    session = runtime.store.load()
    if session is not None and session.last_observed_url:
        log_line(f"[RUN] Resuming at last observed URL {session.last_observed_url}")
        return session.last_observed_url
    return config.DEFAULT_START_URL


def run_scrape(
    start_url: Optional[str] = None,
    *,
    headless: Optional[bool] = None,
    max_ticks: Optional[int] = None,
    runtime: Optional[ScraperRuntime] = None,
    trigger: str = "cli",
) -> Dict[str, Any]:
    """Open the listing in Chromium and tick the controller until it stops."""

    ensure_dirs()
    db.initialize_schema()
    log_path = setup_run_logger()
    runtime = runtime or build_runtime()

    url = _resolve_start_url(start_url, runtime)
    if not url:
        raise ValueError("No start URL given and no stored session to resume")

    use_headless = config.HEADLESS if headless is None else bool(headless)
    _scraper_event("state", phase="run", trigger=trigger, url=url, headless=use_headless)

    outcome = TickOutcome.NOT_READY
    ticks = 0
    with sync_playwright() as pw:
        browser = pw.chromium.launch(
            headless=use_headless,
            args=[
                "--disable-blink-features=AutomationControlled",
                "--no-sandbox",
                "--disable-dev-shm-usage",
            ],
        )
        context = browser.new_context(
            user_agent=UA,
            locale="en-US",
            viewport={"width": 1368, "height": 900},
        )
        context.add_init_script(
            "Object.defineProperty(navigator, 'webdriver', {get: () => undefined});"
        )
        try:
            page = context.new_page()
            if not _safe_goto(page, url, label="start"):
                log_line("[RUN] Start page did not finish loading; ticks will wait for it")

            inspector = PageInspector(page)
            inspector.accept_cookies()

            controller = TraversalController(
                inspector, runtime.store, runtime.control, runtime.events
            )
            loop = TickLoop(controller, inspector, runtime.control)
            outcome = loop.run(max_ticks=max_ticks)
            ticks = loop.ticks
        finally:
            runtime.store.flush()
            try:
                context.close()
                browser.close()
            except PWError as exc:
                log_line(f"[RUN][WARN] Error closing browser: {exc}")

    session = runtime.store.load()
    summary = {
        "outcome": outcome.value,
        "ticks": ticks,
        "records": session.total_records if session else 0,
        "log_file": str(log_path),
    }
    _scraper_event("state", phase="run", kind="summary", **summary)
    return summary


def _cli_entrypoint(argv: Optional[List[str]] = None) -> None:  # pragma: no cover
    parser = argparse.ArgumentParser(description="Scrape a review listing filter by filter")
    parser.add_argument("--url", default=None, help="Listing or product page to start from")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--max-ticks", type=int, default=None)
    parser.add_argument("--min-delay", type=int, default=None, help="Minimum page delay (ms)")
    parser.add_argument("--max-delay", type=int, default=None, help="Maximum page delay (ms)")
    args = parser.parse_args(argv)

    ensure_dirs()
    validate_runtime_config("cli")
    runtime = build_runtime()

    if args.min_delay is not None or args.max_delay is not None:
        current = runtime.control.delay_settings()
        runtime.control.update_delay_settings(
            args.min_delay if args.min_delay is not None else current.min_ms,
            args.max_delay if args.max_delay is not None else current.max_ms,
        )

    runtime.control.start(args.url or "")
    try:
        run_scrape(
            args.url,
            headless=not args.headed,
            max_ticks=args.max_ticks,
            runtime=runtime,
        )
    finally:
        runtime.writer.shutdown()


if __name__ == "__main__":  # pragma: no cover
    _cli_entrypoint()

__all__ = ["ScraperRuntime", "build_runtime", "TickLoop", "run_scrape", "_cli_entrypoint"]
