"""The traversal state machine.

One call to ``TraversalController.tick`` reads the rendered page through the
inspector, reconstructs where the traversal stands from the persisted
session, and performs at most one navigating action before returning. No
traversal state lives on the call stack between ticks; a restarted process
picks up from whatever the session store returns.

States are derived, never stored:

- idle: no session, or ``active`` is false
- awaiting filter switch: the page shows no filter while one is expected
- scraping: the page shows the expected filter
- waiting: a between-page delay is in progress (inside a tick)
- switching filter: ``current_filter_index`` is being advanced
- complete: every filter exhausted; the session is exported and cleared
- halted: switching to the next filter failed; the session is kept inactive
"""

from __future__ import annotations

import random
from enum import Enum
from typing import Callable, Optional

from . import config, events
from .control import ScrapeControl
from .delay_policy import next_delay
from .error_codes import ErrorCode
from .events import EventBus
from .exporter import CompletionExporter
from .filters import FILTER_SET, label_for
from .logging_utils import _scraper_event
from .models import ScrapeSession
from .page_inspector import PageInspector
from .session_store import SessionStore
from .utils import epoch_ms


class TickOutcome(str, Enum):
    BUSY = "busy"
    NOT_READY = "not_ready"
    CHALLENGE = "challenge"
    IDLE = "idle"
    REDIRECTED = "redirected"
    DUPLICATE = "duplicate"
    FILTER_ACTIVATION = "filter_activation"
    PAGE_ADVANCED = "page_advanced"
    FILTER_SWITCHED = "filter_switched"
    COMPLETE = "complete"
    HALTED = "halted"
    ERROR = "error"


class TraversalController:
    """Sole owner and writer of the ``ScrapeSession``."""

    def __init__(
        self,
        inspector: PageInspector,
        store: SessionStore,
        control: ScrapeControl,
        bus: EventBus,
        *,
        exporter: Optional[CompletionExporter] = None,
        clock: Callable[[], int] = epoch_ms,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.inspector = inspector
        self.store = store
        self.control = control
        self.events = bus
        self.exporter = exporter or CompletionExporter()
        self._clock = clock
        self._rng = rng
        self._in_progress = False
        self._last_processed_url = ""
        self._challenge_reported = False

    def _log(self, message: str, level: str = "info") -> None:
        self.events.emit(events.LOG, message=message, level=level)

    # ------------------------------------------------------------------
    # Tick entry point
    # ------------------------------------------------------------------

    def tick(self) -> TickOutcome:
        """Run one decision step; re-entrant calls are dropped."""

        if self._in_progress:
            return TickOutcome.BUSY

        self._in_progress = True
        try:
            return self._tick()
        except Exception as exc:  # noqa: BLE001
            _scraper_event(
                "error",
                phase="tick",
                error_code=ErrorCode.INTERNAL,
                url=self._safe_url(),
                error=str(exc),
            )
            self._log(f"Error in traversal tick: {exc}", "error")
            return TickOutcome.ERROR
        finally:
            self._in_progress = False

    def _safe_url(self) -> str:
        try:
            return self.inspector.current_url()
        except Exception:  # noqa: BLE001
            return ""

    def _tick(self) -> TickOutcome:
        inspector = self.inspector

        if not inspector.content_visible() and not inspector.no_results_present():
            return TickOutcome.NOT_READY

        if inspector.challenge_present():
            if not self._challenge_reported:
                self._challenge_reported = True
                _scraper_event(
                    "error",
                    phase="tick",
                    error_code=ErrorCode.CHALLENGE,
                    url=inspector.current_url(),
                )
                self.events.emit(
                    events.ALERT,
                    message=(
                        "Challenge page detected. Solve it manually; the scraper "
                        "continues automatically afterwards."
                    ),
                )
            return TickOutcome.CHALLENGE
        if self._challenge_reported:
            self._challenge_reported = False
            self._log("Challenge cleared - resuming")

        session = self._load_or_create()
        if session is None or not session.active:
            return TickOutcome.IDLE

        if inspector.is_detail_page():
            self._log('On a product page - looking for the "see all reviews" link')
            if inspector.follow_all_reviews_link():
                return TickOutcome.REDIRECTED

        current_url = inspector.current_url()
        if current_url == self._last_processed_url:
            return TickOutcome.DUPLICATE

        self._last_processed_url = current_url
        session.last_observed_url = current_url

        expected = session.expected_filter
        self._log(
            f"Processing: {label_for(expected)} - Page {inspector.current_page_number()}"
        )
        return self._process_page(session, expected)

    # ------------------------------------------------------------------
    # Session bootstrap and stop/resume observation
    # ------------------------------------------------------------------

    def _load_or_create(self) -> Optional[ScrapeSession]:
        session = self.store.load()
        scanning = self.control.is_scanning()

        if session is None:
            if not scanning:
                return None
            session = ScrapeSession.new(self._clock())
            self.store.save(session)
            self._log("Created new scraping session", "success")
            return session

        if session.active and not scanning:
            session.active = False
            self.store.save(session)
            self._log(f"Scraping stopped with {session.total_records} reviews kept")
        elif not session.active and scanning:
            session.active = True
            self.store.save(session)
            # The page the traversal stopped on has to be processed again.
            self._last_processed_url = ""
            self._log(
                f"Resuming session at {label_for(session.expected_filter)} "
                f"page {session.current_page_index} ({session.total_records} reviews)",
                "success",
            )
        return session

    # ------------------------------------------------------------------
    # Per-page processing
    # ------------------------------------------------------------------

    def _process_page(self, session: ScrapeSession, expected: str) -> TickOutcome:
        inspector = self.inspector
        current = inspector.current_filter()

        if current != expected:
            self._log(f"Filter mismatch: expected {expected}, got {current}", "warn")
            if current is None:
                self._log(f"Switching from all stars to {label_for(expected)}")
                if inspector.activate_filter(expected):
                    inspector.wait_for_content_ready(config.PAGE_LOAD_TIMEOUT_MS)
                    inspector.wait(config.FILTER_SETTLE_MS)
                    return TickOutcome.FILTER_ACTIVATION
                _scraper_event(
                    "state",
                    phase="filter",
                    error_code=ErrorCode.FILTER_SWITCH_FAILED,
                    filter=expected,
                    fallback="extract_unfiltered",
                )
                self._log(
                    f"Could not select {label_for(expected)}; scraping the current view instead",
                    "warn",
                )

        page_number = inspector.current_page_number()
        reviews = inspector.extract_records(expected, page_number)
        session.records.extend(reviews)
        session.current_page_index = page_number
        self.store.save(session)

        if reviews:
            self._log(
                f"Saved {len(reviews)} reviews. Total: {session.total_records}", "success"
            )
            self.events.emit(
                events.PROGRESS,
                total=session.total_records,
                filter=label_for(expected),
                page=page_number,
            )
        else:
            self._log("No reviews found on this page", "warn")

        if not inspector.has_next_page():
            self._log(f"End of {label_for(expected)} reviews", "success")
            return self._switch_filter(session)

        return self._advance(session)

    def _advance(self, session: ScrapeSession) -> TickOutcome:
        inspector = self.inspector
        settings = self.control.delay_settings()
        wait_ms = next_delay(settings.min_ms, settings.max_ms, rng=self._rng)

        self._log(f"Next page in {round(wait_ms / 1000)}s...")
        self.events.emit(events.WAITING, duration=wait_ms)

        inspector.scroll_like_human(config.SCROLL_PAUSE_MS)
        inspector.wait(wait_ms)

        old_page = inspector.current_page_number()
        if not inspector.advance_page():
            self._log("Next page control could not be clicked - moving to next filter", "warn")
            return self._switch_filter(session)

        inspector.wait(config.POST_NAVIGATION_WAIT_MS)
        new_page = inspector.current_page_number()
        if new_page == old_page:
            _scraper_event(
                "state",
                phase="paginate",
                error_code=ErrorCode.STALLED_NAVIGATION,
                page=old_page,
                filter=session.expected_filter,
            )
            self._log("Next button clicked but page didn't change - moving to next filter", "warn")
            return self._switch_filter(session)

        self._log(f"Navigated to page {new_page}")
        return TickOutcome.PAGE_ADVANCED

    # ------------------------------------------------------------------
    # Filter switch, completion and halt
    # ------------------------------------------------------------------

    def _switch_filter(self, session: ScrapeSession) -> TickOutcome:
        session.current_filter_index += 1
        session.current_page_index = 1

        if session.current_filter_index >= len(FILTER_SET):
            return self._complete(session)

        next_filter = FILTER_SET[session.current_filter_index]
        self._log(f"Switching to {label_for(next_filter)}...")
        self.store.save(session)

        self.inspector.wait(config.DELAY_BETWEEN_FILTERS_MS)

        if not self.inspector.activate_filter(next_filter):
            return self._halt(session, next_filter)

        self.inspector.wait_for_content_ready(config.PAGE_LOAD_TIMEOUT_MS)
        self.inspector.wait(config.FILTER_SETTLE_MS)
        return TickOutcome.FILTER_SWITCHED

    def _complete(self, session: ScrapeSession) -> TickOutcome:
        total = session.total_records
        self._log(f"SCRAPING COMPLETE! Total: {total} reviews", "success")

        try:
            path = self.exporter.export(session.records)
        except Exception as exc:  # noqa: BLE001
            _scraper_event(
                "error",
                phase="export",
                error_code=ErrorCode.EXPORT_FAILED,
                records=total,
                error=str(exc),
            )
            # Keep the records; the session stays at the last filter so a
            # manual export is still possible.
            session.current_filter_index = len(FILTER_SET) - 1
            session.active = False
            self.store.save(session)
            self.control.mark_stopped()
            self.events.emit(events.HALTED, reason="export_failed", error=str(exc))
            return TickOutcome.HALTED

        self.store.clear()
        self.control.mark_stopped()
        self.events.emit(
            events.COMPLETED,
            total=total,
            path=str(path) if path else "",
        )
        return TickOutcome.COMPLETE

    def _halt(self, session: ScrapeSession, filter_id: str) -> TickOutcome:
        label = label_for(filter_id)
        self._log(f"Failed to switch to {label} - stopping", "error")
        session.active = False
        self.store.save(session)
        self.control.mark_stopped()
        self.events.emit(
            events.HALTED,
            reason=ErrorCode.FILTER_SWITCH_FAILED,
            filter=label,
        )
        self.events.emit(
            events.ALERT,
            message=f"Could not switch to {label}. Scraping stopped.",
        )
        return TickOutcome.HALTED


__all__ = ["TickOutcome", "TraversalController"]
