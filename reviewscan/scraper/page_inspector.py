"""Read-only questions and single navigating actions against the live page.

The traversal controller never touches selectors directly; everything it
needs to know about the rendered listing goes through ``PageInspector``.
Queries answer from the current address or DOM and have no side effects.
Actions (filter activation, next page, scrolling) trigger navigation but
never wait for it to complete.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Sequence, Tuple
from urllib.parse import parse_qs, urljoin, urlparse

from playwright.sync_api import Error as PWError
from playwright.sync_api import Page
from playwright.sync_api import TimeoutError as PWTimeout

from . import config
from .error_codes import ErrorCode
from .filters import is_known_filter, label_for
from .listing_selectors import REVIEW_LISTING_SELECTORS, ListingSelectors
from .logging_utils import _scraper_event
from .models import Review
from .parser import parse_review_cards
from .utils import log_line

ActivationStrategy = Tuple[str, Callable[[str], bool]]


def _is_target_closed_error(exc: Exception) -> bool:
    message = str(exc).lower()
    return "target closed" in message or "has been closed" in message


class PageInspector:
    """Adapter between the traversal controller and a Playwright ``Page``."""

    def __init__(
        self,
        page: Page,
        selectors: ListingSelectors = REVIEW_LISTING_SELECTORS,
    ) -> None:
        self.page = page
        self.selectors = selectors

    # ------------------------------------------------------------------
    # Address-derived state
    # ------------------------------------------------------------------

    def current_url(self) -> str:
        return self.page.url or ""

    def _query_value(self, name: str) -> Optional[str]:
        values = parse_qs(urlparse(self.current_url()).query).get(name)
        return values[0] if values else None

    def current_filter(self) -> Optional[str]:
        """Return the active filter identifier, or ``None`` on the unfiltered view."""

        value = self._query_value(self.selectors.filter_param)
        return value if is_known_filter(value) else None

    def current_page_number(self) -> int:
        raw = self._query_value(self.selectors.page_param)
        try:
            return max(1, int(raw)) if raw else 1
        except ValueError:
            return 1

    def is_detail_page(self) -> bool:
        path = urlparse(self.current_url()).path
        return (
            self.selectors.detail_path_marker in path
            and self.selectors.listing_path_marker not in path
        )

    # ------------------------------------------------------------------
    # DOM queries
    # ------------------------------------------------------------------

    def _exists(self, selector: str) -> bool:
        try:
            return self.page.query_selector(selector) is not None
        except PWError as exc:
            if _is_target_closed_error(exc):
                raise
            log_line(f"[INSPECT] Selector probe failed for {selector!r}: {exc}")
            return False

    def content_visible(self) -> bool:
        return self._exists(self.selectors.review_card)

    def no_results_present(self) -> bool:
        return self._exists(self.selectors.no_reviews)

    def has_next_page(self) -> bool:
        """True iff a non-disabled "next page" control exists."""

        return self._exists(self.selectors.next_enabled)

    def challenge_present(self) -> bool:
        if self._exists(self.selectors.challenge_form):
            return True
        try:
            body_text = self.page.inner_text("body", timeout=2000)
        except (PWTimeout, PWError):
            return False
        return any(text in body_text for text in self.selectors.challenge_texts)

    def extract_records(self, filter_id: str, page_number: int) -> List[Review]:
        """Extract the reviews rendered on the current page."""

        try:
            html = self.page.content()
        except PWError as exc:
            log_line(f"[INSPECT] Unable to read page content: {exc}")
            return []
        return parse_review_cards(
            html,
            filter_id=filter_id,
            page_number=page_number,
            selectors=self.selectors,
        )

    # ------------------------------------------------------------------
    # Waiting
    # ------------------------------------------------------------------

    def wait(self, ms: int) -> None:
        """Cooperative wait that keeps the Playwright event loop running."""

        if ms <= 0 or self.page.is_closed():
            return
        self.page.wait_for_timeout(ms)

    def wait_for_content_ready(
        self,
        timeout_ms: int = config.PAGE_LOAD_TIMEOUT_MS,
        *,
        interval_ms: int = config.PAGE_LOAD_CHECK_INTERVAL_MS,
    ) -> bool:
        """Poll until review cards appear or ``timeout_ms`` elapses."""

        elapsed = 0
        while True:
            if self.content_visible():
                return True
            if elapsed >= timeout_ms:
                log_line("[INSPECT] Page load timeout - proceeding anyway")
                return False
            self.wait(interval_ms)
            elapsed += interval_ms

    # ------------------------------------------------------------------
    # Navigating actions
    # ------------------------------------------------------------------

    def _activation_strategies(self) -> Sequence[ActivationStrategy]:
        return (
            ("histogram", self._activate_via_histogram),
            ("link", self._activate_via_link),
            ("dropdown", self._activate_via_dropdown),
        )

    def _activate_via_histogram(self, filter_id: str) -> bool:
        needle = f'"{self.selectors.filter_param}":"{filter_id}"'
        for row in self.page.query_selector_all(self.selectors.histogram_row):
            state = row.get_attribute(self.selectors.histogram_state_attr) or ""
            if needle in state:
                row.click()
                return True
        return False

    def _activate_via_link(self, filter_id: str) -> bool:
        needle = f"{self.selectors.filter_param}={filter_id}"
        for link in self.page.query_selector_all(self.selectors.filter_links):
            href = link.get_attribute("href") or ""
            if needle in href:
                link.click()
                return True
        return False

    def _activate_via_dropdown(self, filter_id: str) -> bool:
        dropdown = self.page.query_selector(self.selectors.filter_dropdown)
        if dropdown is None:
            return False
        if dropdown.query_selector(f'option[value="{filter_id}"]') is None:
            return False
        # select_option dispatches the change event the listing listens for.
        dropdown.select_option(filter_id)
        return True

    def activate_filter(self, filter_id: str) -> bool:
        """Trigger navigation to ``filter_id`` using the first strategy that applies."""

        label = label_for(filter_id)
        log_line(f"[INSPECT] Attempting to activate filter {label}")
        for name, strategy in self._activation_strategies():
            try:
                if strategy(filter_id):
                    _scraper_event("nav", step="activate_filter", strategy=name, filter=filter_id)
                    return True
            except PWError as exc:
                if _is_target_closed_error(exc):
                    raise
                log_line(f"[INSPECT] Filter strategy {name} failed for {label}: {exc}")
                continue

        _scraper_event(
            "error",
            phase="nav",
            step="activate_filter",
            error_code=ErrorCode.FILTER_SWITCH_FAILED,
            filter=filter_id,
        )
        return False

    def advance_page(self) -> bool:
        """Click the first "next page" control that exists."""

        for selector in self.selectors.next_controls:
            try:
                control = self.page.query_selector(selector)
                if control is None:
                    continue
                control.click()
                _scraper_event("nav", step="advance_page", selector=selector)
                return True
            except PWError as exc:
                if _is_target_closed_error(exc):
                    raise
                log_line(f"[INSPECT] Next-page click via {selector!r} failed: {exc}")
        return False

    def follow_all_reviews_link(self) -> bool:
        """From a single-item page, navigate to its full review listing."""

        link = self.page.query_selector(self.selectors.see_all_reviews)
        if link is None:
            return False
        href = link.get_attribute("href") or ""
        if not href:
            return False
        target = urljoin(self.current_url(), href)
        log_line(f"[INSPECT] Redirecting to review listing {target}")
        try:
            self.page.goto(
                target,
                wait_until="commit",
                timeout=config.PLAYWRIGHT_NAV_TIMEOUT_SECONDS * 1000,
            )
        except PWTimeout as exc:
            # The request is still pending; the next tick picks it up.
            log_line(f"[INSPECT] Listing navigation still loading: {exc}")
        return True

    def scroll_like_human(self, pause_ms: int = config.SCROLL_PAUSE_MS) -> None:
        """Scroll to the bottom, pause, then back to the middle of the page."""

        try:
            self.page.evaluate(
                "window.scrollTo({top: document.body.scrollHeight, behavior: 'smooth'})"
            )
            self.wait(pause_ms)
            self.page.evaluate(
                "window.scrollTo({top: document.body.scrollHeight / 2, behavior: 'smooth'})"
            )
        except PWError as exc:
            if _is_target_closed_error(exc):
                raise
            log_line(f"[INSPECT] Scroll gesture failed: {exc}")

    def accept_cookies(self) -> None:
        """Best-effort click-through for cookie banners."""

        for selector in self.selectors.cookie_buttons:
            try:
                locator = self.page.locator(selector).first
                if locator.count():
                    locator.click(timeout=1500)
                    self.wait(400)
                    log_line(f"[INSPECT] Clicked cookie banner via {selector}")
                    return
            except (PWTimeout, PWError):
                continue


__all__ = ["PageInspector"]
