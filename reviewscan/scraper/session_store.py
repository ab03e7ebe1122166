"""Persist and restore the scrape session across reloads and restarts."""

from __future__ import annotations

import json
from typing import Callable, Optional

from . import config
from .error_codes import ErrorCode
from .filters import label_for
from .logging_utils import _scraper_event
from .models import ScrapeSession
from .storage import BackgroundWriter, KeyValueTier
from .utils import epoch_ms, log_line


class SessionStore:
    """Dual-tier persistence channel for the single ``ScrapeSession``.

    Reads prefer the fast tier and fall back to the durable tier, which is
    the source of truth whenever the fast tier is empty. Writes land in the
    fast tier immediately and in the durable tier through the background
    writer. The store holds no lock over the session; the controller is its
    only writer.
    """

    def __init__(
        self,
        fast: KeyValueTier,
        durable: KeyValueTier,
        *,
        writer: Optional[BackgroundWriter] = None,
        key: str = config.SESSION_KEY,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self.fast = fast
        self.durable = durable
        self.writer = writer or BackgroundWriter()
        self.key = key
        self._clock = clock

    def _decode(self, raw: str, tier: str) -> Optional[ScrapeSession]:
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as exc:
            log_line(f"[SESSION] Ignoring unreadable session in {tier} tier: {exc}")
            return None
        if not isinstance(payload, dict):
            log_line(f"[SESSION] Ignoring non-object session in {tier} tier")
            return None
        return ScrapeSession.from_dict(payload)

    def load(self) -> Optional[ScrapeSession]:
        """Return the persisted session, or ``None`` when neither tier has one."""

        raw: Optional[str] = None
        try:
            raw = self.fast.get(self.key)
        except Exception as exc:  # noqa: BLE001
            log_line(f"[SESSION] Fast tier read failed: {exc}")

        if raw:
            session = self._decode(raw, self.fast.name)
            if session is not None:
                return session

        try:
            raw = self.durable.get(self.key)
        except Exception as exc:  # noqa: BLE001
            log_line(f"[SESSION] Durable tier read failed: {exc}")
            return None

        if not raw:
            return None

        session = self._decode(raw, self.durable.name)
        if session is not None:
            expected = label_for(session.expected_filter)
            log_line(
                f"[SESSION] Restored from {self.durable.name}: "
                f"{session.total_records} reviews, {expected} page {session.current_page_index}"
            )
        return session

    def save(self, session: ScrapeSession) -> None:
        """Stamp ``last_updated`` and write the session to both tiers."""

        session.last_updated = self._clock()
        raw = json.dumps(session.to_dict(), ensure_ascii=False)

        try:
            self.fast.set(self.key, raw)
        except Exception as exc:  # noqa: BLE001
            _scraper_event(
                "error",
                phase="storage",
                step="fast_write",
                error_code=ErrorCode.FAST_TIER_WRITE,
                error=str(exc),
            )

        self.writer.submit("session_save", lambda: self.durable.set(self.key, raw))

    def clear(self) -> None:
        """Remove the session from both tiers; failures are only logged."""

        try:
            self.fast.remove(self.key)
        except Exception as exc:  # noqa: BLE001
            log_line(f"[SESSION] Fast tier clear failed: {exc}")

        # Queued saves must land before the removal or they would resurrect it.
        try:
            self.writer.flush()
        except Exception as exc:  # noqa: BLE001
            log_line(f"[SESSION] Pending durable writes failed before clear: {exc}")

        try:
            self.durable.remove(self.key)
        except Exception as exc:  # noqa: BLE001
            log_line(f"[SESSION] Durable tier clear failed: {exc}")

        log_line("[SESSION] Session cleared")

    def flush(self) -> None:
        self.writer.flush()


__all__ = ["SessionStore"]
