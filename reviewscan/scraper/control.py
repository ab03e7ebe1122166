"""Control signals between the UI surface and the traversal core.

``ScrapeControl`` never mutates the session itself; start and stop only flip
the scanning flag in the durable tier, which the controller observes on its
next tick.
"""

from __future__ import annotations

from typing import Any, Dict

from . import config, events
from .delay_policy import DelaySettings, load_delay_settings, save_delay_settings
from .events import EventBus
from .exporter import BOM, serialize_text
from .session_store import SessionStore
from .storage import KeyValueTier
from .utils import log_line


class ScrapeControl:
    def __init__(self, flags: KeyValueTier, store: SessionStore, bus: EventBus) -> None:
        self.flags = flags
        self.store = store
        self.events = bus

    def is_scanning(self) -> bool:
        try:
            return (self.flags.get(config.SCANNING_KEY) or "") == "true"
        except Exception as exc:  # noqa: BLE001
            log_line(f"[CONTROL] Unable to read scanning flag: {exc}")
            return False

    def _set_scanning(self, value: bool) -> None:
        self.flags.set(config.SCANNING_KEY, "true" if value else "false")

    def start(self, url: str = "") -> None:
        """start-scraping"""

        self._set_scanning(True)
        log_line(f"[CONTROL] Start requested{f' for {url}' if url else ''}")
        self.events.emit(events.STARTED, url=url)

    def stop(self) -> None:
        """stop-scraping"""

        self._set_scanning(False)
        log_line("[CONTROL] Stop requested")
        self.events.emit(events.STOPPED)

    def mark_stopped(self) -> None:
        """Clear the scanning flag after the core finished or halted on its own."""

        self._set_scanning(False)

    def status(self) -> Dict[str, Any]:
        """get-status"""

        session = self.store.load()
        return {
            "isScanning": self.is_scanning(),
            "totalRecordCount": session.total_records if session else 0,
        }

    def request_export(self) -> Dict[str, Any]:
        """request-export: CSV of the persisted session, BOM included."""

        try:
            session = self.store.load()
            if session is None or not session.records:
                return {"success": False, "error": "No reviews to export"}
            return {"success": True, "csv": BOM + serialize_text(session.records)}
        except Exception as exc:  # noqa: BLE001
            log_line(f"[CONTROL] Export request failed: {exc}")
            return {"success": False, "error": str(exc)}

    def delay_settings(self) -> DelaySettings:
        return load_delay_settings(self.flags)

    def update_delay_settings(self, min_ms: int, max_ms: int) -> DelaySettings:
        settings = save_delay_settings(self.flags, min_ms, max_ms)
        log_line(f"[CONTROL] Delay range set to {settings.min_ms}-{settings.max_ms}ms")
        return settings


__all__ = ["ScrapeControl"]
