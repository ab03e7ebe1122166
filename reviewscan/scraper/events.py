"""Outward notifications from the traversal core to the UI surface.

Notifications are kept in a bounded in-memory ring so the control surface can
poll them (``/api/events?since=<seq>``). Every notification is also mirrored
into the run log.
"""

from __future__ import annotations

from collections import deque
from threading import Lock
from typing import Any, Deque, Dict, List

from .utils import epoch_ms, log_line

PROGRESS = "progress"
WAITING = "waiting"
COMPLETED = "completed"
LOG = "log"
ALERT = "alert"
HALTED = "halted"
STARTED = "started"
STOPPED = "stopped"

EVENT_KINDS = (PROGRESS, WAITING, COMPLETED, LOG, ALERT, HALTED, STARTED, STOPPED)


class EventBus:
    def __init__(self, maxlen: int = 500) -> None:
        self._events: Deque[Dict[str, Any]] = deque(maxlen=maxlen)
        self._seq = 0
        self._lock = Lock()

    def emit(self, kind: str, **payload: Any) -> Dict[str, Any]:
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind: {kind}")
        with self._lock:
            self._seq += 1
            event = {"seq": self._seq, "kind": kind, "at": epoch_ms(), **payload}
            self._events.append(event)

        details = ", ".join(f"{k}={v}" for k, v in sorted(payload.items()))
        log_line(f"[EVENT][{kind.upper()}] {details}".rstrip())
        return event

    def since(self, seq: int = 0) -> List[Dict[str, Any]]:
        """Return buffered events with a sequence number above ``seq``."""

        with self._lock:
            return [dict(event) for event in self._events if event["seq"] > seq]

    def last(self, kind: str | None = None) -> Dict[str, Any] | None:
        with self._lock:
            for event in reversed(self._events):
                if kind is None or event["kind"] == kind:
                    return dict(event)
        return None

    @property
    def last_seq(self) -> int:
        with self._lock:
            return self._seq


__all__ = [
    "EventBus",
    "EVENT_KINDS",
    "PROGRESS",
    "WAITING",
    "COMPLETED",
    "LOG",
    "ALERT",
    "HALTED",
    "STARTED",
    "STOPPED",
]
