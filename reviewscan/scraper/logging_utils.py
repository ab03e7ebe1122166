from __future__ import annotations

from typing import Any

from .utils import log_line

_MAX_VALUE_REPR = 200


def _short_repr(value: Any, max_length: int = _MAX_VALUE_REPR) -> str:
    """Return ``repr(value)`` clipped to ``max_length`` characters."""

    text = repr(value)
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def _scraper_event(label: str = "", *, phase: str | None = None, **fields: Any) -> None:
    """Emit a structured scraper log line.

    ``phase`` doubles as the label when no label is given. When both are
    provided, ``phase`` is emitted as part of the payload so the caller still
    captures the traversal stage. Long values (URLs, page text) are clipped.
    """

    try:
        phase_label = label or (phase or "")
        if phase and label:
            fields.setdefault("phase", phase)
        payload = ", ".join(f"{k}={_short_repr(v)}" for k, v in sorted(fields.items()))
        log_line(f"[SCRAPER][{phase_label.upper()}] {payload}")
    except Exception:
        # Never let logging break a tick.
        return


__all__ = ["_scraper_event"]
