"""Star-filter partitions of the review listing.

The identifiers are the values the listing carries in its ``filterByStar``
query parameter; their order is the traversal order and the progress index
stored in the session. Changing them invalidates persisted sessions.
"""

from __future__ import annotations

import logging
from typing import Optional

LOGGER = logging.getLogger("reviewscan")

FILTER_SET: tuple[str, ...] = (
    "one_star",
    "two_star",
    "three_star",
    "four_star",
    "five_star",
)

FILTER_LABELS: dict[str, str] = {
    "one_star": "1★",
    "two_star": "2★",
    "three_star": "3★",
    "four_star": "4★",
    "five_star": "5★",
}

_LABEL_TO_FILTER = {label: ident for ident, label in FILTER_LABELS.items()}


def is_known_filter(value: str | None) -> bool:
    return bool(value) and value in FILTER_SET


def filter_at(index: int) -> Optional[str]:
    """Return the filter identifier at ``index`` or ``None`` past the end."""

    if 0 <= index < len(FILTER_SET):
        return FILTER_SET[index]
    return None


def label_for(value: str | None) -> str:
    """Return the display label for a filter identifier.

    Unknown identifiers are returned unchanged so that foreign values survive
    an export round trip.
    """

    if not value:
        return ""
    return FILTER_LABELS.get(value, value)


def filter_for_label(label: str | None) -> str:
    """Map a display label (``3★``) back to its identifier."""

    if not label:
        return ""
    raw = label.strip()
    if raw in FILTER_SET:
        return raw
    ident = _LABEL_TO_FILTER.get(raw)
    if ident is None:
        LOGGER.warning("[FILTERS][WARN] Unknown filter label %r; keeping as-is.", raw)
        return raw
    return ident


__all__ = [
    "FILTER_SET",
    "FILTER_LABELS",
    "is_known_filter",
    "filter_at",
    "label_for",
    "filter_for_label",
]
