"""Data model for the review traversal.

- **Review**: one scraped review card.
- **ScrapeSession**: the single persisted aggregate tracking traversal
  progress and accumulated reviews.

Both serialise to the camelCase JSON shape stored in the key-value tiers so a
session written by one process can be resumed by another.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .filters import FILTER_SET, filter_at


@dataclass
class Review:
    """One extracted review.

    ``body_text`` is never empty for a stored review; cards without a body are
    rejected at extraction time. The remaining text fields are free-form and
    kept exactly as rendered.
    """

    id: str
    author: str
    rating_label: str
    title: str
    date: str
    body_text: str
    verified_purchase: bool
    variant_label: str
    filter_partition: str
    page_index: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "author": self.author,
            "ratingLabel": self.rating_label,
            "title": self.title,
            "date": self.date,
            "bodyText": self.body_text,
            "verifiedPurchaseFlag": self.verified_purchase,
            "variantLabel": self.variant_label,
            "filterPartition": self.filter_partition,
            "pageIndex": self.page_index,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Review":
        page_raw = data.get("pageIndex")
        try:
            page_index: Optional[int] = int(page_raw) if page_raw is not None else None
        except (TypeError, ValueError):
            page_index = None
        return cls(
            id=str(data.get("id") or ""),
            author=str(data.get("author") or ""),
            rating_label=str(data.get("ratingLabel") or ""),
            title=str(data.get("title") or ""),
            date=str(data.get("date") or ""),
            body_text=str(data.get("bodyText") or ""),
            verified_purchase=bool(data.get("verifiedPurchaseFlag", False)),
            variant_label=str(data.get("variantLabel") or ""),
            filter_partition=str(data.get("filterPartition") or ""),
            page_index=page_index,
        )


@dataclass
class ScrapeSession:
    """Persisted traversal progress.

    ``current_filter_index`` indexes ``FILTER_SET``; the terminal value
    ``len(FILTER_SET)`` is never stored because the session is cleared on
    completion. ``current_page_index`` is 1-based and resets on every filter
    change.
    """

    active: bool
    records: List[Review] = field(default_factory=list)
    current_filter_index: int = 0
    current_page_index: int = 1
    last_observed_url: str = ""
    started_at: int = 0
    last_updated: int = 0

    @classmethod
    def new(cls, now_ms: int) -> "ScrapeSession":
        return cls(active=True, started_at=now_ms, last_updated=now_ms)

    @property
    def expected_filter(self) -> Optional[str]:
        return filter_at(self.current_filter_index)

    @property
    def total_records(self) -> int:
        return len(self.records)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active": self.active,
            "records": [review.to_dict() for review in self.records],
            "currentFilterIndex": self.current_filter_index,
            "currentPageIndex": self.current_page_index,
            "lastObservedUrl": self.last_observed_url,
            "startedAt": self.started_at,
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScrapeSession":
        records = [
            Review.from_dict(item)
            for item in data.get("records") or []
            if isinstance(item, dict)
        ]
        try:
            filter_index = int(data.get("currentFilterIndex", 0))
        except (TypeError, ValueError):
            filter_index = 0
        try:
            page_index = int(data.get("currentPageIndex", 1))
        except (TypeError, ValueError):
            page_index = 1
        return cls(
            active=bool(data.get("active", False)),
            records=records,
            current_filter_index=min(max(0, filter_index), len(FILTER_SET) - 1),
            current_page_index=max(1, page_index),
            last_observed_url=str(data.get("lastObservedUrl") or ""),
            started_at=int(data.get("startedAt") or 0),
            last_updated=int(data.get("lastUpdated") or 0),
        )


__all__ = ["Review", "ScrapeSession"]
