"""HTML parsing for rendered review listing pages."""
from __future__ import annotations

import re
from typing import Callable, Iterable, List, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag

from .error_codes import ErrorCode
from .filters import label_for
from .logging_utils import _scraper_event
from .models import Review
from .listing_selectors import REVIEW_LISTING_SELECTORS, ListingSelectors
from .utils import epoch_ms, log_line

_BLANK_LINES = re.compile(r"\n\s*\n+")
_INLINE_SPACE = re.compile(r"[ \t\r\f\v\xa0]+")


def _clean_text(raw: str) -> str:
    """Collapse inline whitespace and blank lines the way rendered text reads."""

    lines = [_INLINE_SPACE.sub(" ", line).strip() for line in raw.split("\n")]
    text = "\n".join(line for line in lines if line)
    return _BLANK_LINES.sub("\n", text).strip()


def _element_text(element: Optional[Tag]) -> str:
    if element is None:
        return ""
    for br in element.find_all("br"):
        br.replace_with("\n")
    return _clean_text(element.get_text())


def _first_text(card: Tag, candidates: Iterable[str]) -> str:
    """Return the text of the first candidate selector with non-empty text."""

    for selector in candidates:
        text = _element_text(card.select_one(selector))
        if text:
            return text
    return ""


def parse_review_card(
    card: Tag,
    *,
    index: int,
    filter_id: str,
    page_number: int,
    selectors: ListingSelectors = REVIEW_LISTING_SELECTORS,
    now_ms: Callable[[], int] = epoch_ms,
) -> Optional[Review]:
    """Build a ``Review`` from one card, or ``None`` when the body is empty.

    Every metadata field degrades independently to a placeholder; only the
    body decides whether the card is kept.
    """

    body = _first_text(card, selectors.body)
    if not body:
        return None

    review_id = (card.get("id") or "").strip() or f"review-{now_ms()}-{index}"
    return Review(
        id=review_id,
        author=_first_text(card, selectors.author) or "Anonymous",
        rating_label=_first_text(card, selectors.rating) or "",
        title=_first_text(card, selectors.title),
        date=_first_text(card, selectors.date),
        body_text=body,
        verified_purchase=card.select_one(selectors.verified_badge) is not None,
        variant_label=_first_text(card, selectors.variant),
        filter_partition=filter_id,
        page_index=page_number,
    )


def parse_review_cards(
    html: str,
    *,
    filter_id: str,
    page_number: int,
    selectors: ListingSelectors = REVIEW_LISTING_SELECTORS,
    card_parser: Callable[..., Optional[Review]] = parse_review_card,
) -> List[Review]:
    """Extract every review on a rendered listing page, in page order."""

    soup = BeautifulSoup(html or "", "html5lib")
    cards = soup.select(selectors.review_card)
    log_line(
        f"[PARSE] Page {page_number} ({label_for(filter_id)}): found {len(cards)} review cards"
    )

    reviews: List[Review] = []
    dropped = 0
    for index, card in enumerate(cards):
        try:
            review = card_parser(
                card,
                index=index,
                filter_id=filter_id,
                page_number=page_number,
                selectors=selectors,
            )
        except Exception as exc:  # noqa: BLE001
            _scraper_event(
                "error",
                phase="extract",
                error_code=ErrorCode.CARD_PARSE,
                card_index=index + 1,
                page=page_number,
                error=str(exc),
            )
            continue
        if review is None:
            dropped += 1
            continue
        reviews.append(review)

    if dropped:
        log_line(f"[PARSE] Dropped {dropped} card(s) with an empty body")
    return reviews


__all__ = ["parse_review_card", "parse_review_cards"]
