from __future__ import annotations

"""Selectors and attribute hints for the review listing."""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class ListingSelectors:
    """Selector hints for the paginated review listing.

    Each review field carries a tuple of candidate selectors tried in order;
    the first element with non-empty text wins. Filter and page state are
    read from the address (``filter_param`` / ``page_param``) rather than the
    markup because the markup lags behind client-side navigation.
    """

    review_card: str = 'li[data-hook="review"], div[data-hook="review"]'
    no_reviews: str = ".no-reviews-section"

    author: Tuple[str, ...] = (".a-profile-name",)
    rating: Tuple[str, ...] = (
        'i[data-hook="review-star-rating"] .a-icon-alt',
        'i[data-hook="cmps-review-star-rating"] .a-icon-alt',
    )
    title: Tuple[str, ...] = (
        'a[data-hook="review-title"] > span:last-child',
        'span[data-hook="review-title"] > span:last-child',
        'a[data-hook="review-title"]',
    )
    date: Tuple[str, ...] = ('span[data-hook="review-date"]',)
    body: Tuple[str, ...] = (
        'span[data-hook="review-body"] span',
        'span[data-hook="review-body"]',
    )
    verified_badge: str = 'span[data-hook="avp-badge"]'
    variant: Tuple[str, ...] = ('a[data-hook="format-strip"]',)

    next_enabled: str = "li.a-last:not(.a-disabled) a"
    next_controls: Tuple[str, ...] = (
        "li.a-last a",
        'a[data-hook="pagination-next"]',
        'a:has-text("Next page")',
    )

    histogram_row: str = ".histogram-row-container"
    histogram_state_attr: str = "data-reviews-state-param"
    filter_links: str = 'a[href*="filterByStar"]'
    filter_dropdown: str = '#star-count-dropdown, select[data-action="a-dropdown-select"]'

    challenge_form: str = 'form[action="/errors/validateCaptcha"]'
    challenge_texts: Tuple[str, ...] = ("Enter the characters you see below",)

    see_all_reviews: str = 'a[data-hook="see-all-reviews-link-foot"]'
    detail_path_marker: str = "/dp/"
    listing_path_marker: str = "/product-reviews/"

    filter_param: str = "filterByStar"
    page_param: str = "pageNumber"

    cookie_buttons: Tuple[str, ...] = (
        "#sp-cc-accept",
        "input#sp-cc-accept",
        "button:has-text('Accept')",
        "button[aria-label*='Accept' i]",
    )


REVIEW_LISTING_SELECTORS = ListingSelectors()

__all__ = [
    "ListingSelectors",
    "REVIEW_LISTING_SELECTORS",
]
