from __future__ import annotations

"""Failure taxonomy for the review traversal.

These codes are attached to structured log events and outward notifications
so a run log can explain why a tick stopped early. Keep them stable; the
control surface reports them verbatim.
"""


class ErrorCode:
    CARD_PARSE = "card_parse_error"
    STALLED_NAVIGATION = "stalled_navigation"
    CHALLENGE = "challenge_detected"
    FILTER_SWITCH_FAILED = "filter_switch_failed"
    FAST_TIER_WRITE = "fast_tier_write_failed"
    DURABLE_TIER_WRITE = "durable_tier_write_failed"
    EXPORT_FAILED = "export_failed"
    NAVIGATION = "navigation_error"
    INTERNAL = "internal_error"


__all__ = ["ErrorCode"]
