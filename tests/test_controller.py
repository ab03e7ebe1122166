from __future__ import annotations

import random
from typing import List, Optional

import pytest

from reviewscan.scraper import config
from reviewscan.scraper.config_validation import validate_runtime_config
from reviewscan.scraper.control import ScrapeControl
from reviewscan.scraper.controller import TickOutcome, TraversalController
from reviewscan.scraper.events import EventBus
from reviewscan.scraper.models import Review, ScrapeSession
from reviewscan.scraper.session_store import SessionStore
from reviewscan.scraper.storage import BackgroundWriter, MemoryTier

LISTING = "https://shop.example.com/product-reviews/B0TEST"


def _review(index: int, filter_id: str = "three_star", page: int = 3) -> Review:
    return Review(
        id=f"R{index}",
        author="Ann",
        rating_label="3.0 out of 5 stars",
        title="t",
        date="d",
        body_text=f"body {index}",
        verified_purchase=True,
        variant_label="",
        filter_partition=filter_id,
        page_index=page,
    )


class FakeInspector:
    """Scriptable stand-in for ``PageInspector``."""

    def __init__(self, *, filter_id: Optional[str] = None, page: int = 1) -> None:
        self.filter_id = filter_id
        self.page_number = page
        self.visible = True
        self.no_results = False
        self.challenge = False
        self.detail = False
        self.next_page = False
        self.records: List[Review] = []
        self.activate_ok = True
        self.advance_ok = True
        self.advance_moves = True
        self.follow_ok = True
        self.activated: List[str] = []
        self.extracted: List[tuple] = []
        self.waits: List[int] = []
        self.advances = 0
        self.scrolls = 0

    def current_url(self) -> str:
        query = []
        if self.filter_id:
            query.append(f"filterByStar={self.filter_id}")
        query.append(f"pageNumber={self.page_number}")
        return f"{LISTING}?{'&'.join(query)}"

    def current_filter(self) -> Optional[str]:
        return self.filter_id

    def current_page_number(self) -> int:
        return self.page_number

    def content_visible(self) -> bool:
        return self.visible

    def no_results_present(self) -> bool:
        return self.no_results

    def challenge_present(self) -> bool:
        return self.challenge

    def is_detail_page(self) -> bool:
        return self.detail

    def follow_all_reviews_link(self) -> bool:
        return self.follow_ok

    def has_next_page(self) -> bool:
        return self.next_page

    def extract_records(self, filter_id: str, page_number: int) -> List[Review]:
        self.extracted.append((filter_id, page_number))
        return list(self.records)

    def activate_filter(self, filter_id: str) -> bool:
        self.activated.append(filter_id)
        if self.activate_ok:
            self.filter_id = filter_id
            self.page_number = 1
        return self.activate_ok

    def advance_page(self) -> bool:
        self.advances += 1
        if self.advance_ok and self.advance_moves:
            self.page_number += 1
        return self.advance_ok

    def wait_for_content_ready(self, timeout_ms: int = 0) -> bool:
        return True

    def wait(self, ms: int) -> None:
        self.waits.append(ms)

    def scroll_like_human(self, pause_ms: int = 0) -> None:
        self.scrolls += 1


class FakeExporter:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: List[List[Review]] = []

    def export(self, records):
        self.calls.append(list(records))
        if self.fail:
            raise OSError("disk full")
        return "/tmp/reviews.csv"


class Harness:
    def __init__(self, inspector: FakeInspector, exporter: Optional[FakeExporter] = None) -> None:
        self.fast = MemoryTier()
        self.durable = MemoryTier()
        self.store = SessionStore(
            self.fast, self.durable, writer=BackgroundWriter(enabled=False), clock=lambda: 1000
        )
        self.events = EventBus()
        self.control = ScrapeControl(self.durable, self.store, self.events)
        self.exporter = exporter or FakeExporter()
        self.inspector = inspector
        self.controller = TraversalController(
            inspector,
            self.store,
            self.control,
            self.events,
            exporter=self.exporter,
            rng=random.Random(1),
        )

    def seed(self, session: ScrapeSession) -> None:
        self.store.save(session)

    def kinds(self) -> List[str]:
        return [event["kind"] for event in self.events.since(0)]


@pytest.fixture(autouse=True)
def _short_waits(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "DELAY_BETWEEN_FILTERS_MS", 30)
    monkeypatch.setattr(config, "POST_NAVIGATION_WAIT_MS", 20)
    monkeypatch.setattr(config, "FILTER_SETTLE_MS", 10)


def test_not_ready_page_is_a_no_op():
    inspector = FakeInspector()
    inspector.visible = False
    harness = Harness(inspector)
    harness.control.start()

    assert harness.controller.tick() is TickOutcome.NOT_READY
    assert harness.store.load() is None


def test_no_session_without_start_signal_is_idle():
    harness = Harness(FakeInspector(filter_id="one_star"))

    assert harness.controller.tick() is TickOutcome.IDLE
    assert harness.store.load() is None


def test_scenario_a_start_on_unfiltered_view_activates_first_filter():
    inspector = FakeInspector(filter_id=None)
    inspector.records = [_review(1)]
    harness = Harness(inspector)
    harness.control.start()

    outcome = harness.controller.tick()

    assert outcome is TickOutcome.FILTER_ACTIVATION
    assert inspector.activated == ["one_star"]
    assert inspector.extracted == []
    session = harness.store.load()
    assert session.active is True
    assert (session.current_filter_index, session.current_page_index) == (0, 1)
    assert session.records == []


def test_scenario_b_mid_partition_extraction_appends_and_persists():
    inspector = FakeInspector(filter_id="three_star", page=3)
    inspector.records = [_review(i) for i in range(7)]
    inspector.next_page = True
    harness = Harness(inspector)
    harness.control.start()
    harness.seed(ScrapeSession(active=True, current_filter_index=2, current_page_index=2))

    processed_url = inspector.current_url()
    outcome = harness.controller.tick()

    session = harness.store.load()
    assert inspector.extracted == [("three_star", 3)]
    assert session.total_records == 7
    assert session.current_page_index == 3
    assert session.last_observed_url == processed_url
    assert outcome is TickOutcome.PAGE_ADVANCED
    assert session.current_filter_index == 2
    assert "progress" in harness.kinds()


def test_pagination_waits_then_advances_one_page():
    inspector = FakeInspector(filter_id="one_star", page=1)
    inspector.next_page = True
    inspector.records = [_review(1, "one_star", 1)]
    harness = Harness(inspector)
    harness.control.start()
    harness.control.update_delay_settings(2000, 2000)
    harness.seed(ScrapeSession(active=True))

    outcome = harness.controller.tick()

    assert outcome is TickOutcome.PAGE_ADVANCED
    assert inspector.advances == 1
    assert inspector.scrolls == 1
    assert inspector.waits[:2] == [2000, config.POST_NAVIGATION_WAIT_MS]
    assert inspector.page_number == 2
    waiting = harness.events.last("waiting")
    assert waiting["duration"] == 2000
    assert harness.store.load().current_filter_index == 0


def test_scenario_c_stalled_pager_switches_filter():
    inspector = FakeInspector(filter_id="two_star", page=5)
    inspector.next_page = True
    inspector.advance_moves = False
    harness = Harness(inspector)
    harness.control.start()
    harness.seed(ScrapeSession(active=True, current_filter_index=1, current_page_index=4))

    outcome = harness.controller.tick()

    assert outcome is TickOutcome.FILTER_SWITCHED
    assert inspector.advances == 1
    assert inspector.activated == ["three_star"]
    session = harness.store.load()
    assert (session.current_filter_index, session.current_page_index) == (2, 1)


def test_failed_next_click_switches_filter():
    inspector = FakeInspector(filter_id="two_star", page=2)
    inspector.next_page = True
    inspector.advance_ok = False
    harness = Harness(inspector)
    harness.control.start()
    harness.seed(ScrapeSession(active=True, current_filter_index=1))

    assert harness.controller.tick() is TickOutcome.FILTER_SWITCHED
    assert harness.store.load().current_filter_index == 2


def test_scenario_d_last_filter_exhausted_exports_and_clears():
    inspector = FakeInspector(filter_id="five_star", page=2)
    inspector.records = [_review(9, "five_star", 2)]
    exporter = FakeExporter()
    harness = Harness(inspector, exporter)
    harness.control.start()
    earlier = [_review(i, "one_star", 1) for i in range(3)]
    harness.seed(ScrapeSession(active=True, records=earlier, current_filter_index=4, current_page_index=1))

    outcome = harness.controller.tick()

    assert outcome is TickOutcome.COMPLETE
    assert len(exporter.calls) == 1
    assert [r.id for r in exporter.calls[0]] == ["R0", "R1", "R2", "R9"]
    assert harness.store.load() is None
    assert harness.control.is_scanning() is False
    assert harness.events.last("completed")["total"] == 4

    inspector.page_number = 3
    assert harness.controller.tick() is TickOutcome.IDLE
    assert harness.store.load() is None
    assert len(exporter.calls) == 1


def test_export_failure_keeps_records():
    inspector = FakeInspector(filter_id="five_star", page=1)
    inspector.records = [_review(1, "five_star", 1)]
    harness = Harness(inspector, FakeExporter(fail=True))
    harness.control.start()
    harness.seed(ScrapeSession(active=True, current_filter_index=4))

    assert harness.controller.tick() is TickOutcome.HALTED

    session = harness.store.load()
    assert session is not None
    assert session.active is False
    assert session.total_records == 1
    assert session.current_filter_index == 4
    assert harness.events.last("halted")["reason"] == "export_failed"


def test_scenario_e_challenge_blocks_mutation_then_resumes():
    inspector = FakeInspector(filter_id="two_star", page=2)
    inspector.records = [_review(1, "two_star", 2)]
    inspector.challenge = True
    inspector.next_page = True
    harness = Harness(inspector)
    harness.control.start()
    seeded = ScrapeSession(active=True, current_filter_index=1, current_page_index=1)
    harness.seed(seeded)
    before = harness.durable.get(config.SESSION_KEY)

    assert harness.controller.tick() is TickOutcome.CHALLENGE
    assert harness.controller.tick() is TickOutcome.CHALLENGE
    assert harness.durable.get(config.SESSION_KEY) == before
    assert inspector.extracted == []
    assert harness.kinds().count("alert") == 1

    inspector.challenge = False
    harness.controller.tick()
    session = harness.store.load()
    assert session.total_records == 1
    assert session.current_page_index == 2


def test_duplicate_address_is_idempotent():
    inspector = FakeInspector(filter_id="one_star", page=1)
    inspector.next_page = True
    inspector.advance_ok = True
    inspector.advance_moves = True
    inspector.records = [_review(1, "one_star", 1)]
    harness = Harness(inspector)
    harness.control.start()
    harness.seed(ScrapeSession(active=True))

    harness.controller.tick()
    # Navigation "did not happen": the page is back at the processed address.
    inspector.page_number = 1
    snapshot = harness.durable.get(config.SESSION_KEY)

    assert harness.controller.tick() is TickOutcome.DUPLICATE
    assert harness.durable.get(config.SESSION_KEY) == snapshot


def test_filter_switch_failure_halts_session():
    inspector = FakeInspector(filter_id="one_star", page=1)
    inspector.activate_ok = False
    harness = Harness(inspector)
    harness.control.start()
    harness.seed(ScrapeSession(active=True))

    assert harness.controller.tick() is TickOutcome.HALTED

    session = harness.store.load()
    assert session.active is False
    assert session.current_filter_index == 1
    assert harness.control.is_scanning() is False
    assert "halted" in harness.kinds()

    inspector.filter_id = "two_star"
    assert harness.controller.tick() is TickOutcome.IDLE


def test_inter_filter_delay_precedes_activation():
    inspector = FakeInspector(filter_id="one_star", page=1)
    harness = Harness(inspector)
    harness.control.start()
    harness.seed(ScrapeSession(active=True))

    harness.controller.tick()

    assert inspector.waits[0] == config.DELAY_BETWEEN_FILTERS_MS
    assert inspector.waits[-1] == config.FILTER_SETTLE_MS


def test_filter_index_never_decreases_over_full_traversal():
    inspector = FakeInspector(filter_id=None)
    inspector.records = [_review(0)]
    exporter = FakeExporter()
    harness = Harness(inspector, exporter)
    harness.control.start()

    seen: List[int] = []
    for _ in range(20):
        outcome = harness.controller.tick()
        session = harness.store.load()
        if session is not None:
            seen.append(session.current_filter_index)
        if outcome is TickOutcome.COMPLETE:
            break

    assert outcome is TickOutcome.COMPLETE
    assert seen == sorted(seen)
    assert inspector.activated == ["one_star", "two_star", "three_star", "four_star", "five_star"]
    assert len(exporter.calls[0]) == 5


def test_stop_signal_deactivates_session():
    inspector = FakeInspector(filter_id="one_star", page=1)
    harness = Harness(inspector)
    harness.control.start()
    harness.seed(ScrapeSession(active=True, records=[_review(1)]))

    harness.control.stop()
    assert harness.controller.tick() is TickOutcome.IDLE

    session = harness.store.load()
    assert session.active is False
    assert session.total_records == 1
    assert inspector.extracted == []


def test_start_resumes_stored_inactive_session():
    inspector = FakeInspector(filter_id="three_star", page=4)
    harness = Harness(inspector)
    harness.seed(ScrapeSession(active=False, records=[_review(1)], current_filter_index=2, current_page_index=3))

    assert harness.controller.tick() is TickOutcome.IDLE

    harness.control.start()
    harness.controller.tick()

    session = harness.store.load()
    assert session.active is True
    assert inspector.extracted == [("three_star", 4)]


def test_failed_activation_from_unfiltered_view_extracts_current_page():
    inspector = FakeInspector(filter_id=None, page=1)
    inspector.activate_ok = False
    inspector.records = [_review(1, "one_star", 1)]
    inspector.next_page = True
    harness = Harness(inspector)
    harness.control.start()

    outcome = harness.controller.tick()

    assert outcome is TickOutcome.PAGE_ADVANCED
    assert inspector.activated == ["one_star"]
    assert inspector.extracted == [("one_star", 1)]
    session = harness.store.load()
    assert session.active is True
    assert session.total_records == 1
    assert "halted" not in harness.kinds()


def test_other_filter_showing_is_extracted_under_expected_filter():
    inspector = FakeInspector(filter_id="four_star", page=2)
    inspector.next_page = True
    harness = Harness(inspector)
    harness.control.start()
    harness.seed(ScrapeSession(active=True, current_filter_index=1, current_page_index=2))

    outcome = harness.controller.tick()

    assert outcome is TickOutcome.PAGE_ADVANCED
    assert inspector.activated == []
    assert inspector.extracted == [("two_star", 2)]
    assert harness.store.load().current_filter_index == 1


def test_adjusted_configured_range_drives_page_delay(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(config, "DELAY_BETWEEN_PAGES_MIN_MS", 2500)
    monkeypatch.setattr(config, "DELAY_BETWEEN_PAGES_MAX_MS", -10)
    validate_runtime_config("tests")

    inspector = FakeInspector(filter_id="one_star", page=1)
    inspector.next_page = True
    harness = Harness(inspector)
    harness.control.start()
    harness.seed(ScrapeSession(active=True))

    harness.controller.tick()

    duration = harness.events.last("waiting")["duration"]
    assert 0 <= duration <= 2500
    assert harness.control.delay_settings().to_dict() == {"min": 0, "max": 2500}


def test_restart_after_halt_retries_the_same_page():
    inspector = FakeInspector(filter_id="one_star", page=1)
    inspector.activate_ok = False
    harness = Harness(inspector)
    harness.control.start()
    harness.seed(ScrapeSession(active=True))

    assert harness.controller.tick() is TickOutcome.HALTED
    assert harness.control.is_scanning() is False

    harness.control.start()
    assert harness.controller.tick() is not TickOutcome.DUPLICATE
    assert len(inspector.extracted) == 2
    assert harness.store.load().current_filter_index >= 1


def test_detail_page_redirects():
    inspector = FakeInspector()
    inspector.detail = True
    harness = Harness(inspector)
    harness.control.start()

    assert harness.controller.tick() is TickOutcome.REDIRECTED
    assert inspector.extracted == []


def test_reentrant_tick_is_dropped():
    inspector = FakeInspector(filter_id="one_star")
    harness = Harness(inspector)
    nested: List[TickOutcome] = []

    def reenter() -> bool:
        nested.append(harness.controller.tick())
        return True

    inspector.content_visible = reenter

    harness.controller.tick()
    assert nested == [TickOutcome.BUSY]


def test_unexpected_error_is_reported_and_next_tick_runs():
    inspector = FakeInspector(filter_id="one_star")
    harness = Harness(inspector)
    harness.control.start()
    harness.seed(ScrapeSession(active=True))

    def boom(*_args):
        raise RuntimeError("detached frame")

    inspector.extract_records = boom
    assert harness.controller.tick() is TickOutcome.ERROR

    del inspector.extract_records
    inspector.page_number = 2
    assert harness.controller.tick() is TickOutcome.FILTER_SWITCHED
