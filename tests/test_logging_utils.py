from reviewscan.scraper import logging_utils


def test_scraper_event_label_and_phase(monkeypatch):
    events: list[str] = []
    monkeypatch.setattr(logging_utils, "log_line", lambda msg: events.append(msg))

    logging_utils._scraper_event("state", phase="paginate", kind="summary")

    assert events
    line = events[-1]
    assert line.startswith("[SCRAPER][STATE]")
    assert "phase='paginate'" in line
    assert "kind='summary'" in line


def test_scraper_event_phase_as_label(monkeypatch):
    events: list[str] = []
    monkeypatch.setattr(logging_utils, "log_line", lambda msg: events.append(msg))

    logging_utils._scraper_event(phase="nav", step="goto")

    assert events[-1].startswith("[SCRAPER][NAV]")
    assert "phase=" not in events[-1]


def test_scraper_event_clips_long_values(monkeypatch):
    events: list[str] = []
    monkeypatch.setattr(logging_utils, "log_line", lambda msg: events.append(msg))

    logging_utils._scraper_event("nav", url="https://example.com/" + "x" * 500)

    assert len(events[-1]) < 300
    assert events[-1].endswith("...")


def test_scraper_event_never_raises(monkeypatch):
    def _boom(_msg):
        raise RuntimeError("handler down")

    monkeypatch.setattr(logging_utils, "log_line", _boom)

    logging_utils._scraper_event("error", error="ignored")
