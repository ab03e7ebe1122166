from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from reviewscan.scraper import config, db
from reviewscan.scraper.export_excel import export_reviews_to_excel
from reviewscan.scraper.exporter import CompletionExporter
from reviewscan.scraper.models import Review
from tests.test_control_api import _configure_temp_paths


def _review(index: int, filter_id: str, verified: bool = True) -> Review:
    return Review(
        id=f"R{index}",
        author="Ann",
        rating_label="",
        title="",
        date="",
        body_text=f"body {index}",
        verified_purchase=verified,
        variant_label="",
        filter_partition=filter_id,
        page_index=1,
    )


def test_workbook_has_partition_and_summary_sheets(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_paths(tmp_path, monkeypatch)
    db.initialize_schema()
    reviews = [
        _review(1, "one_star"),
        _review(2, "one_star", verified=False),
        _review(3, "four_star"),
    ]

    path = export_reviews_to_excel(reviews)

    sheets = pd.read_excel(path, sheet_name=None)
    assert set(sheets) == {"All", "1★", "4★", "Summary", "Summary_Verified"}
    assert len(sheets["All"]) == 3
    summary = dict(zip(sheets["Summary"]["Star Filter"], sheets["Summary"]["count"]))
    assert summary == {"1★": 2, "4★": 1}
    assert db.list_exports(kind="xlsx")[0]["record_count"] == 3


def test_workbook_falls_back_to_latest_csv_export(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_paths(tmp_path, monkeypatch)
    monkeypatch.setattr(config, "MIN_FREE_MB", 0)
    db.initialize_schema()
    CompletionExporter().export([_review(1, "two_star"), _review(2, "five_star")])

    path = export_reviews_to_excel(None)

    sheets = pd.read_excel(path, sheet_name=None)
    assert list(sheets["All"]["ID"]) == ["R1", "R2"]


def test_workbook_without_reviews_raises(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_paths(tmp_path, monkeypatch)
    db.initialize_schema()

    with pytest.raises(FileNotFoundError):
        export_reviews_to_excel([])
