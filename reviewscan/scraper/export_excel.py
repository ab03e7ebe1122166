"""Excel export helpers for scraped reviews."""

from __future__ import annotations

import os
from datetime import datetime
from typing import Optional, Sequence

import pandas as pd

from . import config, db
from .exporter import CSV_HEADER, deserialize, latest_export_path, prune_old_exports
from .filters import FILTER_SET, label_for
from .models import Review


def _latest_exported_reviews() -> list[Review]:
    """Return the reviews of the most recent CSV export, if any.

    Used once a session has completed and been cleared, so the workbook can
    still be produced from what was written to disk.
    """

    path = latest_export_path("csv")
    if path is None:
        return []
    return deserialize(path.read_bytes())


def _frame(reviews: Sequence[Review]) -> pd.DataFrame:
    rows = [
        {
            "Star Filter": label_for(r.filter_partition),
            "Page": r.page_index if r.page_index is not None else "N/A",
            "ID": r.id,
            "Author": r.author,
            "Rating": r.rating_label,
            "Title": r.title,
            "Date": r.date,
            "Variant": r.variant_label,
            "Verified": "Yes" if r.verified_purchase else "No",
            "Review Body": r.body_text,
        }
        for r in reviews
    ]
    return pd.DataFrame(rows, columns=list(CSV_HEADER))


def export_reviews_to_excel(
    reviews: Optional[Sequence[Review]] = None, dest_path: Optional[str] = None
) -> str:
    """Create an Excel workbook from ``reviews`` or the latest CSV export.

    The workbook holds an ``All`` sheet, one sheet per star filter that has
    reviews, and a ``Summary`` sheet with per-filter and verified counts.
    """

    if not reviews:
        reviews = _latest_exported_reviews()
    if not reviews:
        raise FileNotFoundError("No reviews available to export")

    df = _frame(reviews)

    summary_filter = (
        df.groupby("Star Filter").size().reset_index(name="count")
        if not df.empty
        else pd.DataFrame()
    )
    summary_verified = (
        df.groupby(["Star Filter", "Verified"]).size().reset_index(name="count")
        if not df.empty
        else pd.DataFrame()
    )

    os.makedirs(config.EXPORTS_DIR, exist_ok=True)
    if not dest_path:
        timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S_%f")
        dest_path = os.path.join(config.EXPORTS_DIR, f"reviews_{timestamp}.xlsx")

    with pd.ExcelWriter(dest_path, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="All")
        for filter_id in FILTER_SET:
            label = label_for(filter_id)
            partition = df[df["Star Filter"] == label]
            if not partition.empty:
                partition.to_excel(writer, index=False, sheet_name=label)
        summary_filter.to_excel(writer, index=False, sheet_name="Summary")
        if not summary_verified.empty:
            summary_verified.to_excel(writer, index=False, sheet_name="Summary_Verified")

    db.record_export(record_count=len(reviews), file_path=dest_path, kind="xlsx")
    prune_old_exports()
    return dest_path


__all__ = ["export_reviews_to_excel"]
