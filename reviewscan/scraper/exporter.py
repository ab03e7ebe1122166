"""CSV serialisation of accumulated reviews and the on-disk completion export."""

from __future__ import annotations

import csv
import io
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from . import config, db
from .filters import filter_for_label, label_for
from .models import Review
from .utils import disk_has_room, log_line

CSV_HEADER: Sequence[str] = (
    "Star Filter",
    "Page",
    "ID",
    "Author",
    "Rating",
    "Title",
    "Date",
    "Variant",
    "Verified",
    "Review Body",
)

BOM = "\ufeff"
_NEWLINES = re.compile(r"\r?\n")


def _quote(value: str) -> str:
    return '"' + (value or "").replace('"', '""') + '"'


def _row(review: Review) -> str:
    page = str(review.page_index) if review.page_index is not None else "N/A"
    body = _NEWLINES.sub(" ", review.body_text or "")
    return ",".join(
        [
            _quote(label_for(review.filter_partition)),
            page,
            _quote(review.id),
            _quote(review.author),
            _quote(review.rating_label),
            _quote(review.title),
            _quote(review.date),
            _quote(review.variant_label),
            "Yes" if review.verified_purchase else "No",
            _quote(body),
        ]
    )


def serialize_text(records: Iterable[Review]) -> str:
    """Return the CSV document (without BOM) for ``records`` in order."""

    lines = [",".join(CSV_HEADER)]
    lines.extend(_row(review) for review in records)
    return "\n".join(lines)


def serialize(records: Iterable[Review]) -> bytes:
    """Encode ``records`` as UTF-8 CSV with a leading byte-order mark.

    Every column is double-quoted with embedded quotes doubled, except
    ``Page`` (bare integer or ``N/A``) and ``Verified`` (bare ``Yes``/``No``).
    Newlines inside the review body are collapsed to single spaces. Rows are
    joined by ``\\n`` with no trailing newline.
    """

    return (BOM + serialize_text(records)).encode("utf-8")


def _parse_page(raw: str) -> Optional[int]:
    raw = (raw or "").strip()
    if not raw or raw == "N/A":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def deserialize(payload: bytes | str) -> List[Review]:
    """Parse an exported CSV back into reviews.

    Raises ``ValueError`` when the header does not match the export format.
    """

    text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
    if text.startswith(BOM):
        text = text[len(BOM):]

    reader = csv.reader(io.StringIO(text, newline=""))
    header = next(reader, None)
    if header is None:
        return []
    if tuple(header) != tuple(CSV_HEADER):
        raise ValueError(f"Unexpected CSV header: {header!r}")

    reviews: List[Review] = []
    for line_no, row in enumerate(reader, start=2):
        if not row:
            continue
        if len(row) != len(CSV_HEADER):
            raise ValueError(f"Row {line_no} has {len(row)} columns, expected {len(CSV_HEADER)}")
        star, page, review_id, author, rating, title, date, variant, verified, body = row
        reviews.append(
            Review(
                id=review_id,
                author=author,
                rating_label=rating,
                title=title,
                date=date,
                body_text=body,
                verified_purchase=verified.strip() == "Yes",
                variant_label=variant,
                filter_partition=filter_for_label(star),
                page_index=_parse_page(page),
            )
        )
    return reviews


def prune_old_exports(keep: Optional[int] = None) -> None:
    """Keep only the newest ``keep`` files of each export kind."""

    keep = keep or config.EXPORTS_KEEP_MAX
    exports_dir = config.EXPORTS_DIR
    if not os.path.isdir(exports_dir):
        return
    for suffix in (".csv", ".xlsx"):
        files = sorted(
            os.path.join(exports_dir, p) for p in os.listdir(exports_dir) if p.endswith(suffix)
        )
        while len(files) > keep:
            old = files.pop(0)
            try:
                os.remove(old)
            except OSError:
                continue


class CompletionExporter:
    """Writes the final CSV once the traversal exhausts every filter."""

    def export(self, records: Sequence[Review]) -> Optional[Path]:
        if not records:
            log_line("[EXPORT] No reviews collected; skipping CSV export")
            return None

        exports_dir = Path(config.EXPORTS_DIR)
        exports_dir.mkdir(parents=True, exist_ok=True)
        if not disk_has_room(config.MIN_FREE_MB, exports_dir):
            raise OSError(f"Less than {config.MIN_FREE_MB} MB free under {exports_dir}")

        timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S_%f")
        path = exports_dir / f"reviews_{timestamp}.csv"
        path.write_bytes(serialize(records))

        db.record_export(record_count=len(records), file_path=str(path), kind="csv")
        prune_old_exports()
        log_line(f"[EXPORT] Wrote {len(records)} reviews to {path}")
        return path


def latest_export_path(kind: str = "csv") -> Optional[Path]:
    """Return the newest recorded export of ``kind`` that still exists on disk."""

    for row in db.list_exports(limit=config.EXPORTS_KEEP_MAX, kind=kind):
        file_path = row.get("file_path")
        if file_path and Path(file_path).exists():
            return Path(file_path)
    return None


__all__ = [
    "CSV_HEADER",
    "serialize",
    "serialize_text",
    "deserialize",
    "prune_old_exports",
    "latest_export_path",
    "CompletionExporter",
]
