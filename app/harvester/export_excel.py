"""Excel export of harvested records."""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional

import pandas as pd

from . import config
from .extractor import parse_amount
from .session import record_to_dict
from .utils import log_line

EXPORT_PREFIX = "harvest_"


def _export_paths() -> list[Path]:
    if not config.EXPORTS_DIR.is_dir():
        return []
    return sorted(
        path
        for path in config.EXPORTS_DIR.iterdir()
        if path.name.startswith(EXPORT_PREFIX) and path.suffix == ".xlsx"
    )


def latest_export_path() -> Optional[Path]:
    exports = _export_paths()
    return exports[-1] if exports else None


def prune_old_exports(keep: Optional[int] = None) -> None:
    limit = config.MAX_EXPORTS if keep is None else keep
    exports = _export_paths()
    while len(exports) > max(1, limit):
        old = exports.pop(0)
        try:
            os.remove(old)
        except OSError:
            continue


def export_records_to_excel(
    records: Iterable[Any], dest_path: Optional[str | Path] = None
) -> Path:
    """Write ``records`` to an ``.xlsx`` workbook and return its path.

    The ``Records`` sheet holds one row per record; ``Summary_Page`` has the
    record count and summed totals per page.
    """

    rows = [record_to_dict(record) for record in records]
    df = pd.DataFrame(rows)
    if df.empty:
        df = pd.DataFrame([{"info": "No records harvested"}])

    if "page_number" in df.columns:
        amounts = (
            df["total_amount"].map(parse_amount) if "total_amount" in df.columns else 0.0
        )
        summary_page = (
            df.assign(total_amount_value=amounts)
            .groupby("page_number")
            .agg(records=("page_number", "size"), total_amount=("total_amount_value", "sum"))
            .reset_index()
        )
    else:
        summary_page = pd.DataFrame()

    summary_status = (
        df.groupby("status").size().reset_index(name="count")
        if "status" in df.columns
        else pd.DataFrame()
    )

    config.EXPORTS_DIR.mkdir(parents=True, exist_ok=True)
    if not dest_path:
        stamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S_%f")
        dest_path = config.EXPORTS_DIR / f"{EXPORT_PREFIX}{stamp}.xlsx"
    dest = Path(dest_path)

    with pd.ExcelWriter(dest, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="Records")
        summary_page.to_excel(writer, index=False, sheet_name="Summary_Page")
        if not summary_status.empty:
            summary_status.to_excel(writer, index=False, sheet_name="Summary_Status")

    log_line(f"[EXPORT] Wrote {len(rows)} records to {dest}")
    prune_old_exports()
    return dest


__all__ = ["export_records_to_excel", "latest_export_path", "prune_old_exports"]
