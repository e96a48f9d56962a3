from __future__ import annotations

from pathlib import Path

from app.harvester import config
from app.harvester.run import run_harvest
from app.harvester.snapshot_replay import SnapshotView, snapshot_session
from app.harvester.utils import load_json_file
from tests.grid_pages import paged_listing


def test_run_harvest_writes_summary_and_export(tmp_path: Path) -> None:
    view = SnapshotView(paged_listing([20, 20, 5], total=45))
    export_path = tmp_path / "out.xlsx"

    summary = run_harvest(
        "https://portal.example/documents",
        export_path=export_path,
        session_factory=lambda: snapshot_session(view),
    )

    assert summary["success"] is True
    assert summary["status"] == "completed"
    assert summary["stop_reason"] == "target_reached"
    assert summary["processed_count"] == 45
    assert summary["total_record_count"] == 45
    assert summary["pages_scanned"] == 3
    assert summary["export_path"] == str(export_path)
    assert export_path.is_file()
    assert Path(summary["log_file"]).is_file()
    assert load_json_file(config.SUMMARY_FILE) == summary


def test_run_harvest_without_export() -> None:
    view = SnapshotView(paged_listing([5], total=5))

    summary = run_harvest(export=False, session_factory=lambda: snapshot_session(view))

    assert summary["url"] == config.TARGET_URL
    assert summary["processed_count"] == 5
    assert summary["export_path"] is None
    assert not config.EXPORTS_DIR.exists() or not any(config.EXPORTS_DIR.iterdir())
