"""Values passed through and returned by harvest operations."""
from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field, is_dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

from . import config
from .pagination import PaginationState


class Record(Protocol):
    """What the harvest core needs from an extracted record."""

    sequence_within_page: int

    def is_harvestable(self) -> bool: ...

    def tagged(self, *, page_number: int, global_index: int) -> "Record": ...


class HarvestStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class HarvestPhase(str, Enum):
    IDLE = "idle"
    PRIMING = "priming"
    SCANNING = "scanning"
    DECIDING = "deciding"
    ADVANCING = "advancing"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class HarvestLimits:
    empty_page_threshold: int = config.EMPTY_PAGE_THRESHOLD
    max_page_advances: int = config.MAX_PAGE_ADVANCES
    inter_page_delay_seconds: float = config.INTER_PAGE_DELAY_SECONDS
    render_timeout_ms: int = config.RENDER_TIMEOUT_MS
    stability_seconds: float = config.DOM_STABILITY_SECONDS


@dataclass(frozen=True)
class ProgressEvent:
    current_page: int
    total_pages: int
    processed_count: int
    total_record_count: int
    message: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "currentPage": self.current_page,
            "totalPages": self.total_pages,
            "processedCount": self.processed_count,
            "totalRecordCount": self.total_record_count,
            "message": self.message,
            "percentage": (
                round(self.current_page / self.total_pages * 100, 1)
                if self.total_pages > 0
                else 0
            ),
        }


ProgressSink = Callable[[ProgressEvent], None]


@dataclass(frozen=True)
class ScanResult:
    """Valid records located on the current page plus the state read with them."""

    records: List[Any]
    state: PaginationState
    rows_located: int = 0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "records": [record_to_dict(record) for record in self.records],
            "totalRecordCount": self.state.total_record_count,
            "currentPage": self.state.current_page,
            "totalPages": self.state.total_pages,
        }


@dataclass
class HarvestSession:
    """Mutable state owned by one orchestrator run."""

    accumulated_records: List[Any] = field(default_factory=list)
    processed_count: int = 0
    consecutive_empty_pages: int = 0
    status: HarvestStatus = HarvestStatus.IDLE
    phase: HarvestPhase = HarvestPhase.IDLE
    page_number: int = 1
    pages_scanned: int = 0
    page_advances: int = 0
    stop_reason: Optional[str] = None
    state: PaginationState = field(default_factory=PaginationState)
    last_scan: Optional[ScanResult] = None

    def append_page(self, records: List[Any], page_number: int) -> List[Any]:
        """Tag ``records`` for this page and add them in order."""

        tagged = [
            record.tagged(page_number=page_number, global_index=self.processed_count + local_index)
            for local_index, record in enumerate(records, start=1)
        ]
        self.accumulated_records.extend(tagged)
        self.processed_count = len(self.accumulated_records)
        return tagged


@dataclass(frozen=True)
class HarvestResult:
    success: bool
    status: HarvestStatus
    records: List[Any]
    processed_count: int
    total_record_count: Optional[int] = None
    pages_scanned: int = 0
    stop_reason: Optional[str] = None
    error: Optional[str] = None
    last_scan: Optional[ScanResult] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "records": [record_to_dict(record) for record in self.records],
            "processedCount": self.processed_count,
            "status": self.status.value,
            "pagesScanned": self.pages_scanned,
            "stopReason": self.stop_reason,
        }
        if self.total_record_count is not None:
            payload["totalRecordCount"] = self.total_record_count
        if self.error:
            payload["error"] = self.error
        return payload


class CancelToken:
    """Cooperative stop request checked between pages."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def record_to_dict(record: Any) -> Dict[str, Any]:
    if is_dataclass(record):
        return asdict(record)
    if isinstance(record, dict):
        return dict(record)
    return dict(vars(record))


__all__ = [
    "Record",
    "HarvestStatus",
    "HarvestPhase",
    "HarvestLimits",
    "ProgressEvent",
    "ProgressSink",
    "ScanResult",
    "HarvestSession",
    "HarvestResult",
    "CancelToken",
    "record_to_dict",
]
