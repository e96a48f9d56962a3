"""Configuration constants for the grid harvester."""
from __future__ import annotations

import os
from pathlib import Path

DATA_DIR: Path = Path(os.getenv("HARVESTER_DATA_DIR", "/app/data"))
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
EXPORTS_DIR: Path = DATA_DIR / "exports"
SNAPSHOTS_DIR: Path = DATA_DIR / "snapshots"
SUMMARY_FILE: Path = DATA_DIR / "last_summary.json"

TARGET_URL: str = os.getenv(
    "HARVESTER_TARGET_URL", "https://invoicing.eta.gov.eg/documents/recent"
)
HEADLESS: bool = os.getenv("HARVESTER_HEADLESS", "true").strip().lower() not in {
    "0",
    "false",
}
STORAGE_STATE_FILE: str | None = os.getenv("HARVESTER_STORAGE_STATE") or None


def _parse_timeout_seconds(env_var: str, default: int, *, minimum: int = 1) -> int:
    """Parse a timeout value in seconds from the environment with bounds."""

    try:
        value = int(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


# Playwright timeouts
PLAYWRIGHT_NAV_TIMEOUT_SECONDS: int = _parse_timeout_seconds(
    "HARVESTER_NAV_TIMEOUT_SECONDS", 45
)
# Click-level timeout remains in milliseconds to match Playwright API expectations.
PLAYWRIGHT_CLICK_TIMEOUT_MS: int = int(os.getenv("PLAYWRIGHT_CLICK_TIMEOUT_MS", "2000"))

# Render-completion polling
WAIT_POLL_INTERVAL_SECONDS: float = float(os.getenv("HARVESTER_POLL_INTERVAL_SECONDS", "0.3"))
RENDER_TIMEOUT_MS: int = int(os.getenv("HARVESTER_RENDER_TIMEOUT_MS", "10000"))
# Quiet period after loading indicators clear and rows appear.
DOM_STABILITY_SECONDS: float = float(os.getenv("HARVESTER_DOM_STABILITY_SECONDS", "1.5"))

# Navigation pacing (seconds)
CONTROL_SETTLE_SECONDS: float = float(os.getenv("HARVESTER_CONTROL_SETTLE_SECONDS", "0.8"))
DIRECT_PAGE_CLICK_SECONDS: float = float(os.getenv("HARVESTER_DIRECT_PAGE_CLICK_SECONDS", "1.5"))
SEQUENTIAL_STEP_SECONDS: float = float(os.getenv("HARVESTER_SEQUENTIAL_STEP_SECONDS", "1.2"))
INTER_PAGE_DELAY_SECONDS: float = float(os.getenv("HARVESTER_INTER_PAGE_DELAY_SECONDS", "0.8"))
# Extra stepping attempts allowed beyond the page distance.
NAVIGATION_SLACK: int = int(os.getenv("HARVESTER_NAVIGATION_SLACK", "10"))

# Harvest circuit breakers
EMPTY_PAGE_THRESHOLD: int = int(os.getenv("HARVESTER_EMPTY_PAGE_THRESHOLD", "3"))
MAX_PAGE_ADVANCES: int = int(os.getenv("HARVESTER_MAX_PAGE_ADVANCES", "1000"))

# Change monitor
CHANGE_DEBOUNCE_SECONDS: float = float(os.getenv("HARVESTER_CHANGE_DEBOUNCE_SECONDS", "0.8"))
# How long the page worker pumps browser events between queued commands.
WORKER_IDLE_PUMP_SECONDS: float = float(os.getenv("HARVESTER_WORKER_IDLE_PUMP_SECONDS", "0.2"))

# Record derivation
VAT_RATE: float = float(os.getenv("HARVESTER_VAT_RATE", "0.14"))
DEFAULT_CURRENCY: str = os.getenv("HARVESTER_DEFAULT_CURRENCY", "EGP")
RECORD_LINK_TEMPLATE: str = os.getenv(
    "HARVESTER_RECORD_LINK_TEMPLATE",
    "https://invoicing.eta.gov.eg/documents/{electronic_number}/share/{share_id}",
)

MAX_EXPORTS: int = int(os.getenv("EXPORTS_KEEP_MAX", "5"))

COMMON_HEADERS: dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "ar-EG,ar;q=0.9,en-US;q=0.8,en;q=0.7",
}
