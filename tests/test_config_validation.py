from app.harvester import config
from app.harvester.config_validation import validate_runtime_config
import pytest


def test_non_http_target_rejected_for_live_runs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "TARGET_URL", "file:///tmp/list.html")
    with pytest.raises(ValueError):
        validate_runtime_config("cli")


def test_target_url_ignored_for_replay(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "TARGET_URL", "")
    validate_runtime_config("replay")


@pytest.mark.parametrize(
    "field", ["PLAYWRIGHT_NAV_TIMEOUT_SECONDS", "PLAYWRIGHT_CLICK_TIMEOUT_MS", "RENDER_TIMEOUT_MS"]
)
def test_invalid_timeout(monkeypatch: pytest.MonkeyPatch, field: str) -> None:
    monkeypatch.setattr(config, field, 0)
    with pytest.raises(ValueError):
        validate_runtime_config("tests")


@pytest.mark.parametrize("field", ["EMPTY_PAGE_THRESHOLD", "MAX_PAGE_ADVANCES"])
def test_circuit_breakers_must_be_positive(monkeypatch: pytest.MonkeyPatch, field: str) -> None:
    monkeypatch.setattr(config, field, 0)
    with pytest.raises(ValueError):
        validate_runtime_config("tests")


def test_negative_vat_rate(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "VAT_RATE", -0.14)
    with pytest.raises(ValueError):
        validate_runtime_config("tests")


def test_recoverable_knobs_clamped(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "WAIT_POLL_INTERVAL_SECONDS", 0)
    monkeypatch.setattr(config, "INTER_PAGE_DELAY_SECONDS", -1.0)
    monkeypatch.setattr(config, "NAVIGATION_SLACK", -3)
    monkeypatch.setattr(config, "MAX_EXPORTS", 0)

    validate_runtime_config("tests")

    assert config.WAIT_POLL_INTERVAL_SECONDS == 0.3
    assert config.INTER_PAGE_DELAY_SECONDS == 0.0
    assert config.NAVIGATION_SLACK == 0
    assert config.MAX_EXPORTS == 1
