import pytest

from config import GateConfig
from metrics import create_log_entry, normalize_error, summarize


def test_create_log_entry_truncates_user_input():
    entry = create_log_entry("chat", "x" * 500, True, response_time_ms=12.5, chart_type="bar")
    assert len(entry.user_input) == GateConfig.USER_INPUT_MAX_CHARS
    assert entry.response_time_ms == 12.5
    assert entry.chart_type == "bar"
    assert entry.errors == []
    assert entry.timestamp.endswith("+00:00")


def test_normalize_error_masks_quoted_text():
    assert normalize_error('Label "Maret" from the user input is missing') == (
        'Label "..." from the user input is missing'
    )
    assert len(normalize_error("e" * 300)) == 100


def test_summarize_empty_log():
    metrics = summarize([])
    assert metrics.total_requests == 0
    assert metrics.success_rate == 100.0
    assert metrics.avg_response_time_ms == 0.0
    assert metrics.common_errors == []


def test_summarize_groups_common_errors():
    entries = [
        create_log_entry("reports", "a", False, ['Label "Maret" missing'], response_time_ms=10),
        create_log_entry("reports", "b", False, ['Label "April" missing', "Parser failed"], response_time_ms=20),
        create_log_entry("chat", "c", True, response_time_ms=30),
    ]
    metrics = summarize(entries)
    assert metrics.total_requests == 3
    assert metrics.success_rate == pytest.approx(100 / 3)
    assert metrics.avg_response_time_ms == pytest.approx(20.0)
    assert metrics.errors_by_module == {"reports": 2}
    assert metrics.common_errors[0] == {"error": 'Label "..." missing', "count": 2}
    assert metrics.common_errors[1] == {"error": "Parser failed", "count": 1}


def test_metrics_to_dict_serializes_recent_logs():
    payload = summarize([create_log_entry("chat", "hello", True)]).to_dict()
    assert payload["recent_logs"][0]["user_input"] == "hello"
    assert payload["recent_logs"][0]["output_valid"] is True
