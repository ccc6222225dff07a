import logging

from exceptions import RateLimitError, StructuralError
from logging_utils import get_error_info, log_decision, log_exception


def test_get_error_info_includes_gate_issues():
    exc = StructuralError("Schema error", ["Schema error: dataPoints.0.value: value must be a number"])
    info = get_error_info(exc, {"module": "reports"})
    assert info["error_type"] == "StructuralError"
    assert info["details"]["issues"] == exc.issues
    assert info["context"] == {"module": "reports"}


def test_get_error_info_records_cache_key_and_cause():
    try:
        try:
            raise RuntimeError("429 Too Many Requests")
        except RuntimeError as cause:
            raise RateLimitError("price:BTC", "Upstream fetch failed") from cause
    except RateLimitError as exc:
        info = get_error_info(exc)
    assert info["details"]["cache_key"] == "price:BTC"
    assert info["details"]["cause"] == "RuntimeError: 429 Too Many Requests"


def test_log_exception_writes_context(caplog):
    logger = logging.getLogger("gate_run.test")
    with caplog.at_level(logging.DEBUG, logger="gate_run.test"):
        log_exception(logger, ValueError("bad dataset"), context="run_gate", module="chat")
    messages = [record.getMessage() for record in caplog.records]
    assert messages[0] == "run_gate: ValueError: bad dataset"
    assert "'module': 'chat'" in messages[1]
    assert messages[2].startswith("Traceback:")


def test_log_decision_summary_line(caplog):
    logger = logging.getLogger("gate_run.test")
    decision = {
        "module": "data-visualization",
        "canRender": False,
        "requiresConfirmation": True,
        "killed": False,
        "verdict": {"stage": "passed", "warnings": ["Outlier detected at Maret (+180% from the mean)"], "errors": []},
    }
    with caplog.at_level(logging.DEBUG, logger="gate_run.test"):
        log_decision(logger, decision)
    assert caplog.records[0].getMessage() == (
        "module=data-visualization render=False confirm=True killed=False stage=passed"
    )
    assert caplog.records[1].getMessage().startswith("warning: Outlier detected")
