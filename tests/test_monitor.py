import threading

import pytest

from config import GateConfig
from metrics import create_log_entry
from monitor import ProductionMonitor


def _feed(monitor, valid_flags, module="data-visualization"):
    for valid in valid_flags:
        errors = [] if valid else ['Label "Maret" missing']
        monitor.record(create_log_entry(module, "Januari 500jt, Februari 600jt", valid, errors))


def _pattern(invalid_per_20, blocks):
    # invalid samples first inside every block of 20
    block = [False] * invalid_per_20 + [True] * (20 - invalid_per_20)
    return block * blocks


def test_high_error_rate_trips_kill_switch():
    monitor = ProductionMonitor()
    _feed(monitor, _pattern(17, 5))
    assert monitor.is_active()
    assert monitor.current_error_rate() >= 0.5


def test_sixty_percent_does_not_clear_tripped_switch():
    monitor = ProductionMonitor()
    _feed(monitor, _pattern(17, 5))
    assert monitor.is_active()
    _feed(monitor, _pattern(12, 10))
    assert monitor.is_active()
    assert monitor.current_error_rate() >= 0.5


def test_recovered_error_rate_clears_switch():
    monitor = ProductionMonitor()
    _feed(monitor, _pattern(17, 5))
    assert monitor.is_active()
    _feed(monitor, [True] * 200)
    assert not monitor.is_active()
    assert monitor.current_error_rate() < 0.5


def test_needs_more_than_min_samples():
    monitor = ProductionMonitor()
    _feed(monitor, [False] * GateConfig.MONITOR_MIN_SAMPLES)
    assert not monitor.is_active()
    _feed(monitor, [False])
    assert monitor.is_active()


def test_counters_halve_at_decay_point():
    monitor = ProductionMonitor(decay_at=100)
    _feed(monitor, [True] * 99)
    assert monitor.status()["recent_total"] == 99
    _feed(monitor, [False])
    status = monitor.status()
    assert status["recent_total"] == 50
    assert status["recent_errors"] == 0


def test_manual_override_takes_precedence_until_cleared():
    monitor = ProductionMonitor()
    monitor.manual_override(True)
    _feed(monitor, [True] * 30)
    assert monitor.is_active()
    assert monitor.status()["override"] is True

    monitor.clear_override()
    assert not monitor.is_active()

    _feed(monitor, [False] * 150)
    assert monitor.is_active()
    monitor.manual_override(False)
    assert not monitor.is_active()
    monitor.manual_override(None)
    assert monitor.is_active()


def test_ring_buffer_keeps_newest_entries():
    monitor = ProductionMonitor(capacity=5)
    for idx in range(8):
        monitor.record(create_log_entry("chat", f"request {idx}", True))
    assert len(monitor) == 5
    assert monitor.metrics().recent_logs[0].user_input == "request 7"
    assert monitor.metrics().recent_logs[-1].user_input == "request 3"


def test_recent_errors_and_metrics():
    monitor = ProductionMonitor()
    _feed(monitor, [True, False, True, False], module="reports")
    failed = monitor.recent_errors(1)
    assert len(failed) == 1
    assert not failed[0].output_valid
    metrics = monitor.metrics()
    assert metrics.total_requests == 4
    assert metrics.success_rate == pytest.approx(50.0)
    assert metrics.errors_by_module == {"reports": 2}


def test_status_and_fallbacks():
    monitor = ProductionMonitor()
    status = monitor.status()
    assert status["active"] is False
    assert status["threshold"] == pytest.approx(0.8)
    assert monitor.fallback_message("market") == GateConfig.MODULE_FALLBACKS["market"]
    assert monitor.fallback_message("letter") == GateConfig.DEFAULT_FALLBACK


def test_reset_clears_state():
    monitor = ProductionMonitor()
    _feed(monitor, [False] * 20)
    monitor.manual_override(True)
    monitor.reset()
    assert not monitor.is_active()
    assert len(monitor) == 0
    assert monitor.status()["recent_total"] == 0


def test_concurrent_records_are_counted_exactly():
    monitor = ProductionMonitor(decay_at=10_000, capacity=10_000)

    def worker():
        _feed(monitor, [True] * 250)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert monitor.status()["recent_total"] == 2000
    assert len(monitor) == 2000


def test_rejects_inverted_thresholds():
    with pytest.raises(ValueError):
        ProductionMonitor(trip_rate=0.4, clear_rate=0.6)


def test_halving_below_min_samples_keeps_switch_tripped():
    monitor = ProductionMonitor(decay_at=20, min_samples=10)
    _feed(monitor, [False] * 19)
    assert monitor.is_active()
    _feed(monitor, [False])
    assert monitor.status()["recent_total"] == 10
    assert monitor.is_active()
