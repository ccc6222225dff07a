import asyncio

from config import GateConfig
from gatekeeper import Gatekeeper
from models import ConfidenceLevel, InsightContext
from monitor import ProductionMonitor
from request_cache import FetchOutcome

GROWTH_TEXT = "Januari 500jt, Februari 600jt, Maret 750jt, April 900jt"


def _valid_chart():
    return {
        "action": "show_chart",
        "chart_type": "line",
        "title": "Penjualan Januari - Maret",
        "message": "Penjualan naik 50%.",
        "data": [
            {"month": "Januari", "value": 500},
            {"month": "Februari", "value": 600},
            {"month": "Maret", "value": 750},
        ],
        "xKey": "month",
        "yKey": "value",
        "source": "user",
    }


def test_growth_text_renders_with_insight_and_chart():
    gatekeeper = Gatekeeper()
    decision = gatekeeper.process_text("data-visualization", GROWTH_TEXT, context=InsightContext.SALES)
    assert decision.can_render
    assert not decision.killed
    assert decision.insight.confidence is ConfidenceLevel.MEDIUM
    assert decision.message.startswith(decision.insight.summary)
    assert decision.chart.chart_type == "line"
    assert decision.chart.x_key == "month"
    assert len(decision.chart.data) == 4
    assert len(gatekeeper.monitor) == 1
    assert gatekeeper.monitor.metrics().recent_logs[0].data_point_count == 4


def test_narrative_replaces_generated_caption():
    decision = Gatekeeper().process_text("data-visualization", GROWTH_TEXT, narrative="Penjualan naik terus")
    assert decision.can_render
    assert decision.message == "Penjualan naik terus"
    assert decision.verdict.business_valid


def test_outlier_requires_confirmation():
    decision = Gatekeeper().process_text("data-visualization", "Januari 500, Februari 600, Maret 9000, April 700")
    assert not decision.can_render
    assert decision.requires_confirmation
    assert any("Maret" in warning for warning in decision.verdict.warnings)
    assert decision.verdict.confirmed().can_render


def test_single_point_is_blocked_with_fallback():
    decision = Gatekeeper().process_text("data-visualization", "Januari 500jt")
    assert not decision.can_render
    assert not decision.requires_confirmation
    assert decision.message == "Minimum two points required for visualization"
    assert decision.fallback_message == GateConfig.fallback_for("data-visualization")
    assert decision.chart is None


def test_module_without_charts_gets_text_only():
    decision = Gatekeeper().process_text("letter", GROWTH_TEXT)
    assert decision.can_render
    assert decision.chart is None
    assert decision.insight is not None


def test_process_dataset_accepts_raw_candidate():
    candidate = {
        "success": True,
        "dataPoints": [{"label": "Q1", "value": 100}, {"label": "Q2", "value": 90}, {"label": "Q3", "value": 80}],
    }
    decision = Gatekeeper().process_dataset("reports", "quarterly revenue", candidate)
    assert decision.can_render
    assert decision.chart.x_key == "month"
    assert decision.to_dict()["verdict"]["stage"] == "passed"


def test_kill_switch_serves_fallback_but_keeps_recording():
    monitor = ProductionMonitor()
    monitor.manual_override(True)
    gatekeeper = Gatekeeper(monitor=monitor)
    decision = gatekeeper.process_text("data-visualization", GROWTH_TEXT)
    assert decision.killed
    assert not decision.can_render
    assert decision.chart is None
    assert decision.message == GateConfig.KILL_SWITCH_MESSAGE
    assert decision.fallback_message == GateConfig.fallback_for("data-visualization")
    assert decision.verdict.can_render
    assert len(monitor) == 1


def test_kill_switch_clears_itself_once_output_recovers():
    monitor = ProductionMonitor()
    gatekeeper = Gatekeeper(monitor=monitor)
    for _ in range(20):
        gatekeeper.process_text("data-visualization", "halo")
    assert monitor.is_active()
    for _ in range(200):
        gatekeeper.process_text("data-visualization", GROWTH_TEXT)
    assert not monitor.is_active()
    assert gatekeeper.process_text("data-visualization", GROWTH_TEXT).can_render


def test_model_response_guarded_against_user_input():
    gatekeeper = Gatekeeper()
    user_input = "Januari 500, Februari 600, Maret 750"
    decision = gatekeeper.process_model_response("data-visualization", user_input, _valid_chart())
    assert decision.can_render
    assert decision.dataset.labels == ["Januari", "Februari", "Maret"]
    assert decision.message == "Penjualan naik 50%."

    dropped = dict(_valid_chart(), data=_valid_chart()["data"][:2])
    blocked = gatekeeper.process_model_response("data-visualization", user_input, dropped)
    assert not blocked.can_render
    assert "does not match your input" in blocked.fallback_message
    assert gatekeeper.monitor.metrics().total_requests == 2


def test_fetch_goes_through_shared_cache():
    gatekeeper = Gatekeeper()
    calls = []

    async def producer():
        calls.append(1)
        await asyncio.sleep(0.01)
        return {"BTC": 1}

    async def run():
        return await asyncio.gather(*(gatekeeper.fetch("price:BTC", producer) for _ in range(5)))

    results = asyncio.run(run())
    assert len(calls) == 1
    assert all(result.value == {"BTC": 1} for result in results)
    assert {result.outcome for result in results} <= {FetchOutcome.FETCHED, FetchOutcome.HIT}


def test_out_of_range_candidate_is_recorded_not_raised():
    gatekeeper = Gatekeeper()
    candidate = {"success": True, "dataPoints": [{"label": "Jan", "value": 10 ** 400}, {"label": "Feb", "value": 5}]}
    decision = gatekeeper.process_dataset("reports", "huge number", candidate)
    assert not decision.can_render
    assert not decision.verdict.schema_valid
    assert len(gatekeeper.monitor) == 1
    assert gatekeeper.monitor.recent_errors(1)[0].data_point_count == 0
