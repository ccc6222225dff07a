import json

import pytest

from exceptions import BUSINESS_INCONSISTENCY, SEMANTIC_WARNING, STRUCTURAL, SemanticError, StructuralError
from config import GateConfig
from gates import ValidationGate, check_narrative, business_expectation, validate_semantics
from models import DataPoint, Direction, GateStage
from trend_engine import InsightData, analyze

MONTHS = ["Januari", "Februari", "Maret", "April", "Mei", "Juni"]


def _dataset(values, labels=None):
    labels = labels or MONTHS[: len(values)]
    return {
        "success": True,
        "dataPoints": [{"label": label, "value": value} for label, value in zip(labels, values)],
        "detectedUnit": None,
    }


def _points(values, labels=None):
    labels = labels or MONTHS[: len(values)]
    return [DataPoint(label=label, value=value) for label, value in zip(labels, values)]


def test_growth_dataset_passes_all_stages():
    verdict = ValidationGate().validate(_dataset([500, 600, 750, 900]), "Penjualan naik, growth 80%.")
    assert verdict.passed
    assert verdict.can_render
    assert verdict.stage is GateStage.PASSED
    assert verdict.trend.direction is Direction.UP
    assert verdict.trend.overall_change_pct == pytest.approx(80.0)
    assert verdict.warnings == []


def test_contradicting_narrative_is_a_business_warning():
    verdict = ValidationGate().validate(
        _dataset([500, 600, 750, 900]), "Terjadi penurunan penjualan, a clear decline."
    )
    assert not verdict.passed
    assert not verdict.business_valid
    assert verdict.can_render
    assert any(issue.code == BUSINESS_INCONSISTENCY for issue in verdict.issues)
    assert any("penurunan" in warning for warning in verdict.warnings)


def test_narrative_without_trend_vocabulary_is_flagged():
    verdict = ValidationGate().validate(_dataset([500, 600, 750, 900]), "Here is your chart.")
    assert not verdict.business_valid
    assert any("Suggested keywords" in warning for warning in verdict.warnings)


def test_flat_trend_has_no_forbidden_keywords():
    expectation = business_expectation(analyze(InsightData(values=[100, 101, 100, 102], labels=MONTHS[:4])))
    assert expectation.direction is Direction.FLAT
    assert expectation.forbidden_keywords == []
    assert check_narrative("Penjualan stabil", expectation).valid


def test_single_point_is_not_renderable():
    verdict = ValidationGate().validate(_dataset([500]))
    assert not verdict.passed
    assert not verdict.can_render
    assert verdict.stage is GateStage.SEMANTIC
    assert any("minimum two points required" in error.lower() for error in verdict.errors)
    with pytest.raises(SemanticError):
        verdict.raise_for_status()


def test_empty_dataset_reports_no_data():
    verdict = ValidationGate().validate(_dataset([]))
    assert not verdict.semantic_valid
    assert verdict.errors == ["No data to validate"]


def test_outlier_requires_confirmation():
    verdict = ValidationGate().validate(_dataset([500, 600, 50000, 800]))
    assert verdict.semantic_valid
    assert verdict.requires_confirmation
    assert not verdict.can_render
    outliers = [warning for warning in verdict.warnings if warning.startswith("Outlier detected")]
    assert len(outliers) == 1
    assert "Maret" in outliers[0]

    confirmed = verdict.confirmed()
    assert confirmed.can_render
    assert not confirmed.requires_confirmation


def test_negative_values_require_confirmation():
    result = validate_semantics(_points([500, -200, 700]))
    assert result.valid
    assert result.requires_confirmation
    assert result.warnings[0] == "Negative values detected at: Februari (-200)"
    assert all(issue.code == SEMANTIC_WARNING for issue in result.issues)


def test_zero_and_duplicate_labels_are_informational():
    result = validate_semantics(_points([500, 0, 600], ["Januari", "Februari", "januari"]))
    assert result.valid
    assert not result.requires_confirmation
    assert any("has a value of 0" in warning for warning in result.warnings)
    assert any("Duplicate labels" in warning for warning in result.warnings)


@pytest.mark.parametrize(
    "values",
    [
        [500, 600, 750, 900],
        [0, 0, 0],
        [100, 200, 150, 900],
        [5, 5],
    ],
)
def test_clean_datasets_never_require_confirmation(values):
    verdict = ValidationGate().validate(_dataset(values))
    assert not verdict.requires_confirmation
    assert verdict.can_render


def test_schema_failure_short_circuits():
    verdict = ValidationGate().validate({"success": True, "dataPoints": [{"label": "", "value": "abc"}]})
    assert not verdict.schema_valid
    assert verdict.stage is GateStage.SCHEMA
    assert not verdict.can_render
    assert verdict.trend is None
    assert all(error.startswith("Schema error") for error in verdict.errors)
    assert all(issue.code == STRUCTURAL for issue in verdict.issues)
    with pytest.raises(StructuralError):
        verdict.raise_for_status()


def test_boolean_values_are_rejected():
    verdict = ValidationGate().validate({"success": True, "dataPoints": [{"label": "A", "value": True}]})
    assert not verdict.schema_valid


def test_unsuccessful_parser_output_is_blocked():
    verdict = ValidationGate().validate({"success": False, "dataPoints": [], "errors": ["nothing parsed"]})
    assert not verdict.can_render
    assert verdict.errors == ["nothing parsed"]


def test_verdict_to_dict_uses_wire_names():
    payload = ValidationGate().validate(_dataset([500, 600])).to_dict()
    assert payload["canRender"] is True
    assert payload["requiresConfirmation"] is False
    assert payload["stage"] == "passed"


def test_outlier_ratio_follows_config(monkeypatch):
    values = [500, 600, 1500, 700]
    assert not validate_semantics(_points(values)).requires_confirmation
    monkeypatch.setattr(GateConfig, "OUTLIER_RATIO", 2.0)
    result = validate_semantics(_points(values))
    assert result.requires_confirmation
    assert result.warnings[0].startswith("Outlier detected at Maret")


@pytest.mark.parametrize("value", [float("nan"), float("inf"), -float("inf"), 10 ** 400])
def test_non_finite_and_out_of_range_values_fail_schema(value):
    verdict = ValidationGate().validate(
        {"success": True, "dataPoints": [{"label": "Jan", "value": value}, {"label": "Feb", "value": 5}]}
    )
    assert verdict.schema_valid is False
    assert verdict.stage is GateStage.SCHEMA
    assert verdict.can_render is False
    assert verdict.errors[0].startswith("Schema error: dataPoints.0.value")


def test_huge_json_integer_is_a_schema_error():
    candidate = json.loads(
        '{"success": true, "dataPoints": [{"label": "Jan", "value": 1' + "0" * 400 + '}, {"label": "Feb", "value": 5}]}'
    )
    verdict = ValidationGate().validate(candidate)
    assert not verdict.schema_valid
    assert any("out of range" in error for error in verdict.errors)
