from confidence import ConfidenceInputs, allows_prediction, headline
from models import ConfidenceLevel


def test_headline_tiers():
    assert headline(ConfidenceInputs(point_count=6, consistency=0.9)) == ConfidenceLevel.HIGH
    assert headline(ConfidenceInputs(point_count=5, consistency=0.9)) == ConfidenceLevel.MEDIUM
    assert headline(ConfidenceInputs(point_count=3, consistency=0.5)) == ConfidenceLevel.MEDIUM
    assert headline(ConfidenceInputs(point_count=3, consistency=0.4)) == ConfidenceLevel.LOW
    assert headline(ConfidenceInputs(point_count=2, consistency=1.0)) == ConfidenceLevel.LOW


def test_thresholds_are_strict():
    assert headline(ConfidenceInputs(point_count=6, consistency=0.7)) == ConfidenceLevel.MEDIUM
    assert not allows_prediction(ConfidenceInputs(point_count=3, consistency=0.5))
    assert allows_prediction(ConfidenceInputs(point_count=3, consistency=0.51))
    assert not allows_prediction(ConfidenceInputs(point_count=2, consistency=1.0))


def test_clamps_values():
    clamped = ConfidenceInputs(point_count=-4, consistency=1.7).clamp()
    assert clamped.point_count == 0
    assert clamped.consistency == 1.0
    assert headline(ConfidenceInputs(point_count=10, consistency=-3)) == ConfidenceLevel.LOW
