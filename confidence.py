"""Deterministic confidence tiering for generated insights."""

from __future__ import annotations

from dataclasses import dataclass

from config import GateConfig
from models import ConfidenceLevel


@dataclass
class ConfidenceInputs:
    """What an insight's confidence is allowed to depend on."""

    point_count: int
    consistency: float

    def clamp(self) -> "ConfidenceInputs":
        return ConfidenceInputs(
            point_count=max(0, int(self.point_count)),
            consistency=max(0.0, min(1.0, float(self.consistency))),
        )


def headline(inputs: ConfidenceInputs) -> ConfidenceLevel:
    c = inputs.clamp()
    if c.point_count >= GateConfig.MIN_POINTS_HIGH_CONFIDENCE and c.consistency > GateConfig.HIGH_CONSISTENCY:
        return ConfidenceLevel.HIGH
    if c.point_count >= GateConfig.MIN_POINTS_MEDIUM_CONFIDENCE and c.consistency > GateConfig.MEDIUM_CONSISTENCY:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def allows_prediction(inputs: ConfidenceInputs) -> bool:
    c = inputs.clamp()
    return c.point_count >= GateConfig.MIN_POINTS_PREDICTION and c.consistency > GateConfig.PREDICTION_CONSISTENCY
