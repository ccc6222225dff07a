"""Deterministic trend analysis and insight generation.

The same TrendAnalysis facts drive the human-readable insight and the
business-consistency stage of the validation gate, so the narrative we
generate can never contradict the numbers it describes. Everything here is a
pure function of its inputs.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from confidence import ConfidenceInputs, allows_prediction, headline
from config import GateConfig
from models import ConfidenceLevel, Dataset, Direction, InsightContext, Unit


@dataclass(frozen=True)
class TrendPoint:
    label: str
    value: float
    index: int


@dataclass(frozen=True)
class TrendAnalysis:
    direction: Direction
    overall_change_pct: float
    avg_period_growth_pct: float
    consistency: float
    high_point: TrendPoint
    low_point: TrendPoint
    last_period_change_pct: float

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["direction"] = self.direction.value
        return payload


@dataclass
class InsightData:
    values: List[float]
    labels: List[str]
    unit: Optional[Unit] = None
    context: InsightContext = InsightContext.GENERAL
    currency: str = "IDR"

    def __post_init__(self) -> None:
        if not self.values:
            raise ValueError("series must contain at least one value")
        if len(self.values) != len(self.labels):
            raise ValueError(f"values ({len(self.values)}) and labels ({len(self.labels)}) differ in length")


@dataclass
class GeneratedInsight:
    summary: str
    recommendation: str
    confidence: ConfidenceLevel
    prediction: Optional[str] = None
    alerts: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "summary": self.summary,
            "recommendation": self.recommendation,
            "confidence": self.confidence.value,
        }
        if self.prediction is not None:
            payload["prediction"] = self.prediction
        if self.alerts:
            payload["alerts"] = list(self.alerts)
        return payload


def safe_percentage_change(current: float, previous: float) -> float:
    """Percent change that never divides by zero or flips sign across zero."""
    if previous == 0:
        if current > 0:
            return 100.0
        if current < 0:
            return -100.0
        return 0.0
    if previous < 0 <= current:
        # loss to profit is an improvement
        return abs(current - previous) / abs(previous) * 100
    if previous > 0 > current:
        return -abs(current - previous) / abs(previous) * 100
    return (current - previous) / abs(previous) * 100


def period_changes(values: Sequence[float]) -> List[float]:
    return [safe_percentage_change(values[i], values[i - 1]) for i in range(1, len(values))]


def classify_direction(changes: Sequence[float], overall_change_pct: float) -> Direction:
    threshold = GateConfig.DIRECTION_CHANGE_PCT
    up_steps = sum(1 for change in changes if change > threshold)
    down_steps = sum(1 for change in changes if change < -threshold)
    if up_steps > down_steps * 2:
        return Direction.UP
    if down_steps > up_steps * 2:
        return Direction.DOWN
    if abs(overall_change_pct) < GateConfig.FLAT_RANGE_PCT:
        return Direction.FLAT
    return Direction.VOLATILE


def _consistency(changes: Sequence[float]) -> float:
    if not changes:
        return 1.0
    mean = sum(changes) / len(changes)
    variance = sum((change - mean) ** 2 for change in changes) / len(changes)
    return max(0.0, 1 - math.sqrt(variance) / 100)


def _extrema(values: Sequence[float], labels: Sequence[str]) -> tuple[TrendPoint, TrendPoint]:
    high = low = 0
    for idx in range(1, len(values)):
        # strict comparisons keep the earliest index on ties
        if values[idx] > values[high]:
            high = idx
        if values[idx] < values[low]:
            low = idx
    return (
        TrendPoint(label=labels[high], value=values[high], index=high),
        TrendPoint(label=labels[low], value=values[low], index=low),
    )


def analyze(data: InsightData) -> TrendAnalysis:
    values, labels = data.values, data.labels
    high_point, low_point = _extrema(values, labels)
    if len(values) < 2:
        return TrendAnalysis(
            direction=Direction.FLAT,
            overall_change_pct=0.0,
            avg_period_growth_pct=0.0,
            consistency=1.0,
            high_point=high_point,
            low_point=low_point,
            last_period_change_pct=0.0,
        )

    overall = safe_percentage_change(values[-1], values[0])
    changes = period_changes(values)
    return TrendAnalysis(
        direction=classify_direction(changes, overall),
        overall_change_pct=overall,
        avg_period_growth_pct=sum(changes) / len(changes),
        consistency=_consistency(changes),
        high_point=high_point,
        low_point=low_point,
        last_period_change_pct=changes[-1],
    )


def series_from_dataset(
    dataset: Dataset,
    context: InsightContext = InsightContext.GENERAL,
    currency: str = "IDR",
) -> InsightData:
    return InsightData(
        values=dataset.values,
        labels=dataset.labels,
        unit=dataset.detected_unit,
        context=context,
        currency=currency,
    )


_COMPACT_STEPS = ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K"))


def format_value(value: float, currency: str = "IDR") -> str:
    """Compact currency text, e.g. Rp1.2B or $350K."""
    symbol = "Rp" if currency == "IDR" else "$"
    sign = "-" if value < 0 else ""
    magnitude = abs(value)
    for threshold, suffix in _COMPACT_STEPS:
        if magnitude >= threshold:
            scaled = f"{magnitude / threshold:.1f}".rstrip("0").rstrip(".")
            return f"{sign}{symbol}{scaled}{suffix}"
    return f"{sign}{symbol}{magnitude:,.0f}"


def _change_text(pct: float) -> str:
    return f"+{pct:.1f}%" if pct >= 0 else f"{pct:.1f}%"


def _summary(data: InsightData, trend: TrendAnalysis, alerts: List[str]) -> str:
    is_expense = data.context is InsightContext.EXPENSE
    change = _change_text(trend.overall_change_pct)
    span = f"from {data.labels[0]} to {data.labels[-1]}"

    if trend.direction is Direction.UP:
        kind = "Rising cost" if is_expense else "Positive growth"
        summary = f"{kind} trend ({change}) {span}."
        if trend.consistency > GateConfig.HIGH_CONSISTENCY:
            summary += " The increase has been steady and consistent."
        return summary
    if trend.direction is Direction.DOWN:
        kind = "Falling cost" if is_expense else "Decline"
        if not is_expense:
            alerts.append("Decline needs investigation")
        return f"{kind} trend ({change}) {span}."
    if trend.direction is Direction.VOLATILE:
        alerts.append("Inconsistent pattern, deeper analysis needed")
        return (
            f"The data shows fluctuation with an overall change of {change}. "
            f"Highest at {trend.high_point.label} ({format_value(trend.high_point.value, data.currency)}), "
            f"lowest at {trend.low_point.label}."
        )
    return f"The data is relatively stable ({change}) {span}."


def _recommendation(data: InsightData, trend: TrendAnalysis, alerts: List[str]) -> str:
    is_expense = data.context is InsightContext.EXPENSE

    if trend.direction is Direction.UP and not is_expense:
        if trend.avg_period_growth_pct > GateConfig.HIGH_GROWTH_PCT:
            return (
                "Aggressive growth. Recommendation: (1) expand production or stock capacity, "
                "(2) allocate marketing budget to sustain momentum, (3) prepare hiring if needed."
            )
        if trend.avg_period_growth_pct > GateConfig.MODERATE_GROWTH_PCT:
            return (
                "Healthy growth. Recommendation: keep the current strategy and improve "
                "operational efficiency for better margins."
            )
        return "Moderate growth. Recommendation: review new customer acquisition to accelerate."
    if trend.direction is Direction.DOWN and not is_expense:
        if trend.overall_change_pct < GateConfig.SIGNIFICANT_DECLINE_PCT:
            return (
                "Significant decline needs immediate action: (1) review pricing, (2) analyze competitors, "
                "(3) survey customer satisfaction, (4) find underperforming channels."
            )
        return "The decline needs attention. Recommendation: focus on retaining existing customers and re-check product-market fit."
    if trend.direction is Direction.UP and is_expense:
        alerts.append("Margins may come under pressure")
        return (
            f"Costs rose {_change_text(trend.overall_change_pct)}. Recommendation: audit expense categories, "
            "renegotiate vendor contracts, identify operational waste."
        )
    if trend.direction is Direction.DOWN and is_expense:
        return "Cost efficiency is working. Make sure service quality is not affected and monitor customer satisfaction."
    if trend.direction is Direction.VOLATILE:
        return (
            "The fluctuating pattern points to seasonality or external factors. Recommendation: "
            "(1) identify the causes, (2) keep an inventory or cash buffer for weak periods, "
            "(3) make the most of peak periods."
        )
    return "Conditions are stable. A good moment to test new strategies without major risk."


def _prediction(data: InsightData, trend: TrendAnalysis) -> Optional[str]:
    if not allows_prediction(ConfidenceInputs(len(data.values), trend.consistency)):
        return None
    projected = data.values[-1] * (1 + trend.avg_period_growth_pct / 100)
    if trend.direction is Direction.UP:
        return f"Projection: if the pattern continues, the next period could reach {format_value(projected, data.currency)}."
    if trend.direction is Direction.DOWN:
        return f"Projection: without intervention, the next period may fall to {format_value(projected, data.currency)}."
    return None


def generate_insight(data: InsightData, trend: Optional[TrendAnalysis] = None) -> GeneratedInsight:
    trend = trend or analyze(data)
    alerts: List[str] = []
    summary = _summary(data, trend, alerts)
    recommendation = _recommendation(data, trend, alerts)
    return GeneratedInsight(
        summary=summary,
        recommendation=recommendation,
        prediction=_prediction(data, trend),
        alerts=alerts or None,
        confidence=headline(ConfidenceInputs(len(data.values), trend.consistency)),
    )


def insight_message(insight: GeneratedInsight) -> str:
    """Full chart caption: summary, alerts, recommendation, projection."""
    parts = [insight.summary]
    if insight.alerts:
        parts.append("\n".join(insight.alerts))
    parts.append(insight.recommendation)
    if insight.prediction:
        parts.append(insight.prediction)
    return "\n\n".join(parts)


__all__ = [
    "TrendPoint",
    "TrendAnalysis",
    "InsightData",
    "GeneratedInsight",
    "safe_percentage_change",
    "period_changes",
    "classify_direction",
    "analyze",
    "series_from_dataset",
    "format_value",
    "generate_insight",
    "insight_message",
]
