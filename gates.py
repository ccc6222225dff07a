"""Production validation gate for model-generated datasets.

Three sequential stages decide whether a candidate dataset may be rendered:

1. schema    structural conformance to Dataset/DataPoint (fatal on failure)
2. semantic  plausibility of the values (fewer than two points is fatal,
             negatives/zeros/outliers/duplicates are warnings)
3. business  agreement between an accompanying narrative and the trend the
             data actually shows (warnings only)

An earlier fatal stage short-circuits the later ones.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from config import GateConfig
from exceptions import (
    BUSINESS_INCONSISTENCY,
    SEMANTIC_ERROR,
    SEMANTIC_WARNING,
    STRUCTURAL,
    GateIssue,
    SemanticError,
    StructuralError,
)
from models import DataPoint, Dataset, Direction, GateStage
from trend_engine import InsightData, TrendAnalysis, analyze

logger = logging.getLogger(__name__)

NO_DATA_ERROR = "No data to validate"
MIN_POINTS_ERROR = "Minimum two points required for visualization"
PARSER_FAILED_ERROR = "Parser failed to extract data"

# Substring matches against lowercased narrative text, Indonesian and English
EXPECTED_KEYWORDS: Dict[Direction, List[str]] = {
    Direction.UP: ["naik", "pertumbuhan", "meningkat", "positif", "growth", "increase", "rising", "rose"],
    Direction.DOWN: ["turun", "penurunan", "menurun", "decline", "decrease", "falling", "fall", "drop"],
    Direction.FLAT: ["stabil", "konsisten", "tetap", "stable", "steady", "flat", "consistent"],
    Direction.VOLATILE: ["fluktuasi", "berubah-ubah", "tidak stabil", "fluctuation", "volatile", "unstable"],
}
FORBIDDEN_KEYWORDS: Dict[Direction, List[str]] = {
    Direction.UP: ["turun", "penurunan", "menurun", "negatif", "decline", "decrease", "falling", "drop"],
    Direction.DOWN: ["naik", "pertumbuhan", "meningkat", "growth", "increase", "rising"],
    Direction.FLAT: [],
    Direction.VOLATILE: [],
}


@dataclass
class SemanticResult:
    valid: bool
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    requires_confirmation: bool = False
    issues: List[GateIssue] = field(default_factory=list)


@dataclass
class BusinessExpectation:
    """What a narrative must and must not say about a series."""

    direction: Direction
    change_pct: float
    expected_keywords: List[str]
    forbidden_keywords: List[str]


@dataclass
class NarrativeCheck:
    valid: bool
    issues: List[str] = field(default_factory=list)


@dataclass
class ValidationVerdict:
    stage: GateStage = GateStage.SCHEMA
    passed: bool = False
    schema_valid: bool = False
    semantic_valid: bool = False
    business_valid: bool = False
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    requires_confirmation: bool = False
    can_render: bool = False
    issues: List[GateIssue] = field(default_factory=list)
    dataset: Optional[Dataset] = None
    trend: Optional[TrendAnalysis] = None

    def confirmed(self) -> "ValidationVerdict":
        """Verdict after the user explicitly acknowledged the flagged values."""
        if not (self.schema_valid and self.semantic_valid):
            return self
        return replace(self, requires_confirmation=False, can_render=True)

    def raise_for_status(self) -> None:
        if not self.schema_valid or (self.stage is GateStage.SCHEMA and self.errors):
            raise StructuralError("; ".join(self.errors) or "Schema validation failed", self.errors)
        if not self.semantic_valid:
            raise SemanticError("; ".join(self.errors) or "Semantic validation failed", self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "passed": self.passed,
            "schemaValid": self.schema_valid,
            "semanticValid": self.semantic_valid,
            "businessValid": self.business_valid,
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "requiresConfirmation": self.requires_confirmation,
            "canRender": self.can_render,
        }


def _format_schema_error(exc: ValidationError) -> List[str]:
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ())) or "dataset"
        messages.append(f"Schema error: {location}: {err.get('msg', 'invalid')}")
    return messages


def validate_schema(candidate: Any) -> tuple[Optional[Dataset], List[str]]:
    if isinstance(candidate, Dataset):
        return candidate, []
    if not isinstance(candidate, dict):
        return None, [f"Schema error: dataset must be an object (got {type(candidate).__name__})"]
    try:
        return Dataset.model_validate(candidate), []
    except ValidationError as exc:
        return None, _format_schema_error(exc)


def _median(values: Sequence[float]) -> float:
    # upper median for even counts
    ordered = sorted(values)
    return ordered[len(ordered) // 2]


def _number(value: float) -> str:
    return f"{value:g}"


def validate_semantics(points: Sequence[DataPoint]) -> SemanticResult:
    if not points:
        return SemanticResult(valid=False, errors=[NO_DATA_ERROR], issues=[GateIssue(SEMANTIC_ERROR, NO_DATA_ERROR)])
    if len(points) == 1:
        return SemanticResult(
            valid=False, errors=[MIN_POINTS_ERROR], issues=[GateIssue(SEMANTIC_ERROR, MIN_POINTS_ERROR)]
        )

    result = SemanticResult(valid=True)

    def warn(message: str) -> None:
        result.warnings.append(message)
        result.issues.append(GateIssue(SEMANTIC_WARNING, message))

    negatives = [point for point in points if point.value < 0]
    if negatives:
        listed = ", ".join(f"{point.label} ({_number(point.value)})" for point in negatives)
        warn(f"Negative values detected at: {listed}")
        result.requires_confirmation = True

    for point in points:
        if point.value == 0:
            warn(f"{point.label} has a value of 0, make sure this is correct")

    positives = [point.value for point in points if point.value > 0]
    if len(positives) >= GateConfig.MIN_OUTLIER_SAMPLE:
        median = _median(positives)
        mean = sum(positives) / len(positives)
        ratio = GateConfig.OUTLIER_RATIO
        outliers = [
            point for point in points
            if point.value > 0 and (point.value > median * ratio or point.value < median / ratio)
        ]
        for point in outliers:
            from_mean = (point.value - mean) / mean * 100
            warn(f"Outlier detected at {point.label} ({from_mean:+.0f}% from the mean)")
        if outliers:
            result.requires_confirmation = True

    seen = set()
    duplicates: List[str] = []
    for point in points:
        key = point.label.lower()
        if key in seen and key not in duplicates:
            duplicates.append(key)
        seen.add(key)
    if duplicates:
        warn(f"Duplicate labels detected: {', '.join(duplicates)}")

    return result


def business_expectation(trend: TrendAnalysis) -> BusinessExpectation:
    return BusinessExpectation(
        direction=trend.direction,
        change_pct=trend.overall_change_pct,
        expected_keywords=list(EXPECTED_KEYWORDS[trend.direction]),
        forbidden_keywords=list(FORBIDDEN_KEYWORDS[trend.direction]),
    )


def check_narrative(narrative: str, expectation: BusinessExpectation) -> NarrativeCheck:
    text = narrative.lower()
    issues: List[str] = []
    for keyword in expectation.forbidden_keywords:
        if keyword in text:
            issues.append(
                f'Narrative mentions "{keyword}" but the data shows a {expectation.direction.value} trend '
                f"({expectation.change_pct:.1f}%)"
            )
    expected = expectation.expected_keywords
    if expected and not any(keyword in text for keyword in expected):
        issues.append(f"Narrative does not mention the trend. Suggested keywords: {', '.join(expected)}")
    return NarrativeCheck(valid=not issues, issues=issues)


class ValidationGate:
    """Single choke point deciding whether a candidate dataset may be rendered."""

    def validate(
        self,
        candidate: Any,
        narrative: Optional[str] = None,
        trend: Optional[TrendAnalysis] = None,
    ) -> ValidationVerdict:
        verdict = ValidationVerdict()

        dataset, schema_errors = validate_schema(candidate)
        if dataset is None:
            verdict.errors.extend(schema_errors)
            verdict.issues.extend(GateIssue(STRUCTURAL, message) for message in schema_errors)
            logger.info("Gate rejected candidate at schema stage: %s", schema_errors)
            return verdict
        verdict.schema_valid = True
        verdict.dataset = dataset

        if not dataset.success:
            errors = dataset.errors or [PARSER_FAILED_ERROR]
            verdict.errors.extend(errors)
            verdict.issues.extend(GateIssue(STRUCTURAL, message) for message in errors)
            logger.info("Gate rejected unsuccessful dataset: %s", errors)
            return verdict

        verdict.stage = GateStage.SEMANTIC
        semantic = validate_semantics(dataset.data_points)
        verdict.semantic_valid = semantic.valid
        verdict.warnings.extend(semantic.warnings)
        verdict.errors.extend(semantic.errors)
        verdict.issues.extend(semantic.issues)
        verdict.requires_confirmation = semantic.requires_confirmation
        if not semantic.valid:
            logger.info("Gate rejected dataset at semantic stage: %s", semantic.errors)
            return verdict

        verdict.stage = GateStage.BUSINESS
        verdict.trend = trend or analyze(InsightData(values=dataset.values, labels=dataset.labels))
        if narrative:
            check = check_narrative(narrative, business_expectation(verdict.trend))
            verdict.business_valid = check.valid
            verdict.warnings.extend(check.issues)
            verdict.issues.extend(GateIssue(BUSINESS_INCONSISTENCY, issue) for issue in check.issues)
        else:
            verdict.business_valid = True

        verdict.stage = GateStage.PASSED
        verdict.passed = verdict.schema_valid and verdict.semantic_valid and verdict.business_valid
        # a narrative mismatch never blocks rendering, pending confirmation always does
        verdict.can_render = verdict.schema_valid and verdict.semantic_valid and not verdict.requires_confirmation
        logger.debug(
            "Gate verdict: passed=%s can_render=%s confirmation=%s warnings=%d",
            verdict.passed,
            verdict.can_render,
            verdict.requires_confirmation,
            len(verdict.warnings),
        )
        return verdict


def validate_for_production(candidate: Any, narrative: Optional[str] = None) -> ValidationVerdict:
    return ValidationGate().validate(candidate, narrative)


__all__ = [
    "ValidationGate",
    "ValidationVerdict",
    "SemanticResult",
    "BusinessExpectation",
    "NarrativeCheck",
    "validate_schema",
    "validate_semantics",
    "business_expectation",
    "check_narrative",
    "validate_for_production",
    "EXPECTED_KEYWORDS",
    "FORBIDDEN_KEYWORDS",
    "NO_DATA_ERROR",
    "MIN_POINTS_ERROR",
]
