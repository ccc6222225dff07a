from __future__ import annotations

import math
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Direction(str, Enum):
    """Trend classification shared by the insight text and the consistency check."""
    UP = "up"
    DOWN = "down"
    FLAT = "flat"
    VOLATILE = "volatile"


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Unit(str, Enum):
    THOUSAND = "thousand"
    MILLION = "million"
    BILLION = "billion"
    UNIT = "unit"


class InsightContext(str, Enum):
    """Business domain of a series. Only EXPENSE inverts good and bad news."""
    SALES = "sales"
    REVENUE = "revenue"
    EXPENSE = "expense"
    PROFIT = "profit"
    GROWTH = "growth"
    GENERAL = "general"


class GateStage(str, Enum):
    SCHEMA = "schema"
    SEMANTIC = "semantic"
    BUSINESS = "business"
    PASSED = "passed"


# Parser output and older payloads use Indonesian unit names
UNIT_ALIASES: Dict[str, Unit] = {
    "ribu": Unit.THOUSAND,
    "rb": Unit.THOUSAND,
    "k": Unit.THOUSAND,
    "juta": Unit.MILLION,
    "jt": Unit.MILLION,
    "miliar": Unit.BILLION,
    "milyar": Unit.BILLION,
}

UNIT_MULTIPLIERS: Dict[Unit, int] = {
    Unit.THOUSAND: 1_000,
    Unit.MILLION: 1_000_000,
    Unit.BILLION: 1_000_000_000,
    Unit.UNIT: 1,
}


def _require_number(value: Any, field_name: str) -> float:
    # bool is an int subclass; never let True/False pass as a value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be a number (got {type(value).__name__})")
    try:
        number = float(value)
    except OverflowError:
        # JSON integers are unbounded
        raise ValueError(f"{field_name} is out of range") from None
    if not math.isfinite(number):
        raise ValueError(f"{field_name} must be finite (got {number})")
    return number


class DataPoint(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    label: str
    value: float
    raw_value: Optional[str] = Field(default=None, alias="rawValue")

    @field_validator("label", mode="before")
    def validate_label(cls, v: Any) -> str:
        if not isinstance(v, str):
            raise ValueError("label must be a string")
        if not v.strip():
            raise ValueError("label must not be empty")
        return v

    @field_validator("value", mode="before")
    def validate_value(cls, v: Any) -> float:
        return _require_number(v, "value")


class Dataset(BaseModel):
    """Candidate dataset produced by a parser or a model."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    data_points: List[DataPoint] = Field(default_factory=list, alias="dataPoints")
    detected_unit: Optional[Unit] = Field(default=None, alias="detectedUnit")
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    requires_confirmation: bool = Field(default=False, alias="requiresConfirmation")

    @field_validator("success", "requires_confirmation", mode="before")
    def validate_flags(cls, v: Any) -> bool:
        if not isinstance(v, bool):
            raise ValueError("must be a boolean")
        return v

    @field_validator("detected_unit", mode="before")
    def normalize_unit(cls, v: Any) -> Any:
        if isinstance(v, str):
            return UNIT_ALIASES.get(v.strip().lower(), v)
        return v

    @field_validator("warnings", "errors", mode="before")
    def default_messages(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def values(self) -> List[float]:
        return [point.value for point in self.data_points]

    @property
    def labels(self) -> List[str]:
        return [point.label for point in self.data_points]


class ChartPayload(BaseModel):
    """Render-ready chart block handed to the UI."""

    model_config = ConfigDict(populate_by_name=True)

    action: str = "show_chart"
    chart_type: str
    title: str
    message: str = ""
    data: List[Dict[str, Union[str, float]]]
    x_key: str = Field(alias="xKey")
    y_key: str = Field(default="value", alias="yKey")
    source: str = "internal"
    unit: Optional[str] = None


class ModelResponse(BaseModel):
    """Loose envelope of a structured model reply. Unknown keys are kept."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    action: str
    message: Optional[str] = None
    chart_type: Optional[str] = None
    data: Optional[List[Any]] = None
    x_key: Optional[str] = Field(default=None, alias="xKey")
    y_key: Optional[Union[str, List[str]]] = Field(default=None, alias="yKey")
    title: Optional[str] = None
    source: Optional[str] = None
    symbol: Optional[str] = None
    module: Optional[str] = None

    @model_validator(mode="after")
    def check_action(self) -> "ModelResponse":
        if self.action not in {"show_chart", "text_only", "show_table"}:
            raise ValueError(f"action must be show_chart, text_only or show_table (got {self.action!r})")
        return self

    @property
    def y_keys(self) -> List[str]:
        if self.y_key is None:
            return []
        return list(self.y_key) if isinstance(self.y_key, list) else [self.y_key]
