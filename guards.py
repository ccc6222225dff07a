"""
Per-module response guards.

Every structured model reply passes through ``run_guards`` before anything is
rendered. Guards check that the reply belongs to the active module, uses an
allowed data source and chart type, matches the response schema, and carries
exactly the data the user typed.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from analysis_contracts import lint_chart_payload
from config import GateConfig
from models import Dataset, ModelResponse

logger = logging.getLogger(__name__)

GuardOutcome = Tuple[bool, Optional[str]]


@dataclass
class GuardResult:
    valid: bool
    payload: Optional[Dict[str, Any]] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    fallback_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "payload": self.payload,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "fallbackMessage": self.fallback_message,
        }


def charts_allowed(module: str) -> bool:
    return bool(GateConfig.ALLOWED_CHART_TYPES.get(module))


def _market_symbol_pattern() -> re.Pattern:
    symbols = "|".join(re.escape(symbol) for symbol in GateConfig.MARKET_SYMBOLS)
    return re.compile(rf"\b(?:{symbols})\b")


def module_guard(module: str, response: Dict[str, Any]) -> GuardOutcome:
    declared = response.get("module")
    if declared and declared != module:
        return False, f'Module mismatch: expected "{module}", got "{declared}"'
    if module == "data-visualization" and response.get("action") == "show_chart" and GateConfig.MARKET_SYMBOLS:
        dumped = json.dumps(response, default=str).upper()
        if _market_symbol_pattern().search(dumped):
            return False, "Market symbols detected in Data Visualization module"
    return True, None


def source_guard(module: str, response: Dict[str, Any]) -> GuardOutcome:
    allowed = GateConfig.ALLOWED_SOURCES.get(module, [])
    if not allowed:
        return True, None
    chart = response.get("chart") if isinstance(response.get("chart"), dict) else {}
    source = response.get("source") or chart.get("source")
    if source and source not in allowed:
        return False, f'Invalid source "{source}" for module "{module}". Allowed: {", ".join(allowed)}'
    if not source and response.get("action") == "show_chart":
        looks_like_market = (
            response.get("chart_type") == "candlestick" or response.get("symbol") or response.get("asset_type")
        )
        if looks_like_market and "market" not in allowed:
            return False, "Market data chart not allowed in this module"
    return True, None


def chart_type_guard(module: str, response: Dict[str, Any]) -> GuardOutcome:
    allowed = GateConfig.ALLOWED_CHART_TYPES.get(module, [])
    if not allowed:
        if response.get("action") == "show_chart":
            return False, f'Charts not allowed in "{module}" module'
        return True, None
    chart = response.get("chart") if isinstance(response.get("chart"), dict) else {}
    chart_type = response.get("chart_type") or chart.get("type")
    if chart_type and chart_type not in allowed:
        return False, f'Chart type "{chart_type}" not allowed in "{module}". Allowed: {", ".join(allowed)}'
    return True, None


def schema_guard(response: Dict[str, Any]) -> GuardOutcome:
    try:
        ModelResponse.model_validate(response)
    except ValidationError as exc:
        details = ", ".join(err.get("msg", "invalid") for err in exc.errors())
        return False, f"Schema validation failed: {details}"
    data = response.get("data")
    if response.get("action") == "show_chart" and data is not None and (not isinstance(data, list) or not data):
        return False, "Chart data must be a non-empty array"
    return True, None


def _is_comparison_request(user_input: str, extracted: Optional[Dataset]) -> bool:
    if getattr(extracted, "is_comparison", False):
        return True
    lowered = f" {user_input.lower()} "
    return " vs " in lowered or "banding" in lowered or "kategori" in lowered


def consistency_guard(
    user_input: str,
    response: Dict[str, Any],
    extracted: Optional[Dataset],
) -> GuardOutcome:
    if extracted is None or not extracted.data_points:
        return True, None
    data = response.get("data")
    if response.get("action") != "show_chart" or not isinstance(data, list) or not data:
        return True, None

    if len(data) != len(extracted.data_points):
        return False, (
            f"Data count mismatch: user provided {len(extracted.data_points)} points, model returned {len(data)}"
        )

    first_row = data[0] if isinstance(data[0], dict) else {}
    x_key = response.get("xKey") or response.get("x_key") or next(iter(first_row), None)
    model_labels = [str(row.get(x_key, "")).lower() for row in data if isinstance(row, dict)]
    for label in extracted.labels:
        wanted = label.lower()
        if not any(wanted in model_label or (model_label and model_label in wanted) for model_label in model_labels):
            return False, f'User label "{label}" not found in model output'

    y_key = response.get("yKey") or response.get("y_key")
    y_keys = y_key if isinstance(y_key, list) else ([y_key] if y_key else [])
    if len(y_keys) > 1 and not _is_comparison_request(user_input, extracted):
        return False, f"Model invented {len(y_keys)} categories but user only provided single values"
    return True, None


def fallback_for_errors(module: str, errors: List[str]) -> str:
    name = GateConfig.MODULE_DISPLAY_NAMES.get(module, module)
    if any("market" in error.lower() for error in errors):
        return (
            f"Market data cannot be shown in {name}. "
            "Please use Market Trends for crypto and stock analysis."
        )
    if any("mismatch" in error or "invented" in error for error in errors):
        return (
            "The data does not match your input, so the visualization cannot be shown. "
            "Please try again with a clearer format."
        )
    if any("Schema" in error for error in errors):
        return "The response format is invalid. Please repeat your request more specifically."
    return "The visualization cannot be shown right now. Please try again or contact support if the problem persists."


def run_guards(
    module: str,
    user_input: str,
    response: Optional[Dict[str, Any]],
    extracted: Optional[Dataset] = None,
) -> GuardResult:
    """Run every guard against a structured model reply. Text-only replies always pass."""
    if module not in GateConfig.MODULES:
        raise ValueError(f"Unknown module {module!r}; expected one of {GateConfig.MODULES}")
    if not response or response.get("action") == "text_only":
        return GuardResult(valid=True, payload=response)

    guards: List[Tuple[str, Callable[[], GuardOutcome]]] = [
        ("Module Guard", lambda: module_guard(module, response)),
        ("Source Guard", lambda: source_guard(module, response)),
        ("Chart Type Guard", lambda: chart_type_guard(module, response)),
        ("Schema Guard", lambda: schema_guard(response)),
        ("Consistency Guard", lambda: consistency_guard(user_input, response, extracted)),
    ]
    errors: List[str] = []
    for name, guard in guards:
        passed, error = guard()
        if not passed:
            logger.warning("%s failed for module %s: %s", name, module, error)
            errors.append(f"[{name}] {error}")

    warnings = [f"Chart contract: {issue}" for issue in lint_chart_payload(response)] if not errors else []

    if errors:
        return GuardResult(
            valid=False,
            payload=None,
            errors=errors,
            warnings=warnings,
            fallback_message=fallback_for_errors(module, errors),
        )
    return GuardResult(valid=True, payload=response, warnings=warnings)


__all__ = [
    "GuardResult",
    "run_guards",
    "charts_allowed",
    "module_guard",
    "source_guard",
    "chart_type_guard",
    "schema_guard",
    "consistency_guard",
    "fallback_for_errors",
]
