"""Log entries and aggregate metrics for the production monitor."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from config import GateConfig

_QUOTED = re.compile(r'"[^"]+"')


@dataclass
class LogEntry:
    timestamp: str
    module: str
    user_input: str
    output_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    response_time_ms: float = 0.0
    confidence: Optional[str] = None
    chart_type: Optional[str] = None
    data_point_count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MonitorMetrics:
    total_requests: int
    success_rate: float
    avg_response_time_ms: float
    errors_by_module: Dict[str, int]
    common_errors: List[Dict[str, Any]]
    recent_logs: List[LogEntry]

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["recent_logs"] = [entry.to_dict() for entry in self.recent_logs]
        return payload


def create_log_entry(
    module: str,
    user_input: str,
    valid: bool,
    errors: Optional[List[str]] = None,
    warnings: Optional[List[str]] = None,
    **extras: Any,
) -> LogEntry:
    """Timestamped entry with the user input truncated for storage."""
    return LogEntry(
        timestamp=datetime.now(timezone.utc).isoformat(),
        module=module,
        user_input=(user_input or "")[: GateConfig.USER_INPUT_MAX_CHARS],
        output_valid=valid,
        errors=list(errors or []),
        warnings=list(warnings or []),
        response_time_ms=float(extras.get("response_time_ms") or 0.0),
        confidence=extras.get("confidence"),
        chart_type=extras.get("chart_type"),
        data_point_count=extras.get("data_point_count"),
    )


def normalize_error(error: str) -> str:
    # quoted labels and values vary per request
    return _QUOTED.sub('"..."', error)[:100]


def summarize(entries: Iterable[LogEntry]) -> MonitorMetrics:
    """Aggregate newest-first entries into totals, rates and the most common errors."""
    logs = list(entries)
    total = len(logs)
    valid_count = sum(1 for entry in logs if entry.output_valid)

    errors_by_module: Dict[str, int] = {}
    error_counts: Dict[str, int] = {}
    for entry in logs:
        if not entry.output_valid:
            errors_by_module[entry.module] = errors_by_module.get(entry.module, 0) + 1
        for error in entry.errors:
            key = normalize_error(error)
            error_counts[key] = error_counts.get(key, 0) + 1

    # sorted is stable, so equal counts keep first-seen order
    common = sorted(error_counts.items(), key=lambda item: item[1], reverse=True)
    return MonitorMetrics(
        total_requests=total,
        success_rate=(valid_count / total) * 100 if total else 100.0,
        avg_response_time_ms=sum(entry.response_time_ms for entry in logs) / total if total else 0.0,
        errors_by_module=errors_by_module,
        common_errors=[
            {"error": error, "count": count} for error, count in common[: GateConfig.COMMON_ERROR_LIMIT]
        ],
        recent_logs=logs[: GateConfig.RECENT_LOG_LIMIT],
    )


__all__ = ["LogEntry", "MonitorMetrics", "create_log_entry", "normalize_error", "summarize"]
