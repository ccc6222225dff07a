"""
End-to-end gatekeeper pipeline.

Wires the parser, the validation gate, the trend engine, the request cache and
the production monitor into the calls a request handler makes. Each request is
validated and recorded even while the kill switch is active, so the monitor
keeps sampling and can clear the switch on its own; the caller only ever sees
the fallback message in that state.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Union

from config import GateConfig
from data_parser import dataset_to_chart, extract_dataset
from gates import ValidationGate, ValidationVerdict
from guards import GuardResult, charts_allowed, run_guards
from metrics import create_log_entry
from models import ChartPayload, Dataset, InsightContext, ModelResponse
from monitor import ProductionMonitor
from request_cache import FetchResult, Producer, RateLimitClassifier, RequestCache
from trend_engine import GeneratedInsight, generate_insight, insight_message, series_from_dataset

logger = logging.getLogger(__name__)


@dataclass
class GateDecision:
    module: str
    verdict: Optional[ValidationVerdict] = None
    dataset: Optional[Dataset] = None
    insight: Optional[GeneratedInsight] = None
    message: str = ""
    fallback_message: Optional[str] = None
    killed: bool = False
    chart: Optional[ChartPayload] = None
    guard: Optional[GuardResult] = None

    @property
    def can_render(self) -> bool:
        if self.killed:
            return False
        if self.guard is not None:
            return self.guard.valid
        return bool(self.verdict and self.verdict.can_render)

    @property
    def requires_confirmation(self) -> bool:
        return bool(self.verdict and self.verdict.requires_confirmation)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module": self.module,
            "canRender": self.can_render,
            "requiresConfirmation": self.requires_confirmation,
            "killed": self.killed,
            "message": self.message,
            "fallbackMessage": self.fallback_message,
            "verdict": self.verdict.to_dict() if self.verdict else None,
            "insight": self.insight.to_dict() if self.insight else None,
            "chart": self.chart.model_dump(by_alias=True) if self.chart else None,
            "guard": self.guard.to_dict() if self.guard else None,
        }


class Gatekeeper:
    """Single entry point between model output and anything the UI renders."""

    def __init__(
        self,
        cache: Optional[RequestCache] = None,
        gate: Optional[ValidationGate] = None,
        monitor: Optional[ProductionMonitor] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.cache = cache or RequestCache()
        self.gate = gate or ValidationGate()
        self.monitor = monitor or ProductionMonitor()
        self._clock = clock

    def process_text(
        self,
        module: str,
        user_input: str,
        text: Optional[str] = None,
        narrative: Optional[str] = None,
        context: InsightContext = InsightContext.GENERAL,
        currency: str = "IDR",
    ) -> GateDecision:
        """Parse free text into a dataset, then validate it like any other candidate."""
        started = self._clock()
        parsed = extract_dataset(text if text is not None else user_input)
        return self._decide(module, user_input, parsed, narrative, context, currency, started)

    def process_dataset(
        self,
        module: str,
        user_input: str,
        candidate: Any,
        narrative: Optional[str] = None,
        context: InsightContext = InsightContext.GENERAL,
        currency: str = "IDR",
    ) -> GateDecision:
        started = self._clock()
        return self._decide(module, user_input, candidate, narrative, context, currency, started)

    def _decide(
        self,
        module: str,
        user_input: str,
        candidate: Any,
        narrative: Optional[str],
        context: InsightContext,
        currency: str,
        started: float,
    ) -> GateDecision:
        killed = self.monitor.is_active()
        verdict = self.gate.validate(candidate, narrative)
        decision = GateDecision(module=module, verdict=verdict, dataset=verdict.dataset)

        if verdict.schema_valid and verdict.semantic_valid and verdict.dataset is not None:
            dataset = verdict.dataset
            decision.insight = generate_insight(series_from_dataset(dataset, context, currency), verdict.trend)
            decision.message = narrative or insight_message(decision.insight)
            if charts_allowed(module):
                decision.chart = dataset_to_chart(dataset, message=decision.message)
        else:
            decision.message = "; ".join(verdict.errors)
            decision.fallback_message = self.monitor.fallback_message(module)

        self.monitor.record(
            create_log_entry(
                module,
                user_input,
                verdict.passed,
                verdict.errors,
                verdict.warnings,
                response_time_ms=(self._clock() - started) * 1000,
                confidence=decision.insight.confidence.value if decision.insight else None,
                chart_type=decision.chart.chart_type if decision.chart else None,
                data_point_count=len(verdict.dataset.data_points) if verdict.dataset else 0,
            )
        )

        if killed:
            return self._killed(decision)
        if not verdict.can_render:
            logger.info(
                "Render blocked for %s (stage=%s, confirmation=%s)",
                module,
                verdict.stage.value,
                verdict.requires_confirmation,
            )
        return decision

    def process_model_response(
        self,
        module: str,
        user_input: str,
        response: Union[ModelResponse, Mapping[str, Any], None],
        extracted: Optional[Dataset] = None,
    ) -> GateDecision:
        """Run the module guards over a structured model reply."""
        started = self._clock()
        killed = self.monitor.is_active()
        if isinstance(response, ModelResponse):
            payload: Optional[Dict[str, Any]] = response.model_dump(by_alias=True, exclude_none=True)
        else:
            payload = dict(response) if response else None
        if extracted is None and module == "data-visualization" and user_input:
            parsed = extract_dataset(user_input)
            extracted = parsed if parsed.success else None

        guard = run_guards(module, user_input, payload, extracted)
        self.monitor.record(
            create_log_entry(
                module,
                user_input,
                guard.valid,
                guard.errors,
                guard.warnings,
                response_time_ms=(self._clock() - started) * 1000,
                chart_type=(payload or {}).get("chart_type"),
                data_point_count=len((payload or {}).get("data") or []),
            )
        )
        decision = GateDecision(
            module=module,
            guard=guard,
            dataset=extracted,
            message=(payload or {}).get("message") or "",
            fallback_message=guard.fallback_message,
        )
        if killed:
            return self._killed(decision)
        return decision

    async def fetch(
        self,
        key: str,
        producer: Producer,
        ttl_fresh: Optional[float] = None,
        ttl_stale: Optional[float] = None,
        is_rate_limit_error: Optional[RateLimitClassifier] = None,
    ) -> FetchResult[Any]:
        return await self.cache.resolve(key, producer, ttl_fresh, ttl_stale, is_rate_limit_error)

    def _killed(self, decision: GateDecision) -> GateDecision:
        logger.warning("Kill switch active, serving fallback for %s", decision.module)
        decision.killed = True
        decision.message = GateConfig.KILL_SWITCH_MESSAGE
        decision.fallback_message = self.monitor.fallback_message(decision.module)
        decision.chart = None
        return decision


__all__ = ["Gatekeeper", "GateDecision"]
