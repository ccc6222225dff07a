"""
Production monitor with a kill switch.

Every processed request is recorded as a LogEntry. Two rolling counters track
the recent error rate; when they reach the decay point both are halved, so
old samples fade out without the rate ever resetting to zero. The kill switch
trips at a high error rate and clears only once the rate has dropped well
below it.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from config import GateConfig
from metrics import LogEntry, MonitorMetrics, summarize

logger = logging.getLogger(__name__)


class ProductionMonitor:
    def __init__(
        self,
        capacity: int = GateConfig.MONITOR_CAPACITY,
        decay_at: int = GateConfig.MONITOR_DECAY_AT,
        min_samples: int = GateConfig.MONITOR_MIN_SAMPLES,
        trip_rate: float = GateConfig.KILL_SWITCH_TRIP_RATE,
        clear_rate: float = GateConfig.KILL_SWITCH_CLEAR_RATE,
    ):
        if clear_rate > trip_rate:
            raise ValueError(f"clear_rate ({clear_rate}) must not exceed trip_rate ({trip_rate})")
        self.capacity = capacity
        self.decay_at = decay_at
        self.min_samples = min_samples
        self.trip_rate = trip_rate
        self.clear_rate = clear_rate
        self._lock = threading.Lock()
        self._logs: Deque[LogEntry] = deque(maxlen=capacity)
        self._recent_errors = 0
        self._recent_total = 0
        self._tripped = False
        self._override: Optional[bool] = None

    def record(self, entry: LogEntry) -> None:
        with self._lock:
            # newest first; deque drops the oldest beyond capacity
            self._logs.appendleft(entry)
            self._recent_total += 1
            if not entry.output_valid:
                self._recent_errors += 1
            if self._recent_total >= self.decay_at:
                self._recent_errors //= 2
                self._recent_total //= 2

            # too few samples to move the switch either way
            if self._recent_total > self.min_samples:
                rate = self._rate_locked()
                if rate >= self.trip_rate and not self._tripped:
                    self._tripped = True
                    logger.error("Kill switch activated, error rate %.1f%%", rate * 100)
                elif rate < self.clear_rate and self._tripped:
                    self._tripped = False
                    logger.warning("Kill switch deactivated, error rate back to %.1f%%", rate * 100)

        if not entry.output_valid:
            logger.debug("Invalid output recorded for %s: %s", entry.module, entry.errors)

    def _rate_locked(self) -> float:
        return self._recent_errors / self._recent_total if self._recent_total else 0.0

    def is_active(self) -> bool:
        with self._lock:
            if self._override is not None:
                return self._override
            return self._tripped

    def manual_override(self, active: Optional[bool]) -> None:
        """Force the switch on or off until called again with None."""
        with self._lock:
            self._override = active
        if active is None:
            logger.warning("Kill switch override cleared")
        else:
            logger.warning("Kill switch manually set to %s", active)

    def clear_override(self) -> None:
        self.manual_override(None)

    def current_error_rate(self) -> float:
        with self._lock:
            return self._rate_locked()

    def status(self) -> Dict[str, Any]:
        with self._lock:
            active = self._override if self._override is not None else self._tripped
            return {
                "active": active,
                "error_rate": self._rate_locked(),
                "recent_errors": self._recent_errors,
                "recent_total": self._recent_total,
                "threshold": self.trip_rate,
                "clear_threshold": self.clear_rate,
                "override": self._override,
            }

    def fallback_message(self, module: str) -> str:
        return GateConfig.fallback_for(module)

    def kill_switch_message(self) -> str:
        return GateConfig.KILL_SWITCH_MESSAGE

    def metrics(self) -> MonitorMetrics:
        with self._lock:
            logs = list(self._logs)
        return summarize(logs)

    def recent_errors(self, count: int = 10) -> List[LogEntry]:
        with self._lock:
            failed = [entry for entry in self._logs if not entry.output_valid]
        return failed[:count]

    def reset(self) -> None:
        with self._lock:
            self._logs.clear()
            self._recent_errors = 0
            self._recent_total = 0
            self._tripped = False
            self._override = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._logs)


__all__ = ["ProductionMonitor"]
