"""
Gatekeeper Configuration

Policy constants for the AI output gatekeeper. Every numeric threshold can be
overridden from the environment (or a local .env file) so operators can tune
the gate without a deploy.
"""

import json
import os
from typing import Dict, List

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


class GateConfig:
    """Thresholds and lookup tables shared by every gatekeeper component."""

    # Trend policy (percent)
    DIRECTION_CHANGE_PCT = _env_float("GATE_DIRECTION_CHANGE_PCT", 2.0)
    FLAT_RANGE_PCT = _env_float("GATE_FLAT_RANGE_PCT", 5.0)
    HIGH_GROWTH_PCT = _env_float("GATE_HIGH_GROWTH_PCT", 20.0)
    MODERATE_GROWTH_PCT = _env_float("GATE_MODERATE_GROWTH_PCT", 10.0)
    SIGNIFICANT_DECLINE_PCT = _env_float("GATE_SIGNIFICANT_DECLINE_PCT", -20.0)

    # Consistency tiers (0-1)
    HIGH_CONSISTENCY = _env_float("GATE_HIGH_CONSISTENCY", 0.7)
    MEDIUM_CONSISTENCY = _env_float("GATE_MEDIUM_CONSISTENCY", 0.4)
    PREDICTION_CONSISTENCY = _env_float("GATE_PREDICTION_CONSISTENCY", 0.5)

    # Data requirements
    MIN_POINTS_HIGH_CONFIDENCE = _env_int("GATE_MIN_POINTS_HIGH_CONFIDENCE", 6)
    MIN_POINTS_MEDIUM_CONFIDENCE = _env_int("GATE_MIN_POINTS_MEDIUM_CONFIDENCE", 3)
    MIN_POINTS_PREDICTION = _env_int("GATE_MIN_POINTS_PREDICTION", 3)

    # Semantic plausibility
    OUTLIER_RATIO = _env_float("GATE_OUTLIER_RATIO", 10.0)
    MIN_OUTLIER_SAMPLE = _env_int("GATE_MIN_OUTLIER_SAMPLE", 3)

    # Production monitor
    MONITOR_CAPACITY = _env_int("GATE_MONITOR_CAPACITY", 1000)
    MONITOR_DECAY_AT = _env_int("GATE_MONITOR_DECAY_AT", 100)
    MONITOR_MIN_SAMPLES = _env_int("GATE_MONITOR_MIN_SAMPLES", 10)
    KILL_SWITCH_TRIP_RATE = _env_float("GATE_KILL_SWITCH_TRIP_RATE", 0.8)
    KILL_SWITCH_CLEAR_RATE = _env_float("GATE_KILL_SWITCH_CLEAR_RATE", 0.5)
    USER_INPUT_MAX_CHARS = _env_int("GATE_USER_INPUT_MAX_CHARS", 200)
    RECENT_LOG_LIMIT = _env_int("GATE_RECENT_LOG_LIMIT", 50)
    COMMON_ERROR_LIMIT = _env_int("GATE_COMMON_ERROR_LIMIT", 10)

    # Request cache (seconds)
    CACHE_TTL_FRESH_SECONDS = _env_float("GATE_CACHE_TTL_FRESH_SECONDS", 60.0)
    CACHE_TTL_STALE_SECONDS = _env_float("GATE_CACHE_TTL_STALE_SECONDS", 300.0)
    CACHE_RATE_LIMIT_GRACE_SECONDS = _env_float("GATE_CACHE_RATE_LIMIT_GRACE_SECONDS", 600.0)

    # Module policy
    MODULES = ["market", "data-visualization", "reports", "letter", "chat"]
    ALLOWED_SOURCES: Dict[str, List[str]] = {
        "market": ["market", "live"],
        "data-visualization": ["internal", "user"],
        "reports": ["internal", "user"],
        "letter": [],
        "chat": ["internal", "user"],
    }
    ALLOWED_CHART_TYPES: Dict[str, List[str]] = {
        "market": ["candlestick", "line", "comparison"],
        "data-visualization": ["line", "bar", "pie", "area", "composed"],
        "reports": ["bar", "line", "pie", "area"],
        "letter": [],
        "chat": ["bar", "line"],
    }
    MODULE_DISPLAY_NAMES: Dict[str, str] = {
        "market": "Market Trends",
        "data-visualization": "Data Visualization",
        "reports": "Reports",
        "letter": "Letter Generator",
        "chat": "Chat",
    }
    MARKET_SYMBOLS = [
        symbol.strip().upper()
        for symbol in os.getenv("GATE_MARKET_SYMBOLS", "BTC,ETH,GOTO,BBRI,BBCA,TLKM").split(",")
        if symbol.strip()
    ]

    _fallbacks_raw = os.getenv(
        "GATE_MODULE_FALLBACKS",
        json.dumps(
            {
                "data-visualization": (
                    "Data visualization is unavailable right now. "
                    "Please check that the data is formatted correctly."
                ),
                "market": "Market data is temporarily unavailable. Please try again shortly.",
                "reports": "The report could not be generated. Please try again with simpler data.",
            }
        ),
    )
    try:
        MODULE_FALLBACKS: Dict[str, str] = {
            key: value
            for key, value in (json.loads(_fallbacks_raw) or {}).items()
            if isinstance(value, str) and value.strip()
        }
    except ValueError:
        MODULE_FALLBACKS = {}
    DEFAULT_FALLBACK = os.getenv(
        "GATE_DEFAULT_FALLBACK", "The service is temporarily unavailable. Please try again."
    )
    KILL_SWITCH_MESSAGE = (
        "The visualization system is in maintenance mode to protect output quality. "
        "Please try again in a few moments or contact support if the problem persists."
    )

    @classmethod
    def fallback_for(cls, module: str) -> str:
        return cls.MODULE_FALLBACKS.get(module, cls.DEFAULT_FALLBACK)
