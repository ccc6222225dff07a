"""Error taxonomy for the gatekeeper pipeline.

Fatal conditions (structural and semantic errors) and upstream fetch failures
are exceptions. Non-fatal conditions never abort a request, so they are only
issue codes attached to a verdict.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

STRUCTURAL = "STRUCTURAL"
SEMANTIC_ERROR = "SEMANTIC_ERROR"
SEMANTIC_WARNING = "SEMANTIC_WARNING"
BUSINESS_INCONSISTENCY = "BUSINESS_INCONSISTENCY"

FATAL_CODES = {STRUCTURAL, SEMANTIC_ERROR}


@dataclass
class GateIssue:
    code: str
    message: str

    @property
    def fatal(self) -> bool:
        return self.code in FATAL_CODES


class GatekeeperError(Exception):
    """Base class for every gatekeeper failure. Never raised directly."""

    def __init__(self, message: str, issues: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.issues = list(issues or [])


class StructuralError(GatekeeperError):
    """Candidate payload does not match the Dataset/DataPoint shape."""


class SemanticError(GatekeeperError):
    """Data is well-formed but cannot be rendered (no data, too few points)."""


class UpstreamFetchError(GatekeeperError):
    """A cache producer failed and no stale value could be served."""

    def __init__(self, key: str, message: str):
        super().__init__(message)
        self.key = key


class RateLimitError(UpstreamFetchError):
    """Upstream failure classified as rate limiting (HTTP 429)."""


__all__ = [
    "GateIssue",
    "GatekeeperError",
    "StructuralError",
    "SemanticError",
    "UpstreamFetchError",
    "RateLimitError",
    "STRUCTURAL",
    "SEMANTIC_ERROR",
    "SEMANTIC_WARNING",
    "BUSINESS_INCONSISTENCY",
    "FATAL_CODES",
]
