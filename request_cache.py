"""In-memory request cache with stale serving and single-flight deduplication.

Upstream calls (market quotes, historical series, repeated model queries) are
expensive and rate limited. The cache keeps every value with a fresh window and
a longer stale window: fresh values are served without calling upstream, stale
values are only served when a refresh fails. Concurrent requests for the same
key share one in-flight producer call.

All coordination happens on a single asyncio event loop. The in-flight test and
registration run with no suspension point between them, so two callers can
never both start a producer for the same key.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

import httpx

from config import GateConfig
from exceptions import RateLimitError, UpstreamFetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Producer = Callable[[], Awaitable[Any]]
RateLimitClassifier = Callable[[BaseException], bool]


class CacheState(str, Enum):
    FRESH = "fresh"
    STALE = "stale"


class FetchOutcome(str, Enum):
    HIT = "hit"
    FETCHED = "fetched"
    STALE_FALLBACK = "stale_fallback"
    FAILED = "failed"


@dataclass
class CacheEntry(Generic[T]):
    value: T
    fresh_until: float
    stale_until: float

    def state_at(self, now: float) -> Optional[CacheState]:
        if now < self.fresh_until:
            return CacheState.FRESH
        if now < self.stale_until:
            return CacheState.STALE
        return None


@dataclass
class CachedValue(Generic[T]):
    value: T
    state: CacheState


@dataclass
class FetchResult(Generic[T]):
    """Outcome of a cache lookup. A failed result carries the producer error."""

    key: str
    outcome: FetchOutcome
    value: Optional[T] = None
    state: Optional[CacheState] = None
    error: Optional[BaseException] = None
    rate_limited: bool = False

    @property
    def ok(self) -> bool:
        return self.outcome is not FetchOutcome.FAILED

    def unwrap(self) -> T:
        if self.ok:
            return self.value
        error_cls = RateLimitError if self.rate_limited else UpstreamFetchError
        raise error_cls(self.key, f"Upstream fetch failed for {self.key!r}: {self.error}") from self.error


def is_rate_limit_error(exc: BaseException) -> bool:
    """Default classifier: explicit RateLimitError, HTTP 429, or a rate-limit message."""
    if isinstance(exc, RateLimitError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429
    message = str(exc).lower()
    return "429" in message or "rate limit" in message


class RequestCache:
    """Key-addressed cache owned by whoever constructs it.

    Entries are never deleted one by one; they age out of their windows and
    ``reset`` wipes everything.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        ttl_fresh: float = GateConfig.CACHE_TTL_FRESH_SECONDS,
        ttl_stale: float = GateConfig.CACHE_TTL_STALE_SECONDS,
        rate_limit_grace: float = GateConfig.CACHE_RATE_LIMIT_GRACE_SECONDS,
        is_rate_limit_error: RateLimitClassifier = is_rate_limit_error,
    ):
        if ttl_fresh > ttl_stale:
            raise ValueError(f"ttl_fresh ({ttl_fresh}) must not exceed ttl_stale ({ttl_stale})")
        self._clock = clock
        self.ttl_fresh = ttl_fresh
        self.ttl_stale = ttl_stale
        self.rate_limit_grace = max(0.0, rate_limit_grace)
        self._is_rate_limit_error = is_rate_limit_error
        self._entries: Dict[str, CacheEntry[Any]] = {}
        self._inflight: Dict[str, asyncio.Task] = {}

    def get(self, key: str) -> Optional[CachedValue[Any]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        state = entry.state_at(self._clock())
        if state is None:
            return None
        return CachedValue(value=entry.value, state=state)

    def set(self, key: str, value: Any, ttl_fresh: Optional[float] = None, ttl_stale: Optional[float] = None) -> None:
        ttl_fresh = self.ttl_fresh if ttl_fresh is None else ttl_fresh
        ttl_stale = self.ttl_stale if ttl_stale is None else ttl_stale
        now = self._clock()
        fresh_until = now + ttl_fresh
        self._entries[key] = CacheEntry(
            value=value,
            fresh_until=fresh_until,
            stale_until=max(fresh_until, now + ttl_stale),
        )

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    def reset(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    async def resolve(
        self,
        key: str,
        producer: Producer,
        ttl_fresh: Optional[float] = None,
        ttl_stale: Optional[float] = None,
        is_rate_limit_error: Optional[RateLimitClassifier] = None,
    ) -> FetchResult[Any]:
        """Return a fresh value, a newly fetched value, a stale fallback, or a failure.

        Never raises for producer errors. Cancelling the caller does not cancel
        the shared producer call; other waiters still receive its result.
        """
        entry = self._entries.get(key)
        if entry is not None and entry.state_at(self._clock()) is CacheState.FRESH:
            return FetchResult(key=key, outcome=FetchOutcome.HIT, value=entry.value, state=CacheState.FRESH)

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._produce(key, producer, ttl_fresh, ttl_stale))
            task.add_done_callback(_consume_task_error)
            self._inflight[key] = task
            logger.debug("Cache miss for %s, fetching upstream", key)
        else:
            logger.debug("Joining in-flight fetch for %s", key)

        try:
            value = await asyncio.shield(task)
        except Exception as exc:  # noqa: BLE001
            return self._fallback(key, exc, is_rate_limit_error or self._is_rate_limit_error)
        return FetchResult(key=key, outcome=FetchOutcome.FETCHED, value=value, state=CacheState.FRESH)

    async def fetch(
        self,
        key: str,
        producer: Producer,
        ttl_fresh: Optional[float] = None,
        ttl_stale: Optional[float] = None,
        is_rate_limit_error: Optional[RateLimitClassifier] = None,
    ) -> FetchResult[Any]:
        """Like ``resolve`` but raises UpstreamFetchError / RateLimitError on hard failure."""
        result = await self.resolve(key, producer, ttl_fresh, ttl_stale, is_rate_limit_error)
        result.unwrap()
        return result

    async def _produce(self, key: str, producer: Producer, ttl_fresh: Optional[float], ttl_stale: Optional[float]) -> Any:
        try:
            value = await producer()
            self.set(key, value, ttl_fresh, ttl_stale)
            return value
        finally:
            # Runs before any waiter resumes, so a retry after settle starts a new fetch
            self._inflight.pop(key, None)

    def _fallback(self, key: str, exc: BaseException, classifier: RateLimitClassifier) -> FetchResult[Any]:
        rate_limited = bool(classifier(exc))
        entry = self._entries.get(key)
        if entry is not None:
            now = self._clock()
            horizon = entry.stale_until + (self.rate_limit_grace if rate_limited else 0.0)
            if now < horizon:
                logger.warning(
                    "Upstream fetch for %s failed (%s%s), serving stale value",
                    key,
                    type(exc).__name__,
                    ", rate limited" if rate_limited else "",
                )
                return FetchResult(
                    key=key,
                    outcome=FetchOutcome.STALE_FALLBACK,
                    value=entry.value,
                    state=entry.state_at(now) or CacheState.STALE,
                    error=exc,
                    rate_limited=rate_limited,
                )
        logger.warning("Upstream fetch for %s failed with no stale value: %s", key, exc)
        return FetchResult(key=key, outcome=FetchOutcome.FAILED, error=exc, rate_limited=rate_limited)


def _consume_task_error(task: asyncio.Task) -> None:
    # Every waiter may have been cancelled; mark the error as retrieved
    if not task.cancelled():
        task.exception()


NO_CACHE_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"harga.*sekarang",
        r"harga.*hari ini",
        r"saat ini",
        r"\blive\b",
        r"realtime|real-time",
        r"terbaru",
        r"\blatest\b",
        r"right now",
        r"cuaca|weather",
        r"waktu|what time",
        r"tanggal|today'?s date",
    )
]


def query_hash(query: str, context: str = "") -> str:
    """Stable key for repeated model queries: lowercase, trimmed, whitespace collapsed."""
    normalized = re.sub(r"\s+", " ", (query or "").lower().strip()) + (context or "")
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def should_cache_query(query: str) -> bool:
    """Real-time or personal queries must always hit the model."""
    return not any(pattern.search(query or "") for pattern in NO_CACHE_PATTERNS)


__all__ = [
    "RequestCache",
    "CacheEntry",
    "CachedValue",
    "CacheState",
    "FetchOutcome",
    "FetchResult",
    "is_rate_limit_error",
    "query_hash",
    "should_cache_query",
]
