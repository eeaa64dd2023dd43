"""Per-endpoint sliding-window rate limiting, keyed by user or client IP."""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from collections.abc import Callable, Mapping

from prompt_supply.models import RateLimitConfig, RateLimitResult

logger = logging.getLogger(__name__)

HOUR = 3600
SWEEP_INTERVAL = 60

RATE_LIMIT_CONFIGS: dict[str, RateLimitConfig] = {
    "generate": RateLimitConfig(
        requests=10, window_seconds=HOUR, description="AI prompt generation"
    ),
    "analyze": RateLimitConfig(requests=20, window_seconds=HOUR, description="Prompt analysis"),
    "test": RateLimitConfig(
        requests=5, window_seconds=HOUR, description="Prompt testing (expensive)"
    ),
    "chat": RateLimitConfig(requests=50, window_seconds=HOUR, description="Chat conversations"),
    "save": RateLimitConfig(requests=30, window_seconds=HOUR, description="Save prompts"),
}


class SlidingWindowRateLimiter:
    """In-process limiter: each (endpoint, identifier) pair keeps its own window.

    Requests are remembered by timestamp, so capacity frees up one request at
    a time as old ones age out instead of all at once on a fixed boundary.
    """

    def __init__(
        self,
        configs: Mapping[str, RateLimitConfig] | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._configs = dict(configs if configs is not None else RATE_LIMIT_CONFIGS)
        self._clock = clock
        self._hits: dict[tuple[str, str], deque[float]] = {}
        self._last_sweep = self._clock()
        self._lock = threading.Lock()

    def config_for(self, endpoint: str) -> RateLimitConfig:
        try:
            return self._configs[endpoint]
        except KeyError:
            raise ValueError(f"Unknown rate-limited endpoint: '{endpoint}'") from None

    def check_and_consume(self, endpoint: str, identifier: str) -> RateLimitResult:
        """Record one request and report whether it is allowed.

        Bookkeeping failures let the request through (fail open).
        """
        config = self.config_for(endpoint)
        now = self._clock()
        try:
            with self._lock:
                if now - self._last_sweep >= SWEEP_INTERVAL:
                    self._sweep(now)
                return self._consume(config, (endpoint, identifier), now)
        except Exception:
            logger.exception("Rate limit bookkeeping failed for %s (%s)", endpoint, identifier)
            return RateLimitResult(
                allowed=True,
                limit=config.requests,
                remaining=config.requests - 1,
                reset_at=now + config.window_seconds,
            )

    def _consume(
        self, config: RateLimitConfig, key: tuple[str, str], now: float
    ) -> RateLimitResult:
        hits = self._hits.setdefault(key, deque())
        cutoff = now - config.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()

        if len(hits) >= config.requests:
            reset_at = hits[0] + config.window_seconds
            logger.warning("Rate limit exceeded for %s (%s)", key[0], key[1])
            return RateLimitResult(
                allowed=False,
                limit=config.requests,
                remaining=0,
                reset_at=reset_at,
                retry_after=max(1, math.ceil(reset_at - now)),
            )

        hits.append(now)
        return RateLimitResult(
            allowed=True,
            limit=config.requests,
            remaining=config.requests - len(hits),
            reset_at=hits[0] + config.window_seconds,
        )

    def _sweep(self, now: float) -> None:
        """Forget identifiers whose every request has aged out of the window."""
        idle = [
            key
            for key, hits in self._hits.items()
            if not hits or hits[-1] <= now - self._configs[key[0]].window_seconds
        ]
        for key in idle:
            del self._hits[key]
        self._last_sweep = now
        if idle:
            logger.debug("Dropped %d idle rate limit windows", len(idle))

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


def get_user_identifier(user_id: str | None, headers: Mapping[str, str] | None = None) -> str:
    """``user:<id>`` when signed in, else the first forwarded client IP."""
    if user_id:
        return f"user:{user_id}"
    lowered = {k.lower(): v for k, v in (headers or {}).items()}
    forwarded = lowered.get("x-forwarded-for", "").split(",")[0].strip()
    ip = forwarded or lowered.get("x-real-ip", "").strip() or "unknown"
    return f"ip:{ip}"


def retry_message(endpoint: str, result: RateLimitResult) -> str:
    """Human-friendly explanation for a refused request."""
    config = RATE_LIMIT_CONFIGS.get(endpoint)
    what = config.description if config else endpoint
    retry_after = result.retry_after or 0
    if retry_after < 60:
        wait = f"{retry_after} seconds"
    else:
        minutes = math.ceil(retry_after / 60)
        wait = f"{minutes} minute{'s' if minutes > 1 else ''}"
    return f"Rate limit reached for {what}. Try again in {wait}."
