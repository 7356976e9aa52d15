"""
Sliding-window rate limiting, keyed by caller identity and a named bucket.

``api`` guards ordinary endpoints, ``auth`` guards credential endpoints.
When Upstash credentials are configured the counting happens in Upstash;
otherwise an in-process sliding window is used.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Optional, Tuple

from fastapi import Request
from upstash_ratelimit import Ratelimit, SlidingWindow
from upstash_redis import Redis

from config import Settings

log = logging.getLogger(__name__)

BUCKETS = ("api", "auth")


@dataclass
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset: float


class SlidingWindowRateLimiter:
    def __init__(self, max_requests: int = 20, window_seconds: int = 60, clock=time.time):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._hits: Dict[Tuple[str, str], Deque[float]] = {}
        self._lock = threading.Lock()

    def limit(self, identifier: str, bucket: str = "api") -> RateLimitResult:
        now = self.clock()
        start = now - self.window_seconds
        with self._lock:
            hits = self._hits.setdefault((bucket, identifier), deque())
            while hits and hits[0] <= start:
                hits.popleft()
            reset = (hits[0] if hits else now) + self.window_seconds
            if len(hits) >= self.max_requests:
                return RateLimitResult(False, self.max_requests, 0, reset)
            hits.append(now)
            return RateLimitResult(True, self.max_requests, self.max_requests - len(hits), reset)


class UpstashRateLimiter:
    def __init__(self, url: str, token: str, max_requests: int = 20, window_seconds: int = 60):
        redis = Redis(url=url, token=token)
        self.max_requests = max_requests
        self._limiters = {
            bucket: Ratelimit(
                redis=redis,
                limiter=SlidingWindow(max_requests=max_requests, window=window_seconds),
                prefix=f"storefront:{bucket}",
            )
            for bucket in BUCKETS
        }

    def limit(self, identifier: str, bucket: str = "api") -> RateLimitResult:
        response = self._limiters[bucket].limit(identifier)
        return RateLimitResult(response.allowed, response.limit, response.remaining, response.reset)


class RateLimiter:
    """Front for a backend limiter; disabled limiters and backend errors let requests through."""

    def __init__(self, backend, enabled: bool = True):
        self.backend = backend
        self.enabled = enabled

    def limit(self, identifier: str, bucket: str = "api") -> RateLimitResult:
        if not self.enabled:
            return RateLimitResult(True, 1000, 999, time.time() + 60)
        try:
            return self.backend.limit(identifier, bucket)
        except Exception:
            log.exception("Rate limiting failed for bucket %s, allowing request", bucket)
            return RateLimitResult(True, 1000, 999, time.time() + 60)


def build_rate_limiter(settings: Settings) -> RateLimiter:
    if settings.upstash_redis_rest_url and settings.upstash_redis_rest_token:
        backend = UpstashRateLimiter(
            settings.upstash_redis_rest_url,
            settings.upstash_redis_rest_token,
            settings.rate_limit_requests,
            settings.rate_limit_window_seconds,
        )
    else:
        log.info("Upstash not configured, using in-process rate limiter")
        backend = SlidingWindowRateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)
    return RateLimiter(backend, enabled=settings.rate_limit_enabled)


def client_identity(request: Request, user_id: Optional[str] = None) -> str:
    if user_id:
        return f"user:{user_id}"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "anonymous"
