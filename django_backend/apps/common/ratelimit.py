"""
Fixed-window request rate limiting.

Each key (endpoint scope plus client IP) gets a counter and a reset time
anchored at the first request of the window. When the window expires the next
request starts a fresh one; windows do not slide. Counters live behind a
``RateLimitStore`` so a single instance can use a local cache and several
instances can share Redis. The cache store only uses ``add`` and ``incr``
to count, both atomic on Redis. Entries carry a TTL of the remaining window,
so idle keys are evicted by the backing cache.
"""
import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from django.conf import settings
from django.core.cache import caches
from django.utils.module_loading import import_string

from .exceptions import RateLimited

logger = logging.getLogger(__name__)


def client_ip(request) -> str:
    """
    Key used to identify the caller: first X-Forwarded-For entry, then
    X-Real-IP, else "unknown". Clients behind one NAT without forwarding
    headers share a bucket.
    """
    meta = request.META
    forwarded = meta.get("HTTP_X_FORWARDED_FOR")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = meta.get("HTTP_X_REAL_IP", "").strip()
    return real_ip or "unknown"


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def retry_after(self, now: float) -> int:
        return max(1, math.ceil(self.reset_at - now))


class RateLimitStore(ABC):
    """Storage for (count, reset_at) window entries."""

    @abstractmethod
    def increment(self, key: str, window: int, now: float) -> Tuple[int, float]:
        """Count one request for ``key`` and return (count, reset_at) of the current window."""

    @abstractmethod
    def reset(self, key: str):
        """Forget the current window of ``key``."""


class CacheRateLimitStore(RateLimitStore):
    """Window entries kept in a Django cache (LocMem per process, Redis when shared)."""

    prefix = "ratelimit"

    def __init__(self, alias: str = None):
        self.alias = alias or settings.RATE_LIMIT.get("CACHE_ALIAS", "default")

    @property
    def cache(self):
        return caches[self.alias]

    def _cache_key(self, key):
        return f"{self.prefix}:{key}"

    def _count_key(self, key, reset_at):
        return self._cache_key(f"{key}:{reset_at:.3f}")

    def _window(self, key, window, now):
        """Reset time of the current window, opening a new one when needed."""
        reset_key = self._cache_key(f"{key}:reset")
        reset_at = self.cache.get(reset_key)
        if reset_at is None:
            # Concurrent first requests agree on one window
            self.cache.add(reset_key, now + window, timeout=window + 1)
            reset_at = self.cache.get(reset_key, now + window)
        if now >= reset_at:
            # Expired entry still cached: every caller rolls to the same boundary
            reset_at += window * (math.floor((now - reset_at) / window) + 1)
            self.cache.set(reset_key, reset_at, timeout=math.ceil(reset_at - now) + 1)
        return reset_at

    def increment(self, key, window, now):
        reset_at = self._window(key, window, now)
        count_key = self._count_key(key, reset_at)
        ttl = math.ceil(reset_at - now) + 1
        self.cache.add(count_key, 0, timeout=ttl)
        try:
            count = self.cache.incr(count_key)
        except ValueError:
            # Evicted between add() and incr()
            self.cache.set(count_key, 1, timeout=ttl)
            count = 1
        return count, reset_at

    def reset(self, key):
        reset_key = self._cache_key(f"{key}:reset")
        reset_at = self.cache.get(reset_key)
        if reset_at is not None:
            self.cache.delete_many([reset_key, self._count_key(key, reset_at)])


class RateLimiter:
    def __init__(self, store: RateLimitStore, window: int = None, timer: Callable[[], float] = None):
        self.store = store
        self.window = window or settings.RATE_LIMIT["WINDOW_SECONDS"]
        self.timer = timer or time.time

    def hit(self, key: str, limit: int) -> RateLimitResult:
        now = self.timer()
        count, reset_at = self.store.increment(key, self.window, now)
        return RateLimitResult(
            allowed=count <= limit,
            limit=limit,
            remaining=max(0, limit - count),
            reset_at=reset_at,
        )

    def check(self, key: str, limit: int) -> RateLimitResult:
        """Count the request and raise RateLimited once the window's ceiling is passed."""
        result = self.hit(key, limit)
        if not result.allowed:
            wait = result.retry_after(self.timer())
            logger.info("Rate limit exceeded for %s (limit %d, retry in %ds)", key, limit, wait)
            raise RateLimited(wait=wait)
        return result


_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    global _limiter
    if _limiter is None:
        store_class = import_string(settings.RATE_LIMIT["STORE"])
        _limiter = RateLimiter(store_class())
    return _limiter


def reset_rate_limiter():
    global _limiter
    _limiter = None


class RateLimitMixin:
    """
    Apply the rate limiter before authentication and permission checks.

    Views declare ceilings per action (``list``, ``create``...) or per HTTP
    method in ``rate_limits``; anything undeclared falls back to
    ``RATE_LIMIT["DEFAULT_LIMIT"]``.
    """

    rate_limits: Dict[str, int] = {}
    rate_limit_scope: Optional[str] = None

    def get_rate_limit(self, request) -> int:
        action = getattr(self, "action", None)
        if action and action in self.rate_limits:
            return self.rate_limits[action]
        return self.rate_limits.get(request.method, settings.RATE_LIMIT["DEFAULT_LIMIT"])

    def get_rate_limit_key(self, request) -> str:
        scope = self.rate_limit_scope or type(self).__name__.lower()
        action = getattr(self, "action", None) or request.method.lower()
        return f"{scope}:{action}:{client_ip(request)}"

    def initial(self, request, *args, **kwargs):
        if settings.RATE_LIMIT["ENABLED"]:
            result = get_rate_limiter().check(self.get_rate_limit_key(request), self.get_rate_limit(request))
            self.headers.update({
                "X-RateLimit-Limit": str(result.limit),
                "X-RateLimit-Remaining": str(result.remaining),
            })
        super().initial(request, *args, **kwargs)
