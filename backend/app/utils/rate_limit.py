import ipaddress
import time
from collections import deque
from threading import Lock
from typing import Optional

from fastapi import Request

from app.core.config import get_settings

_MAX_BUCKETS = 50_000
_PRUNE_INTERVAL_SECONDS = 60

UPLOAD_PATHS = ("/api/v1/documents/upload", "/api/v1/ai/test")


class SlidingWindowRateLimiter:
    """Per-key request timestamps kept for one window; thread-safe."""

    def __init__(
        self,
        *,
        max_buckets: int = _MAX_BUCKETS,
        prune_interval_seconds: int = _PRUNE_INTERVAL_SECONDS,
    ) -> None:
        self._buckets: dict[str, deque[float]] = {}
        self._lock = Lock()
        self._max_buckets = max_buckets
        self._prune_interval_seconds = max(1, int(prune_interval_seconds))
        self._last_prune_at = 0.0

    def allow(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        """Record a hit for *key*; returns ``(allowed, hits_in_window)``."""
        if limit <= 0 or window_seconds <= 0:
            return True, 0
        now = time.monotonic()
        cutoff = now - window_seconds
        with self._lock:
            if len(self._buckets) > self._max_buckets or now - self._last_prune_at >= self._prune_interval_seconds:
                self._prune(cutoff)
                self._last_prune_at = now

            bucket = self._buckets.setdefault(key, deque())
            while bucket and bucket[0] <= cutoff:
                bucket.popleft()
            if len(bucket) >= limit:
                return False, len(bucket)
            bucket.append(now)
            return True, len(bucket)

    def _prune(self, cutoff: float) -> None:
        for key in list(self._buckets):
            bucket = self._buckets[key]
            while bucket and bucket[0] <= cutoff:
                bucket.popleft()
            if not bucket:
                del self._buckets[key]

    def bucket_count(self) -> int:
        with self._lock:
            return len(self._buckets)

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
            self._last_prune_at = 0.0


rate_limiter = SlidingWindowRateLimiter()


def _ip_in_networks(ip: str, networks: list[str]) -> bool:
    try:
        ip_obj = ipaddress.ip_address(ip)
    except ValueError:
        return False
    for entry in networks:
        try:
            if ip_obj in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            continue
    return False


def get_client_ip(request: Request, trusted_proxy_cidrs: Optional[list[str]] = None) -> Optional[str]:
    """Client IP for rate limiting and audit.

    ``X-Real-IP`` / ``X-Forwarded-For`` are honoured only when the direct peer
    is inside ``TRUSTED_PROXY_CIDRS``; otherwise the peer address is returned.
    """
    peer_ip = request.client.host if request.client else None
    trusted = trusted_proxy_cidrs if trusted_proxy_cidrs is not None else get_settings().trusted_proxy_cidrs
    if not (peer_ip and trusted and _ip_in_networks(peer_ip, trusted)):
        return peer_ip

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    forwarded = [p.strip() for p in request.headers.get("x-forwarded-for", "").split(",") if p.strip()]
    # Rightmost entry was appended by our own proxy.
    return forwarded[-1] if forwarded else peer_ip


def get_user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent") if request else None


def bucket_for(path: str, method: str) -> Optional[tuple[str, int]]:
    """Return ``(bucket_name, per_minute_limit)`` for a request, or ``None`` if unlimited."""
    if method == "OPTIONS" or not path.startswith("/api/v1"):
        return None
    settings = get_settings()
    if method == "POST" and path.startswith(UPLOAD_PATHS):
        return "upload", settings.rate_limit_upload_per_min
    return "api", settings.rate_limit_api_per_min
