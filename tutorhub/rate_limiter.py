"""
Sliding-window rate limiting backed by Redis, with an in-process fallback store

Each key holds the timestamps of the requests seen inside the current window.
"""

import json
import logging
import math
import os
import time
from dataclasses import dataclass
from threading import Lock
from typing import Optional

import redis
from fastapi import HTTPException, Request

from .config import RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_SECONDS, REDIS_URL

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None

# After a failed connect, requests use the memory store until this time instead of reconnecting
REDIS_RETRY_INTERVAL = 30
redis_unavailable_until = 0.0

# Sweep expired in-memory entries at most this often (seconds)
MEMORY_CLEANUP_INTERVAL = 60


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    remaining: int
    reset: int  # Seconds until the oldest request leaves the window


class MemoryStore:
    """Timestamp store used when Redis is not configured"""

    def __init__(self, cleanup_interval: int = MEMORY_CLEANUP_INTERVAL):
        self._store: dict[str, tuple[list[float], float]] = {}
        self._lock = Lock()
        self.cleanup_interval = cleanup_interval
        self._last_cleanup = time.time()

    def _cleanup_expired(self, now: float) -> None:
        """Drop expired keys; runs at most once per ``cleanup_interval``. Caller holds the lock."""
        if now - self._last_cleanup < self.cleanup_interval:
            return
        expired = [key for key, (_, expires_at) in self._store.items() if now >= expires_at]
        for key in expired:
            del self._store[key]
        if expired:
            logger.debug(f"🧹 Cleaned up {len(expired)} expired rate limit entries")
        self._last_cleanup = now

    def get(self, key: str) -> list[float]:
        now = time.time()
        with self._lock:
            self._cleanup_expired(now)
            entry = self._store.get(key)
            if entry is None:
                return []
            timestamps, expires_at = entry
            if now >= expires_at:
                del self._store[key]
                return []
            return list(timestamps)

    def set(self, key: str, timestamps: list[float], ttl: int) -> None:
        now = time.time()
        with self._lock:
            self._cleanup_expired(now)
            self._store[key] = (list(timestamps), now + ttl)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


class RedisStore:
    """Timestamps kept as a JSON list with the window as TTL"""

    def __init__(self, client: redis.Redis):
        self.client = client

    def get(self, key: str) -> list[float]:
        stored = self.client.get(key)
        return json.loads(stored) if stored else []

    def set(self, key: str, timestamps: list[float], ttl: int) -> None:
        self.client.set(key, json.dumps(timestamps), ex=ttl)


memory_store = MemoryStore()


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client
    Supports both a REDIS_URL and individual REDIS_* settings
    """
    global redis_client

    if redis_client is None:
        logger.info("🔄 Initializing Redis connection for rate limiting...")

        if REDIS_URL:
            # Mask password in URL for logging
            if "@" in REDIS_URL:
                url_parts = REDIS_URL.split("@")
                protocol = url_parts[0].split(":")[0]
                masked_url = f"{protocol}:****@{url_parts[1]}"
            else:
                masked_url = "****"
            logger.info(f"📡 Using Redis URL connection: {masked_url}")

            client = redis.from_url(
                REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=15,
                socket_timeout=30,
                retry_on_timeout=True,
                health_check_interval=30,
                max_connections=20,
            )
        else:
            redis_host = os.getenv("REDIS_HOST", "localhost")
            redis_port = int(os.getenv("REDIS_PORT", "6379"))
            redis_ssl = os.getenv("REDIS_SSL", "false").lower() == "true"
            logger.info(f"📡 Using Redis at {redis_host}:{redis_port} (SSL: {redis_ssl})")

            client = redis.Redis(
                host=redis_host,
                port=redis_port,
                password=os.getenv("REDIS_PASSWORD", None),
                db=int(os.getenv("REDIS_DB", "0")),
                ssl=redis_ssl,
                decode_responses=True,
                socket_connect_timeout=15,
                socket_timeout=30,
                retry_on_timeout=True,
                health_check_interval=30,
                max_connections=20,
            )

        try:
            client.ping()
        except Exception as e:
            logger.error(f"❌ Failed to connect to Redis: {str(e)}")
            raise
        redis_client = client
        logger.info("Redis connected successfully")

    return redis_client


def get_store():
    """
    Redis store when REDIS_URL is configured and reachable, memory store otherwise.

    A failed connect is not retried for REDIS_RETRY_INTERVAL seconds, so an
    unreachable host costs one connect timeout per interval rather than per request.
    """
    global redis_unavailable_until

    if redis_client is not None:
        return RedisStore(redis_client)
    if not REDIS_URL or time.time() < redis_unavailable_until:
        return memory_store
    try:
        return RedisStore(get_redis_client())
    except Exception:
        redis_unavailable_until = time.time() + REDIS_RETRY_INTERVAL
        logger.warning(
            f"⚠️ Redis unavailable, rate limiting uses the in-memory store for {REDIS_RETRY_INTERVAL}s"
        )
        return memory_store


def rate_limit(
    identifier: str,
    max_requests: int = RATE_LIMIT_MAX_REQUESTS,
    window: int = RATE_LIMIT_WINDOW_SECONDS,
    prefix: str = "rate-limit",
    store=None,
) -> RateLimitResult:
    """
    Record one request for ``identifier`` and report whether it is allowed.

    Fails open: if the store errors, the request is allowed and
    ``remaining``/``reset`` are reported as -1.
    """
    key = f"{prefix}:{identifier}"
    now = time.time()
    window_start = now - window
    store = store if store is not None else get_store()

    try:
        timestamps = [t for t in store.get(key) if t > window_start]

        if len(timestamps) >= max_requests:
            return RateLimitResult(
                success=False,
                remaining=0,
                reset=max(0, math.ceil(timestamps[0] - window_start)),
            )

        timestamps.append(now)
        store.set(key, timestamps, window)

        return RateLimitResult(success=True, remaining=max_requests - len(timestamps), reset=window)

    except Exception as e:
        logger.error(f"❌ Rate limit error for {key}: {str(e)}")
        return RateLimitResult(success=True, remaining=-1, reset=-1)


def client_identifier(request: Request) -> str:
    """Client IP, honouring X-Forwarded-For"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def create_rate_limiter(
    max_requests: int = RATE_LIMIT_MAX_REQUESTS,
    window: int = RATE_LIMIT_WINDOW_SECONDS,
    prefix: str = "rate-limit",
):
    """
    Create a rate limiter dependency with specific parameters

    Example usage:
        enrollment_limit = create_rate_limiter(max_requests=5, window=60, prefix="enrollment-invoice")

        @router.post("/enrollments")
        async def create_enrollment_invoice(..., _: None = Depends(enrollment_limit)):
            ...
    """

    async def rate_limiter(request: Request):
        result = rate_limit(client_identifier(request), max_requests, window, prefix)
        if not result.success:
            logger.warning(f"🚫 Rate limit exceeded for {prefix}:{client_identifier(request)}")
            raise HTTPException(
                status_code=429,
                detail={
                    "message": f"Rate limit exceeded. Try again in {result.reset} seconds",
                    "retry_after": result.reset,
                },
                headers={"Retry-After": str(result.reset)},
            )
        request.state.rate_limit_remaining = result.remaining

    return rate_limiter
