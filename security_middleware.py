"""
🛡️ Security Middleware - token-bucket rate limiting and API security headers
v2.0 - Chat, API and login limiters with independent buckets
"""
import hmac
import time
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional
from threading import RLock

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

import config

logger = logging.getLogger("COURSE_BOT_MIDDLEWARE")

# =============================================================================
# RATE LIMITER
# =============================================================================


class _Bucket:
    __slots__ = ("tokens", "updated_at")

    def __init__(self, tokens: float, updated_at: float):
        self.tokens = tokens
        self.updated_at = updated_at


class TokenBucketLimiter:
    """
    Per-key token bucket.

    Each key starts with a full bucket of ``points`` tokens that refills
    continuously at ``points / duration_seconds`` tokens per second.
    ``try_consume`` never blocks: an empty bucket simply denies the attempt.
    """

    def __init__(self, name: str, points: int, duration_seconds: float,
                 clock: Callable[[], float] = time.monotonic, enabled: bool = True):
        if points <= 0 or duration_seconds <= 0:
            raise ValueError("points and duration_seconds must be positive")
        self.name = name
        self.points = points
        self.duration_seconds = duration_seconds
        self.enabled = enabled
        self._refill_rate = points / duration_seconds
        self._clock = clock
        self._buckets: Dict[str, _Bucket] = {}
        self._lock = RLock()

    def _refill(self, key: str, now: float) -> _Bucket:
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = _Bucket(float(self.points), now)
            self._buckets[key] = bucket
            return bucket

        elapsed = max(0.0, now - bucket.updated_at)
        bucket.tokens = min(float(self.points), bucket.tokens + elapsed * self._refill_rate)
        bucket.updated_at = now
        return bucket

    def try_consume(self, key) -> bool:
        """Take one token for ``key``; False when the bucket is empty."""
        if not self.enabled:
            return True

        key = str(key)
        with self._lock:
            bucket = self._refill(key, self._clock())
            if bucket.tokens < 1.0:
                logger.warning(f"🔐 [{self.name}] rate limit exceeded for {key}")
                return False
            bucket.tokens -= 1.0
            return True

    def remaining(self, key) -> int:
        """Whole tokens currently available for ``key``."""
        with self._lock:
            return int(self._refill(str(key), self._clock()).tokens)

    def reset(self, key) -> None:
        with self._lock:
            self._buckets.pop(str(key), None)

    def retry_after(self, key) -> int:
        """Seconds until one token is available again."""
        with self._lock:
            bucket = self._refill(str(key), self._clock())
            missing = max(0.0, 1.0 - bucket.tokens)
            return int(missing / self._refill_rate) + (1 if missing else 0)

    def get_stats(self) -> Dict:
        with self._lock:
            return {
                "name": self.name,
                "tracked_keys": len(self._buckets),
                "points": self.points,
                "duration_seconds": self.duration_seconds,
                "enabled": self.enabled,
            }


@dataclass
class RateLimiters:
    """Independent limiters; a chat id never shares a bucket with an API caller."""
    chat: TokenBucketLimiter
    api: TokenBucketLimiter
    login: TokenBucketLimiter


def build_rate_limiters(clock: Callable[[], float] = time.monotonic) -> RateLimiters:
    """Create the chat / api / login limiters from configuration."""
    enabled = config.RATE_LIMIT_ENABLED
    return RateLimiters(
        chat=TokenBucketLimiter("chat", config.RATE_LIMIT_CHAT_POINTS,
                                config.RATE_LIMIT_CHAT_DURATION, clock, enabled),
        api=TokenBucketLimiter("api", config.RATE_LIMIT_API_POINTS,
                               config.RATE_LIMIT_API_DURATION, clock, enabled),
        login=TokenBucketLimiter("login", config.RATE_LIMIT_LOGIN_POINTS,
                                 config.RATE_LIMIT_LOGIN_DURATION, clock, enabled),
    )

# =============================================================================
# SECURITY HEADERS
# =============================================================================

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}

# =============================================================================
# MIDDLEWARE FUNCTIONS
# =============================================================================

RATE_LIMIT_EXEMPT_PATHS = ("/health", "/docs", "/redoc", "/openapi.json")


def get_caller_identity(request: Request) -> str:
    """Admin id when the caller identifies itself, otherwise the client IP."""
    admin_id = request.headers.get("X-Admin-Id", "").strip()
    if admin_id.isascii() and admin_id.isdigit():
        return f"user_{admin_id}"
    return get_client_ip(request)


def get_client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer."""
    client_ip = request.headers.get("X-Forwarded-For", "")
    if not client_ip:
        client_ip = request.client.host if request.client else "unknown"
    if "," in client_ip:
        client_ip = client_ip.split(",")[0].strip()
    return client_ip


def make_rate_limit_middleware(limiter: TokenBucketLimiter):
    """Build an HTTP middleware that answers 429 once ``limiter`` runs dry."""

    async def rate_limit_middleware(request: Request, call_next):
        if request.url.path in RATE_LIMIT_EXEMPT_PATHS:
            return await call_next(request)

        identity = get_caller_identity(request)

        if not limiter.try_consume(identity):
            return JSONResponse(
                status_code=429,
                content={"message": "Too many requests, please try again later"},
                headers={"Retry-After": str(limiter.retry_after(identity))},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limiter.points)
        response.headers["X-RateLimit-Remaining"] = str(limiter.remaining(identity))
        return response

    return rate_limit_middleware


def make_api_key_dependency(login_limiter: TokenBucketLimiter):
    """
    Build a FastAPI dependency checking ``Authorization: Bearer <ADMIN_API_KEY>``.

    Failed attempts drain ``login_limiter`` per client address; once it is
    empty the caller gets 429 until it refills. With no key configured the
    check is skipped.
    """

    async def verify_api_key(request: Request) -> Optional[str]:
        expected = config.ADMIN_API_KEY
        if not expected:
            return None

        source = get_client_ip(request)
        if login_limiter.remaining(source) <= 0:
            logger.warning(f"⚠️ Admin API locked out for {source}")
            raise HTTPException(status_code=429, detail="Too many failed attempts",
                                headers={"Retry-After": str(login_limiter.retry_after(source))})

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            login_limiter.try_consume(source)
            logger.warning(f"⚠️ API key missing from {source}")
            raise HTTPException(status_code=401, detail="Missing API key")

        api_key = auth_header[len("Bearer "):]
        if not hmac.compare_digest(api_key.encode(), expected.encode()):
            login_limiter.try_consume(source)
            logger.warning(f"⚠️ Invalid API key from {source}")
            raise HTTPException(status_code=401, detail="Invalid API key")

        return api_key

    return verify_api_key


async def security_headers_middleware(request: Request, call_next):
    """Add security headers to responses"""
    response = await call_next(request)

    for header, value in SECURITY_HEADERS.items():
        response.headers[header] = value

    return response
