"""
Rate Limiting Middleware
Throttles money-moving endpoints per client
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque, Dict, Optional, Tuple
import threading
import time
import logging

logger = logging.getLogger(__name__)

# Route prefix -> (max requests, window in seconds). Longest prefix wins.
ROUTE_LIMITS: Dict[str, Tuple[int, int]] = {
    '/api/v1/settlement/receipts': (30, 60),
    '/api/v1/settlement/payments': (30, 60),
    '/api/v1/settlement/advances': (30, 60),
    '/api/v1/settlement/refunds': (10, 60),
    '/api/v1/settlement/transfers': (10, 60),
    '/api/v1/settlement/entity-transactions': (20, 60),
    '/api/v1/ledger/recalculate-outstanding': (2, 300),
}
DEFAULT_LIMIT: Tuple[int, int] = (100, 60)


@dataclass
class RateLimitInfo:
    limit: int
    remaining: int
    reset: int
    retry_after: Optional[int] = None

    def headers(self) -> Dict[str, str]:
        headers = {
            'X-RateLimit-Limit': str(self.limit),
            'X-RateLimit-Remaining': str(self.remaining),
            'X-RateLimit-Reset': str(self.reset),
        }
        if self.retry_after is not None:
            headers['Retry-After'] = str(self.retry_after)
        return headers


class RateLimiter:
    """
    Sliding-window limiter kept in process memory.

    Requests are bucketed by the matched route prefix and the client address,
    so /payments/7/reverse and /payments/8/reverse share one budget.
    Reads are never throttled.
    """

    def __init__(self, limits: Optional[Dict[str, Tuple[int, int]]] = None,
                 default: Tuple[int, int] = DEFAULT_LIMIT):
        self.limits = dict(ROUTE_LIMITS if limits is None else limits)
        self.default = default
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    @staticmethod
    def client_address(request: Request) -> str:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip
        return request.client.host if request.client else "unknown"

    def match(self, path: str) -> Tuple[str, int, int]:
        """Bucket name and (limit, window) for a request path"""
        best = None
        for prefix in self.limits:
            if path.startswith(prefix) and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is None:
            return path, self.default[0], self.default[1]
        limit, window = self.limits[best]
        return best, limit, window

    def check(self, request: Request) -> Tuple[bool, Optional[RateLimitInfo]]:
        """Record the request if it fits its window; report the budget either way"""
        if request.method in ('GET', 'HEAD', 'OPTIONS'):
            return True, None

        bucket, limit, window = self.match(request.url.path)
        key = f"{bucket}:{self.client_address(request)}"
        now = time.monotonic()

        with self._lock:
            hits = self._hits[key]
            while hits and hits[0] <= now - window:
                hits.popleft()

            if len(hits) >= limit:
                retry_after = max(1, int(hits[0] + window - now))
                logger.warning(f"Rate limit exceeded for {key}: {len(hits)}/{limit} in {window}s")
                return False, RateLimitInfo(limit, 0, retry_after, retry_after)

            hits.append(now)
            return True, RateLimitInfo(limit, limit - len(hits), window)


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, rate_limiter: Optional[RateLimiter] = None):
        super().__init__(app)
        self.rate_limiter = rate_limiter or RateLimiter()

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith('/api/'):
            return await call_next(request)

        allowed, info = self.rate_limiter.check(request)
        if not allowed:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    'detail': 'Too many requests. Please try again later.',
                    'retry_after': info.retry_after
                },
                headers=info.headers()
            )

        response = await call_next(request)
        if info:
            response.headers.update(info.headers())
        return response
