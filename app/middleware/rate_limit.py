from __future__ import annotations

from typing import Iterable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import TRUSTED_PROXIES
from app.core.rate_limiter import InMemoryRateLimiterService, RateLimiterService

DEFAULT_PROTECTED_PATHS = ("/api/coupons/validate",)


class CouponRateLimitMiddleware(BaseHTTPMiddleware):
    """Throttle code guessing on the public coupon endpoints, per client IP.

    ``X-Forwarded-For`` is only honoured when the connecting peer is one of
    ``trusted_proxies``; otherwise the socket address is the key.
    """

    def __init__(
        self,
        app,
        *,
        rate_limiter: RateLimiterService | None = None,
        protected_paths: Iterable[str] = DEFAULT_PROTECTED_PATHS,
        trusted_proxies: Iterable[str] = TRUSTED_PROXIES,
    ) -> None:
        super().__init__(app)
        self._rate_limiter = rate_limiter or InMemoryRateLimiterService()
        self._protected_paths = frozenset(protected_paths)
        self._trusted_proxies = frozenset(trusted_proxies)

    async def dispatch(self, request: Request, call_next):
        endpoint = request.url.path
        if endpoint not in self._protected_paths:
            return await call_next(request)

        decision = self._rate_limiter.check(
            client_key=client_key(request, self._trusted_proxies),
            endpoint=endpoint,
        )
        if not decision.allowed:
            return JSONResponse(
                status_code=429,
                content={"error": "Too many requests"},
                headers={
                    "Retry-After": str(decision.retry_after_seconds),
                    "X-RateLimit-Limit": str(decision.limit),
                    "X-RateLimit-Remaining": str(decision.remaining),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(decision.limit)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return response


def client_key(request: Request, trusted_proxies: frozenset[str] = frozenset()) -> str:
    peer = request.client.host if request.client is not None else "unknown"
    if peer not in trusted_proxies:
        return peer

    forwarded = request.headers.get("X-Forwarded-For", "")
    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    # Rightmost hop not added by one of our own proxies
    for hop in reversed(hops):
        if hop not in trusted_proxies:
            return hop
    return peer
