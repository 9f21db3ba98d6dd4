import math
import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse
import structlog

from turnstile.core.errors import RateLimitCheckError

logger = structlog.get_logger()

HEADER_API_KEY = "API_KEY"
HEADER_REMAINING = "X-RateLimit-Remaining"
MESSAGE_429 = (
    "you have reached the maximum number of requests or actions "
    "allowed within a certain time frame"
)
UNLIMITED_PATHS = frozenset({"/health"})


def extract_ip(request: Request) -> str:
    """Client address: first X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else ""


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Admission control in front of every route.

    A request carrying an API_KEY header is limited by token; any other
    request is limited by client IP. The token check replaces the IP check,
    it does not add to it.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in UNLIMITED_PATHS:
            return await call_next(request)

        limiter = getattr(request.app.state, "limiter", None)
        if limiter is None:
            logger.warning("middleware_uninitialized_skipping")
            return await call_next(request)

        token = request.headers.get(HEADER_API_KEY)
        if token:
            client_id = f"token:{token}"
            check = limiter.check_token(token)
        else:
            ip = extract_ip(request)
            if not ip:
                return JSONResponse(
                    status_code=400,
                    content={"error": "bad_request", "message": "Cannot determine IP address"},
                )
            client_id = f"ip:{ip}"
            check = limiter.check_ip(ip)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            client_id=client_id,
            path=request.url.path,
            method=request.method
        )

        try:
            status = await check
        except RateLimitCheckError as exc:
            logger.error("rate_limit_check_failed", step=exc.step, error=str(exc.__cause__))
            return JSONResponse(
                status_code=500,
                content={"error": "internal_error", "message": "Internal Server Error"},
            )

        if not status.allowed:
            retry_after = max(1, math.ceil((status.blocked_until or 0) - time.time()))
            logger.info("rate_limit_rejected", retry_after=retry_after)
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": MESSAGE_429,
                    "retry_after": retry_after,
                },
                headers={
                    HEADER_REMAINING: "0",
                    "Retry-After": str(retry_after),
                },
            )

        response = await call_next(request)
        response.headers[HEADER_REMAINING] = str(status.remaining_requests)
        return response
