"""Fixed-window rate limiting backed by Redis.

One counter per client per minute:
    key = "ratelimit:{client}:{epoch_minute}"
    INCR, EXPIRE 60 on first hit, reject once the count exceeds the limit.

The client is the bearer token when present (one front end serves many
users behind one IP), otherwise the first X-Forwarded-For hop or the peer
address. RATE_LIMIT_PER_MINUTE=0 disables the middleware.

Errors raised inside BaseHTTPMiddleware bypass the AppError handler, so the
429 envelope is built here directly.
"""

import hashlib
import logging
import time

from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from config.settings import settings
from src.amm_common.errors import RateLimitError
from src.amm_common.redis_client import get_redis
from src.amm_common.response import error_response

logger = logging.getLogger(__name__)

_EXEMPT_PATHS = {"/health", "/docs", "/openapi.json"}
_WINDOW_SECONDS = 60


def client_key(request: Request) -> str:
    auth = request.headers.get("authorization")
    if auth:
        return "tok:" + hashlib.sha256(auth.encode()).hexdigest()[:16]
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return "ip:" + forwarded.split(",")[0].strip()
    return "ip:" + (request.client.host if request.client else "unknown")


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        limit = settings.RATE_LIMIT_PER_MINUTE
        if limit <= 0 or request.url.path in _EXEMPT_PATHS:
            return await call_next(request)

        window = int(time.time()) // _WINDOW_SECONDS
        key = f"ratelimit:{client_key(request)}:{window}"
        try:
            redis = await get_redis()
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, _WINDOW_SECONDS)
        except RedisError:
            # Fail open when Redis is unreachable
            logger.warning("Rate limiter unavailable, allowing %s", request.url.path, exc_info=True)
            return await call_next(request)

        if count > limit:
            err = RateLimitError()
            retry_after = _WINDOW_SECONDS - int(time.time()) % _WINDOW_SECONDS
            return JSONResponse(
                status_code=err.http_status,
                content=error_response(err.code, err.message).model_dump(),
                headers={"Retry-After": str(retry_after)},
            )
        return await call_next(request)
