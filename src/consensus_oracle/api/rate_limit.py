"""Per-client rate limiting for the API routes.

One module-level ``limiter`` decorates every route. Each app built by
``create_app`` registers its own namespace, so its configured limit and its
counters stay separate from any other app in the process.
"""

import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from consensus_oracle.logging import get_logger

logger = get_logger(__name__)

DEFAULT_RATE_LIMIT = "100/15 minutes"

# namespace -> limit string, filled by install_rate_limiting()
_app_limits: dict[str, str] = {}


def client_key(request: Request) -> str:
    namespace = getattr(request.app.state, "rate_limit_namespace", "default")
    return f"{namespace}|{get_remote_address(request)}"


def configured_limit(key: str) -> str:
    """Limit string for the app encoded in ``key``."""
    namespace = key.split("|", 1)[0]
    return _app_limits.get(namespace, DEFAULT_RATE_LIMIT)


limiter = Limiter(key_func=client_key)

rate_limited = limiter.limit(configured_limit)


async def rate_limit_error_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(
        "Rate limit exceeded for %s on %s: %s",
        get_remote_address(request),
        request.url.path,
        exc.detail,
    )
    return JSONResponse(
        status_code=429,
        content={"error": "RateLimited", "detail": f"Rate limit exceeded: {exc.detail}"},
    )


def install_rate_limiting(app: FastAPI, rate_limit: str) -> None:
    """Attach the shared limiter to ``app`` with its own limit and counters."""
    namespace = uuid.uuid4().hex
    _app_limits[namespace] = rate_limit
    app.state.rate_limit_namespace = namespace
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_error_handler)
