"""FastAPI application for the consensus oracle.

``create_app`` builds an app around a ``ConsensusEngine``; tests pass an
engine wired to scripted providers. The module-level ``app`` is what
``uvicorn consensus_oracle.api.app:app`` serves.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from consensus_oracle import __version__
from consensus_oracle.api.auth import AuthConfig
from consensus_oracle.api.rate_limit import install_rate_limiting, rate_limited
from consensus_oracle.api.routers import oracle
from consensus_oracle.config import OracleSettings
from consensus_oracle.consensus import ConsensusEngine
from consensus_oracle.errors import OracleError
from consensus_oracle.logging import generate_request_id, get_logger, log_exception, set_request_id

logger = get_logger(__name__)

API_PREFIX = "/api"

_HTTP_ERROR_KINDS = {401: "Unauthorized", 403: "Forbidden", 404: "NotFound", 405: "MethodNotAllowed"}


def _cors_origins(settings: OracleSettings) -> list[str]:
    if not settings.is_production:
        # Development: allow all origins (local dashboards, notebooks)
        return ["*"]
    if not settings.cors_allowed_origins:
        logger.warning(
            "CORS_ALLOWED_ORIGINS not set in production mode. "
            "Cross-origin browser requests will be rejected."
        )
    return list(settings.cors_allowed_origins)


def _request_id_headers(request: Request) -> dict[str, str]:
    request_id = getattr(request.state, "request_id", None)
    return {"X-Request-ID": request_id} if request_id else {}


async def oracle_error_handler(request: Request, exc: OracleError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s on %s: %s", exc.kind, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return JSONResponse(
        status_code=400,
        content={"error": "InvalidInput", "detail": "; ".join(problems) or "Invalid request"},
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": _HTTP_ERROR_KINDS.get(exc.status_code, "HTTPError"), "detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log_exception(logger, exc, {"path": request.url.path})
    return JSONResponse(
        status_code=500,
        content={"error": "InternalError", "detail": "Internal server error"},
        headers=_request_id_headers(request),
    )


@rate_limited
async def root(request: Request) -> dict[str, Any]:
    return {
        "message": "Consensus Oracle API",
        "status": "running",
        "timestamp": datetime.now(UTC).isoformat(),
    }


def create_app(
    engine: ConsensusEngine | None = None,
    settings: OracleSettings | None = None,
) -> FastAPI:
    """Build the API around ``engine`` (or one built from ``settings``)."""
    if settings is None:
        from consensus_oracle.config import settings as _settings

        settings = _settings
    owns_engine = engine is None
    if engine is None:
        engine = ConsensusEngine(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Consensus oracle API started (providers=%s, env=%s)",
            ", ".join(spec.name for spec in engine.roster),
            settings.environment,
        )
        try:
            yield
        finally:
            if owns_engine:
                await engine.aclose()
            logger.info("Consensus oracle API stopped")

    app = FastAPI(
        title="Consensus Oracle API",
        description="Multi-LLM consensus verdicts for binary prediction-market questions",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.state.settings = settings
    app.state.auth_config = AuthConfig(settings)

    # Rate limiting: every route carries @rate_limited, keyed by client IP
    install_rate_limiting(app, settings.rate_limit)

    origins = _cors_origins(settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,  # No credentials with wildcard origins
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=3600,
    )

    # Registered last so it wraps CORS responses too
    @app.middleware("http")
    async def add_request_id(request: Request, call_next: Any) -> Any:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        request.state.request_id = request_id
        set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            set_request_id(None)
        response.headers["X-Request-ID"] = request_id
        return response

    app.add_exception_handler(OracleError, oracle_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.add_api_route("/", root, methods=["GET"])
    app.include_router(oracle.router, prefix=API_PREFIX)
    return app


app = create_app()
