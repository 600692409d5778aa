"""FastAPI application entry point.

Builds the auth API: record store, password hasher and Apple client on
``app.state``; security headers and CORS; exception handlers that render
every failure as the ``{"error": {...}}`` envelope; the /api/v1 routers
and a health probe.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from starter_auth.api.v1.router import router as v1_router
from starter_auth.core.apple_signin import ExternalSigninClient
from starter_auth.core.config import settings
from starter_auth.core.database import Database, create_database
from starter_auth.core.errors import APIError, ValidationError
from starter_auth.core.passwords import PasswordHasher
from starter_auth.core.rate_limiting import limiter, rate_limit_exceeded_handler
from starter_auth.core.responses import error_json_response

logger = structlog.get_logger()

# Sent on every response. The API serves JSON and redirects only, so
# nothing may frame it or load sub-resources from it.
_SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}

# Auth responses carry session cookies and user data
_NO_STORE = "no-store, max-age=0"

_HSTS = "max-age=31536000; includeSubDomains"


def configure_logging(level: str) -> None:
    """Apply LOG_LEVEL to stdlib loggers and structlog.

    The root handler is installed only if none exists yet; the package
    logger level is always set so a later call can change it.

    Args:
        level: Level name, e.g. "INFO".
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("starter_auth").setLevel(level)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level)
        ),
    )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses.

    Adds _SECURITY_HEADERS everywhere, Cache-Control: no-store under /api/,
    and Strict-Transport-Security in production (HTTPS terminates at the
    reverse proxy).
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)

        response.headers.update(_SECURITY_HEADERS)
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = _NO_STORE
        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = _HSTS

        return response


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Render a raised APIError with its own status and code."""
    return error_json_response(exc)


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors from FastAPI.

    Request bodies that fail schema validation are reported as 400
    VALIDATION_ERROR (not FastAPI's default 422), with one detail entry
    per failing field.

    Args:
        request: The incoming request.
        exc: The RequestValidationError from Pydantic.

    Returns:
        JSONResponse with VALIDATION_ERROR code and field-level details.
    """
    details = [
        {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    return error_json_response(
        ValidationError("Request validation failed", details=details)
    )


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions.

    The exception is logged server-side; the client only sees a generic
    500 INTERNAL_ERROR.
    """
    logger.exception("Unhandled exception", exc_info=exc, path=request.url.path)
    return error_json_response(APIError())


def create_app(
    *,
    database: Database | None = None,
    password_hasher: PasswordHasher | None = None,
    signin_client: ExternalSigninClient | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators default to instances built from settings; tests pass
    an in-memory database and a mocked Apple client.

    Args:
        database: Record store handle.
        password_hasher: Password hasher shared by all requests.
        signin_client: Apple sign-in client shared by all requests.

    Returns:
        Configured FastAPI application instance.
    """
    configure_logging(settings.log_level)
    database = database or create_database(settings.database_url)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        await database.dispose()

    app = FastAPI(
        title="Starter Auth API",
        version="1.0.0",
        description="Password and Sign in with Apple authentication",
        lifespan=lifespan,
    )

    app.state.database = database
    app.state.password_hasher = password_hasher or PasswordHasher()
    app.state.signin_client = signin_client or ExternalSigninClient.from_settings(
        settings
    )

    # Middleware order: Starlette uses LIFO, so the LAST added runs FIRST.
    # CORS must run first to handle preflight requests, so add it last.
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Accept"],
    )

    app.state.limiter = limiter
    for exc_class, handler in (
        (APIError, api_error_handler),
        (RequestValidationError, validation_error_handler),
        (RateLimitExceeded, rate_limit_exceeded_handler),
        (Exception, internal_error_handler),
    ):
        app.add_exception_handler(exc_class, handler)

    app.include_router(v1_router, prefix="/api/v1")

    @app.get("/health")
    def health_check() -> dict:
        """Health check endpoint for monitoring.

        Returns:
            {"status": "healthy"} if service is running.
        """
        return {"status": "healthy"}

    return app


# Create the application instance
# Used by uvicorn: uvicorn starter_auth.main:app
app = create_app()
