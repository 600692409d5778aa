"""Rate limiting configuration using slowapi.

Security: Throttles credential guessing and sign-in abuse on the
unauthenticated auth endpoints. Keys on the client IP because these
endpoints run before a session exists.

Usage in routers:
    from starter_auth.core.rate_limiting import limiter

    @router.post("/login")
    @limiter.limit("10/15minute")
    async def login(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from starter_auth.core.config import settings
from starter_auth.core.errors import RateLimitError
from starter_auth.core.responses import error_json_response

# In-memory counters; a multi-instance deployment needs shared storage
# (RATELIMIT_STORAGE_URL)
limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.rate_limit_enabled,
)

# Used when the exceeded limit does not expose its window
_DEFAULT_RETRY_AFTER_SECONDS = 60


def _retry_after_seconds(exc: RateLimitExceeded) -> int:
    """Length of the exceeded limit's window, e.g. 900 for "10/15minute"."""
    try:
        return int(exc.limit.limit.get_expiry())
    except AttributeError:
        return _DEFAULT_RETRY_AFTER_SECONDS


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Render a slowapi RateLimitExceeded as a 429 RATE_LIMITED envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and a Retry-After header.
    """
    response = error_json_response(
        RateLimitError(f"Rate limit exceeded: {exc.detail}")
    )
    response.headers["Retry-After"] = str(_retry_after_seconds(exc))
    return response
