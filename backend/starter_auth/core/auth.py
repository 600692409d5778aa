"""Cookie helpers for the session and Apple OAuth state cookies.

Transport-only: the services return opaque tokens and these helpers put
them on (or take them off) the response.

Cookies:
- session: session id, 30 days
- apple_oauth_state: CSRF state for the Apple round trip, 10 minutes
"""

from starlette.responses import Response

from starter_auth.core.config import (
    OAUTH_STATE_MAX_AGE_SECONDS,
    SESSION_MAX_AGE_SECONDS,
    settings,
)

OAUTH_STATE_COOKIE = "apple_oauth_state"


def set_session_cookie(response: Response, session_id: str) -> None:
    """Set httpOnly session cookie on response.

    Security: httpOnly prevents XSS cookie theft. Secure flag and SameSite
    are configured via settings for environment-appropriate security.

    Args:
        response: Response object.
        session_id: Token returned by SessionManager.create().
    """
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session_id,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        path="/",
        max_age=SESSION_MAX_AGE_SECONDS,
    )


def clear_session_cookie(response: Response) -> None:
    """Expire the session cookie in the browser."""
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        secure=settings.session_cookie_secure,
        httponly=True,
        samesite=settings.session_cookie_samesite,
    )


def set_oauth_state_cookie(response: Response, state: str) -> None:
    """Store the CSRF state token for the Apple callback."""
    response.set_cookie(
        key=OAUTH_STATE_COOKIE,
        value=state,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
        max_age=OAUTH_STATE_MAX_AGE_SECONDS,
    )


def clear_oauth_state_cookie(response: Response) -> None:
    """Delete the CSRF state cookie (single use)."""
    response.delete_cookie(key=OAUTH_STATE_COOKIE, path="/")
