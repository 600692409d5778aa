"""Sign in with Apple endpoints.

GET /auth/apple redirects to Apple with a CSRF state cookie.
POST /auth/apple/callback receives Apple's form_post, validates state,
exchanges the code, finds or creates the user, and sets the session cookie.
"""

import logging

from fastapi import APIRouter, Form, Request
from fastapi.responses import RedirectResponse
from starlette.responses import Response

from starter_auth.api.deps import Auth, DbSession
from starter_auth.core.auth import (
    OAUTH_STATE_COOKIE,
    clear_oauth_state_cookie,
    set_oauth_state_cookie,
    set_session_cookie,
)
from starter_auth.core.config import settings
from starter_auth.core.errors import APIError
from starter_auth.core.rate_limiting import limiter
from starter_auth.core.responses import error_json_response

logger = logging.getLogger(__name__)

router = APIRouter()

# Where the browser lands after a successful sign-in
_SUCCESS_REDIRECT = "/"


# ===================================================================
# GET /auth/apple (initiation)
# ===================================================================


@router.get("/apple")
@limiter.limit("20/hour")
async def apple_initiate(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    auth: Auth,
) -> Response:
    """Redirect to Apple's authorization page with CSRF state protection.

    Rate limit: 20 per hour per IP.
    """
    auth_url, state = auth.start_apple_signin(settings.apple_redirect_uri)

    redirect = RedirectResponse(url=auth_url, status_code=302)
    set_oauth_state_cookie(redirect, state)
    return redirect


# ===================================================================
# POST /auth/apple/callback (form_post callback)
# ===================================================================


@router.post("/apple/callback")
@limiter.limit("20/hour")
async def apple_callback(
    request: Request,
    auth: Auth,
    db: DbSession,
    code: str | None = Form(None),
    state: str | None = Form(None),
    id_token: str | None = Form(None),
    user: str | None = Form(None),
) -> Response:
    """Handle Apple's callback after user consent.

    The state cookie is single-use: it is cleared on every outcome.
    Rate limit: 20 per hour per IP.
    """
    stored_state = request.cookies.get(OAUTH_STATE_COOKIE)

    try:
        account, session_id = await auth.complete_apple_signin(
            code=code,
            state=state,
            stored_state=stored_state,
            redirect_uri=settings.apple_redirect_uri,
            id_token=id_token,
            user_json=user,
        )
        await db.commit()
    except APIError as exc:
        await db.rollback()
        logger.warning(
            "Apple sign-in rejected",
            extra={"code": exc.code, "status_code": exc.status_code},
        )
        failure = error_json_response(exc)
        clear_oauth_state_cookie(failure)
        return failure

    redirect = RedirectResponse(url=_SUCCESS_REDIRECT, status_code=302)
    set_session_cookie(redirect, session_id)
    clear_oauth_state_cookie(redirect)
    logger.info("Apple sign-in completed", extra={"user_id": account.id})
    return redirect
