"""Authentication endpoints for password-based auth and sessions.

POST /auth/signup, POST /auth/login, POST /auth/logout, GET /auth/me.

Security considerations:
- login: one generic 401 for unknown email and wrong password
- signup: 409 on duplicate email, PBKDF2 digest, session issued immediately
- logout: always succeeds, revokes the presented session if any
"""

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from starter_auth.api.deps import Auth, DbSession, SessionId
from starter_auth.core.auth import clear_session_cookie, set_session_cookie
from starter_auth.core.rate_limiting import limiter
from starter_auth.core.responses import (
    CurrentUserInfo,
    MeResponse,
    PublicUser,
    SuccessResponse,
    UserResponse,
)
from starter_auth.models import User

router = APIRouter()


# ===================================================================
# Request models
# ===================================================================


class SignupRequest(BaseModel):
    """Request body for POST /auth/signup."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: str | None = Field(None, max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


def _public_user(user: User) -> PublicUser:
    return PublicUser(id=user.id, email=user.email, name=user.name)


# ===================================================================
# POST /auth/signup
# ===================================================================


@router.post("/signup")
@limiter.limit("10/hour")
async def signup(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: SignupRequest,
    response: Response,
    auth: Auth,
    db: DbSession,
) -> UserResponse:
    """Create a password account and sign it in.

    Rate limit: 10 per hour per IP.
    """
    user, session_id = await auth.register(body.email, body.password, body.name)
    await db.commit()

    set_session_cookie(response, session_id)
    return UserResponse(user=_public_user(user))


# ===================================================================
# POST /auth/login
# ===================================================================


@router.post("/login")
@limiter.limit("10/15minute")
async def login(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: LoginRequest,
    response: Response,
    auth: Auth,
    db: DbSession,
) -> UserResponse:
    """Verify email + password and issue a session cookie.

    Rate limit: 10 per 15 minutes per IP.
    """
    user, session_id = await auth.login(body.email, body.password)
    await db.commit()

    set_session_cookie(response, session_id)
    return UserResponse(user=_public_user(user))


# ===================================================================
# POST /auth/logout
# ===================================================================


@router.post("/logout")
async def logout(
    response: Response,
    session_id: SessionId,
    auth: Auth,
    db: DbSession,
) -> SuccessResponse:
    """Revoke the current session (if any) and clear the cookie."""
    await auth.logout(session_id)
    await db.commit()

    clear_session_cookie(response)
    return SuccessResponse()


# ===================================================================
# GET /auth/me
# ===================================================================


@router.get("/me")
async def me(
    response: Response,
    session_id: SessionId,
    auth: Auth,
    db: DbSession,
) -> MeResponse:
    """Return the signed-in user, or ``{"user": null}``.

    A cookie that no longer maps to a live session is cleared.
    """
    if not session_id:
        return MeResponse(user=None)

    user = await auth.current_user(session_id)
    await db.commit()

    if user is None:
        clear_session_cookie(response)
        return MeResponse(user=None)

    return MeResponse(
        user=CurrentUserInfo(
            id=user.id,
            email=user.email,
            name=user.name,
            is_admin=user.is_admin,
        )
    )
