"""Shared dependencies for API endpoints.

Builds request-scoped services on top of the injected record store and
resolves the session cookie to the current user. The hasher and Apple
client are read from ``app.state``, where create_app() put them.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from starter_auth.core.apple_signin import ExternalSigninClient
from starter_auth.core.config import settings
from starter_auth.core.database import get_db
from starter_auth.core.errors import AuthenticationError
from starter_auth.core.passwords import PasswordHasher
from starter_auth.models import User
from starter_auth.services.auth_service import AuthService


def get_password_hasher(request: Request) -> PasswordHasher:
    """Password hasher built once at startup."""
    hasher: PasswordHasher = request.app.state.password_hasher
    return hasher


def get_signin_client(request: Request) -> ExternalSigninClient:
    """Apple sign-in client built once at startup."""
    client: ExternalSigninClient = request.app.state.signin_client
    return client


def get_auth_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    hasher: Annotated[PasswordHasher, Depends(get_password_hasher)],
    signin_client: Annotated[ExternalSigninClient, Depends(get_signin_client)],
) -> AuthService:
    """AuthService bound to this request's database session."""
    return AuthService(db, hasher=hasher, signin_client=signin_client)


def get_session_id(request: Request) -> str | None:
    """Session token from the session cookie, if present."""
    return request.cookies.get(settings.session_cookie_name) or None


async def require_auth(
    session_id: Annotated[str | None, Depends(get_session_id)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Require a valid session for the current request.

    Usage:
        @router.get("/private")
        async def private(user: CurrentUser) -> ...:

    Raises:
        AuthenticationError: 401 if no cookie or the session is invalid/expired.
    """
    if not session_id:
        raise AuthenticationError("Not authenticated")

    user = await auth.current_user(session_id)
    if user is None:
        # Persist the lazy delete of an expired row before the 401 rolls back
        await db.commit()
        raise AuthenticationError("Session expired")
    return user


# Reusable type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
Auth = Annotated[AuthService, Depends(get_auth_service)]
SessionId = Annotated[str | None, Depends(get_session_id)]
CurrentUser = Annotated[User, Depends(require_auth)]
