"""Session manager: server-side session lifecycle.

Sessions are opaque random tokens persisted in the sessions table. Expiry
is lazy: a session is checked only when presented, and an expired row is
deleted at that moment. There is no background sweep.
"""

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from starter_auth.core.config import SESSION_MAX_AGE_SECONDS
from starter_auth.models.base import as_utc, utcnow
from starter_auth.models.user import User
from starter_auth.repositories.session_repository import SessionRepository
from starter_auth.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

SESSION_LIFETIME = timedelta(seconds=SESSION_MAX_AGE_SECONDS)

# 32 random bytes -> 43 url-safe characters (256 bits of entropy)
_TOKEN_BYTES = 32


class SessionManager:
    """Creates, validates, and revokes session tokens.

    Args:
        db: Async database session for the current request.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db = db
        self._clock = clock

    async def create(self, user_id: str) -> str:
        """Start a session for a user.

        Args:
            user_id: Id of an existing user.

        Returns:
            New session token (the cookie value).
        """
        session_id = secrets.token_urlsafe(_TOKEN_BYTES)
        await SessionRepository.create(
            self._db,
            session_id=session_id,
            user_id=user_id,
            expires_at=self._clock() + SESSION_LIFETIME,
        )
        logger.info("Session created", extra={"user_id": user_id})
        return session_id

    async def validate(self, session_id: str) -> User | None:
        """Resolve a session token to its user.

        Expired sessions are deleted and treated as absent.

        Args:
            session_id: Token from the session cookie.

        Returns:
            Owning User, or None if the session is absent or expired.
        """
        session = await SessionRepository.get_by_id(self._db, session_id)
        if session is None:
            return None

        user_id = session.user_id
        if as_utc(session.expires_at) < self._clock():
            await SessionRepository.delete(self._db, session_id)
            logger.info("Expired session removed", extra={"user_id": user_id})
            return None

        return await UserRepository.get_by_id(self._db, user_id)

    async def revoke(self, session_id: str) -> None:
        """End a session. Idempotent."""
        await SessionRepository.delete(self._db, session_id)
