"""Repository for Session rows."""

from datetime import datetime

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from starter_auth.models.session import Session


class SessionRepository:
    """Stateless repository for Session table operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        session_id: str,
        user_id: str,
        expires_at: datetime,
    ) -> Session:
        """Insert a session row.

        Raises:
            sqlalchemy.exc.IntegrityError: If user_id does not reference a user.
        """
        session = Session(id=session_id, user_id=user_id, expires_at=expires_at)
        db.add(session)
        await db.flush()
        return session

    @staticmethod
    async def get_by_id(db: AsyncSession, session_id: str) -> Session | None:
        """Fetch a session by its token."""
        return await db.get(Session, session_id)

    @staticmethod
    async def delete(db: AsyncSession, session_id: str) -> bool:
        """Delete a session row.

        Returns:
            True if a row was deleted, False if it was already gone.
        """
        result = await db.execute(delete(Session).where(Session.id == session_id))
        await db.flush()
        return bool(result.rowcount)
