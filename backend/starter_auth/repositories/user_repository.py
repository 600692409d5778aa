"""Repository for User CRUD operations.

Provides database access for the users table. Emails are normalized
(trimmed, lower-cased) on every write and lookup.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from starter_auth.core.account_kinds import (
    AuthMethod,
    auth_method_columns,
    link_provider,
)
from starter_auth.models.user import User


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookups."""
    return email.strip().lower()


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static with no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: str) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: Opaque user id.

        Returns:
            User if found, None otherwise.
        """
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.email == normalize_email(email))
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        auth_method: AuthMethod,
        name: str | None = None,
    ) -> User:
        """Create a new user.

        Email is normalized before storage.

        Args:
            db: Async database session.
            email: User email address.
            auth_method: Password digest and/or provider id.
            name: Display name.

        Returns:
            Created User with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If email or provider id already exists.
        """
        password_hash, provider_id = auth_method_columns(auth_method)
        user = User(
            email=normalize_email(email),
            password_hash=password_hash,
            provider_id=provider_id,
            name=name or None,
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def link_provider(
        db: AsyncSession, user_id: str, provider_id: str
    ) -> User | None:
        """Attach a provider id to an existing user.

        A provider id that is already set is left untouched.

        Args:
            db: Async database session.
            user_id: Id of the user to update.
            provider_id: Apple subject identifier.

        Returns:
            Updated User if found, None if user does not exist.

        Raises:
            sqlalchemy.exc.IntegrityError: If the provider id belongs to
                another user.
        """
        user = await db.get(User, user_id)
        if user is None:
            return None

        _, user.provider_id = auth_method_columns(
            link_provider(user.auth_method, provider_id)
        )
        await db.flush()
        await db.refresh(user)
        return user
