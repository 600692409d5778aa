"""User model - identity record for password and Apple sign-in.

Either password_hash or provider_id must be set (see ``AuthMethod``).
"""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from starter_auth.core.account_kinds import AuthMethod, auth_method_from_columns
from starter_auth.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from starter_auth.models.session import Session

_CASCADE_ALL_DELETE_ORPHAN = "all, delete-orphan"


def _new_user_id() -> str:
    return str(uuid.uuid4())


class User(Base, TimestampMixin):
    """User account for authentication.

    Attributes:
        id: Opaque string primary key (UUID4 text).
        email: Unique email address, stored lower-case and trimmed.
        password_hash: PBKDF2 digest. NULL for Apple-only users.
        name: Display name (from signup or Apple's first-login payload).
        provider_id: Apple subject identifier. NULL for password-only users.
        is_admin: Whether the user has admin privileges. Defaults to False.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "password_hash IS NOT NULL OR provider_id IS NOT NULL",
            name="ck_users_has_auth_method",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=_new_user_id,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    provider_id: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
    )
    is_admin: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )

    # Relationships
    sessions: Mapped[list["Session"]] = relationship(
        "Session",
        back_populates="user",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        passive_deletes=True,
    )

    @property
    def auth_method(self) -> AuthMethod:
        """Sign-in methods available to this account."""
        return auth_method_from_columns(self.password_hash, self.provider_id)
