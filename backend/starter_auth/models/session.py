"""Session model - server-side proof of authentication.

Rows are created on login and deleted on logout or when validation
finds them expired. Deleting a user cascades to its sessions.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from starter_auth.models.base import Base, utcnow

if TYPE_CHECKING:
    from starter_auth.models.user import User


class Session(Base):
    """Active login session.

    Attributes:
        id: Random opaque token (also the cookie value).
        user_id: FK to users table.
        expires_at: Absolute expiry. Past this the session is dead.
        created_at: Record creation timestamp.
    """

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="sessions")
