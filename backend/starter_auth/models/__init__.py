"""SQLAlchemy ORM models for starter-auth.

All models are exported from this module for convenient imports:
    from starter_auth.models import User, Session
"""

from starter_auth.models.base import Base, TimestampMixin
from starter_auth.models.session import Session
from starter_auth.models.user import User

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
    "Session",
]
