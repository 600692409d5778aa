"""Response envelope models.

Success bodies for the auth endpoints use the ``{"user": ...}`` shape the
frontend consumes; every error uses the ``{"error": {...}}`` envelope.
"""

from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import JSONResponse

from starter_auth.core.errors import APIError


class PublicUser(BaseModel):
    """User fields safe to return to the browser.

    Attributes:
        id: Opaque user identifier.
        email: Normalized email address.
        name: Display name, if known.
    """

    id: str
    email: str
    name: str | None = None


class CurrentUserInfo(PublicUser):
    """PublicUser plus the admin flag, returned by GET /auth/me."""

    model_config = ConfigDict(populate_by_name=True)

    is_admin: bool = Field(default=False, alias="isAdmin")


class UserResponse(BaseModel):
    """Envelope for signup and login.

    Usage:
        return UserResponse(user=PublicUser(id=..., email=..., name=...))
    """

    user: PublicUser


class MeResponse(BaseModel):
    """Envelope for GET /auth/me; ``user`` is None when signed out."""

    user: CurrentUserInfo | None


class SuccessResponse(BaseModel):
    """Envelope for endpoints that only report success (logout)."""

    success: bool = True


class ErrorDetail(BaseModel):
    """Error detail for response body.

    Attributes:
        code: Machine-readable error code (e.g., "UNAUTHORIZED").
        message: Human-readable error message.
        details: Optional list of field-level errors (for validation).
    """

    code: str
    message: str
    details: list[dict] | None = None


class ErrorResponse(BaseModel):
    """Standard error response envelope.

    Usage in exception handlers:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=ErrorDetail(code=exc.code, message=exc.message)
            ).model_dump(),
        )
    """

    error: ErrorDetail


def error_json_response(exc: APIError) -> JSONResponse:
    """Render an APIError as the standard error envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=exc.code,
                message=exc.message,
                details=exc.details,
            )
        ).model_dump(),
    )
