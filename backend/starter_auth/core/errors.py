"""API error classes.

Every business-rule failure in the auth subsystem is raised as one of
these typed errors. The machine-readable code and HTTP status live on the
class; the exception handlers in main.py render any of them as the
``{"error": {...}}`` envelope.

    raise ValidationError("Missing authorization code")
    raise ConflictError("EMAIL_ALREADY_EXISTS", "An account with this email already exists")
"""


class APIError(Exception):
    """Base class for API errors.

    Subclasses override ``code`` and ``status_code``. A bare APIError is an
    unexpected server error.

    Attributes:
        code: Machine-readable error code (e.g., "VALIDATION_ERROR").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        code: str | None = None,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details


class ValidationError(APIError):
    """Malformed or missing input (400).

    Raised for missing callback parameters and unparseable identity
    tokens; request-body violations are mapped to the same code.
    """

    code = "VALIDATION_ERROR"
    status_code = 400


class AuthenticationError(APIError):
    """Bad credentials or absent/expired session (401).

    Messages stay generic: callers never learn whether the account exists.
    """

    code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class ConflictError(APIError):
    """Duplicate or conflicting resource (409); the code names the conflict."""

    status_code = 409

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(message, code=code, details=details)


class CsrfError(APIError):
    """OAuth state missing or mismatched on the provider callback (400).

    Terminal: the sign-in round trip must be restarted from the beginning.
    """

    code = "CSRF_STATE_MISMATCH"
    status_code = 400

    def __init__(self, message: str = "Invalid state - possible CSRF attack") -> None:
        super().__init__(message)


class ExternalServiceError(APIError):
    """Identity provider failed or returned a non-2xx response (400).

    Attributes:
        provider_response: Raw response body from the provider, kept for
            logging and debugging.
    """

    code = "EXTERNAL_SERVICE_ERROR"
    status_code = 400

    def __init__(self, message: str, provider_response: str = "") -> None:
        super().__init__(message)
        self.provider_response = provider_response


class TokenValidationError(APIError):
    """Identity token claim check failed (400).

    Attributes:
        reason: Which check failed ("invalid_issuer", "invalid_audience",
            "expired", "invalid_signature"). Also exposed in ``details``.
    """

    code = "TOKEN_VALIDATION_ERROR"
    status_code = 400

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message, details=[{"reason": reason}])
        self.reason = reason


class ConfigurationError(APIError):
    """Required provider credentials are missing or unusable (500).

    Retrying will not help until the deployment is reconfigured.
    """

    code = "CONFIGURATION_ERROR"


class RateLimitError(APIError):
    """Too many requests from one client (429)."""

    code = "RATE_LIMITED"
    status_code = 429
