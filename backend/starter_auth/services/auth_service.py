"""Auth service: credential, session, and Apple sign-in orchestration.

The only entry point transport handlers call. Composes PasswordHasher and
SessionManager for password flows, and ExternalSigninClient plus
SessionManager for Sign in with Apple. Cookie handling stays in the
transport layer: this service takes and returns opaque tokens.

Apple sign-in state machine:
    start -> (issue CSRF state, build authorization URL) -> awaiting callback
    callback -> state mismatch               => CsrfError (terminal)
             -> code exchange fails          => ExternalServiceError
             -> identity token claim invalid => TokenValidationError
             -> no email claim               => ValidationError
             -> authenticated (user + session)
"""

import asyncio
import json
import logging
import secrets
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from starter_auth.core.account_kinds import Credentialed, ExternallyLinked
from starter_auth.core.apple_signin import ExternalSigninClient
from starter_auth.core.errors import (
    AuthenticationError,
    ConflictError,
    CsrfError,
    ValidationError,
)
from starter_auth.core.passwords import PasswordHasher
from starter_auth.models.user import User
from starter_auth.repositories.user_repository import UserRepository, normalize_email
from starter_auth.services.session_manager import SessionManager

logger = logging.getLogger(__name__)

# 32 random bytes for the OAuth state parameter
_STATE_TOKEN_BYTES = 32

_INVALID_CREDENTIALS_MSG = "Invalid email or password"


def issue_csrf_state() -> str:
    """Generate a single-use CSRF state token for the Apple redirect."""
    return secrets.token_urlsafe(_STATE_TOKEN_BYTES)


def check_csrf_state(received: str | None, stored: str | None) -> None:
    """Require the callback state to echo the stored state.

    Args:
        received: ``state`` field posted by Apple.
        stored: Value from the state cookie.

    Raises:
        CsrfError: If either value is missing or they differ.
    """
    if not received or not stored:
        raise CsrfError()
    if not secrets.compare_digest(received.encode(), stored.encode()):
        raise CsrfError()


def parse_apple_user_name(user_json: str | dict | None) -> str | None:
    """Extract a display name from Apple's first-login ``user`` field.

    Apple posts ``{"name": {"firstName": ..., "lastName": ...}, "email": ...}``
    only on the first authorization. Anything unparseable means no name.

    Args:
        user_json: Raw form value (JSON text) or an already-parsed dict.

    Returns:
        "First Last" (whichever parts are present), or None.
    """
    if not user_json:
        return None
    try:
        parsed = json.loads(user_json) if isinstance(user_json, str) else user_json
        name = parsed.get("name")
        if not name:
            return None
        full_name = " ".join(
            part for part in (name.get("firstName"), name.get("lastName")) if part
        )
    except (ValueError, TypeError, AttributeError):
        logger.info("Ignoring unparseable Apple user payload")
        return None
    return full_name or None


class AuthService:
    """Orchestrates sign-up, sign-in, sessions, and Sign in with Apple.

    Args:
        db: Async database session for the current request.
        hasher: Password hasher (defaults to PBKDF2 with 600k iterations).
        sessions: Session manager (defaults to one bound to ``db``).
        signin_client: Apple client; required only for the Apple flow.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        hasher: PasswordHasher | None = None,
        sessions: SessionManager | None = None,
        signin_client: ExternalSigninClient | None = None,
    ) -> None:
        self._db = db
        self._hasher = hasher or PasswordHasher()
        self._sessions = sessions or SessionManager(db)
        self._signin_client = signin_client

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    # =================================================================
    # Password accounts
    # =================================================================

    async def signup(self, email: str, password: str, name: str | None = None) -> User:
        """Create a password account.

        Args:
            email: Email address (normalized before storage).
            password: Plain-text password (shape validated by the caller).
            name: Optional display name.

        Returns:
            The new User.

        Raises:
            ConflictError: If the email is already registered.
        """
        email = normalize_email(email)
        if await UserRepository.get_by_email(self._db, email) is not None:
            raise _email_taken()

        password_hash = await asyncio.to_thread(self._hasher.hash, password)
        try:
            user = await UserRepository.create(
                self._db,
                email=email,
                auth_method=Credentialed(password_hash=password_hash),
                name=name,
            )
        except IntegrityError as exc:
            # Lost a race with a concurrent signup for the same email
            await self._db.rollback()
            raise _email_taken() from exc

        logger.info("User signed up", extra={"user_id": user.id})
        return user

    async def verify_credentials(self, email: str, password: str) -> User | None:
        """Check an email/password pair.

        Unknown emails, Apple-only accounts, and wrong passwords all
        return None so callers cannot tell them apart.

        Returns:
            The matching User, or None.
        """
        user = await UserRepository.get_by_email(self._db, email)
        if user is None or not user.password_hash:
            return None

        valid = await asyncio.to_thread(
            self._hasher.verify, password, user.password_hash
        )
        return user if valid else None

    async def register(
        self, email: str, password: str, name: str | None = None
    ) -> tuple[User, str]:
        """Sign up and start a session.

        Returns:
            Tuple of (User, session_id).
        """
        user = await self.signup(email, password, name)
        session_id = await self._sessions.create(user.id)
        return user, session_id

    async def login(self, email: str, password: str) -> tuple[User, str]:
        """Verify credentials and start a session.

        Returns:
            Tuple of (User, session_id).

        Raises:
            AuthenticationError: On any credential failure (generic message).
        """
        user = await self.verify_credentials(email, password)
        if user is None:
            logger.info("Login rejected")
            raise AuthenticationError(_INVALID_CREDENTIALS_MSG)

        session_id = await self._sessions.create(user.id)
        return user, session_id

    async def logout(self, session_id: str | None) -> None:
        """Revoke the session if one was presented. Always succeeds."""
        if session_id:
            await self._sessions.revoke(session_id)

    async def current_user(self, session_id: str | None) -> User | None:
        """Resolve the session cookie value to a user, if any."""
        if not session_id:
            return None
        return await self._sessions.validate(session_id)

    # =================================================================
    # External provider accounts
    # =================================================================

    async def find_or_create_oauth_user(
        self,
        email: str,
        name: str | None = None,
        provider_id: str | None = None,
    ) -> User:
        """Find a user by email or create a provider-only account.

        An existing user without a provider id gets ``provider_id`` linked.
        An existing link is never replaced.

        Args:
            email: Email claim from the identity token.
            name: Display name from the first-login payload.
            provider_id: Provider subject identifier.

        Returns:
            The found (possibly updated) or created User.

        Raises:
            ValidationError: If a new account would have no provider id.
            ConflictError: If ``provider_id`` is already linked to another user.
        """
        email = normalize_email(email)
        existing = await UserRepository.get_by_email(self._db, email)

        if existing is not None:
            if provider_id and not existing.provider_id:
                try:
                    linked = await UserRepository.link_provider(
                        self._db, existing.id, provider_id
                    )
                except IntegrityError as exc:
                    await self._db.rollback()
                    raise ConflictError(
                        code="PROVIDER_ALREADY_LINKED",
                        message="This Apple ID is linked to another account",
                    ) from exc
                logger.info(
                    "Linked Apple ID to existing user",
                    extra={"user_id": existing.id},
                )
                return linked or existing
            return existing

        if not provider_id:
            raise ValidationError("Provider did not return a subject identifier")

        try:
            user = await UserRepository.create(
                self._db,
                email=email,
                auth_method=ExternallyLinked(provider_id=provider_id),
                name=name,
            )
        except IntegrityError:
            # Concurrent first login for the same email; the other request won
            await self._db.rollback()
            user = await UserRepository.get_by_email(self._db, email)
            if user is None:
                raise
            return user

        logger.info("Created new Apple user", extra={"user_id": user.id})
        return user

    def start_apple_signin(self, redirect_uri: str) -> tuple[str, str]:
        """Begin the Apple round trip.

        Args:
            redirect_uri: Callback URL registered with Apple.

        Returns:
            Tuple of (authorization_url, state). The caller stores ``state``
            in the short-lived state cookie.
        """
        state = issue_csrf_state()
        url = self._require_signin_client().build_authorization_url(
            redirect_uri, state
        )
        return url, state

    async def complete_apple_signin(
        self,
        *,
        code: str | None,
        state: str | None,
        stored_state: str | None,
        redirect_uri: str,
        id_token: str | None = None,
        user_json: str | None = None,
    ) -> tuple[User, str]:
        """Handle Apple's form_post callback.

        The CSRF check runs before anything else, so a forged callback is
        rejected even when its code is valid.

        Args:
            code: Authorization code.
            state: State echoed by Apple.
            stored_state: State from the cookie set at start.
            redirect_uri: Redirect URI used at start.
            id_token: Identity token posted by Apple (fallback only).
            user_json: First-login ``user`` payload.

        Returns:
            Tuple of (User, session_id).
        """
        check_csrf_state(state, stored_state)

        if not code:
            raise ValidationError("Missing authorization code")

        client = self._require_signin_client()
        tokens: dict[str, Any] = await client.exchange_code(code, redirect_uri)
        identity_token = tokens.get("id_token") or id_token
        if not identity_token:
            raise ValidationError("Apple did not return an identity token")

        claims = await asyncio.to_thread(client.decode_identity_token, identity_token)

        email = claims.get("email")
        if not email:
            raise ValidationError("Apple did not provide an email address")

        user = await self.find_or_create_oauth_user(
            email,
            name=parse_apple_user_name(user_json),
            provider_id=claims.get("sub"),
        )
        session_id = await self._sessions.create(user.id)
        return user, session_id

    def _require_signin_client(self) -> ExternalSigninClient:
        if self._signin_client is None:
            msg = "AuthService was built without an Apple sign-in client"
            raise RuntimeError(msg)
        return self._signin_client


def _email_taken() -> ConflictError:
    return ConflictError(
        code="EMAIL_ALREADY_EXISTS",
        message="An account with this email already exists",
    )
