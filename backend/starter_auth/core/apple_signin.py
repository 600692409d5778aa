"""Sign in with Apple HTTP client: authorization URL, code exchange,
identity token decoding.

Only the authorization-code flow with response_mode=form_post is
supported. Identity tokens are checked for issuer, audience and expiry.
Signature checking goes through a pluggable verifier; the default accepts
every token, ``JwksSignatureVerifier`` checks it against Apple's keys.
"""

import json
import logging
import time
from collections.abc import Callable
from typing import Any
from urllib.parse import urlencode

import httpx
import jwt
from jwt.utils import base64url_decode

from starter_auth.core.apple_client_secret import APPLE_ISSUER, ClientAssertionSigner
from starter_auth.core.config import Settings
from starter_auth.core.errors import (
    ConfigurationError,
    ExternalServiceError,
    TokenValidationError,
    ValidationError,
)

logger = logging.getLogger(__name__)

APPLE_AUTHORIZE_URL = "https://appleid.apple.com/auth/authorize"
APPLE_TOKEN_URL = "https://appleid.apple.com/auth/token"  # nosec B105 - endpoint, not a password
APPLE_KEYS_URL = "https://appleid.apple.com/auth/keys"

# HTTP client timeout for the token exchange (seconds)
_DEFAULT_HTTP_TIMEOUT = 10.0

_SCOPES = "name email"

IdentityTokenVerifier = Callable[[str], bool]


def accept_unverified(_token: str) -> bool:
    """Default verifier: trust the token's signature without checking it."""
    return True


class JwksSignatureVerifier:
    """Verifies identity token signatures against Apple's published JWKS.

    Keys are fetched and cached by PyJWKClient. Fetching is blocking, so
    call from a worker thread inside async code.

    Args:
        jwks_url: JWKS endpoint.
        jwk_client: Preconfigured client (tests inject one).
    """

    def __init__(
        self,
        jwks_url: str = APPLE_KEYS_URL,
        *,
        jwk_client: jwt.PyJWKClient | None = None,
    ) -> None:
        self._jwk_client = jwk_client or jwt.PyJWKClient(jwks_url)

    def __call__(self, token: str) -> bool:
        try:
            signing_key = self._jwk_client.get_signing_key_from_jwt(token)
            jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256", "ES256"],
                options={
                    "verify_aud": False,
                    "verify_iss": False,
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.PyJWTError:
            logger.warning("Apple identity token signature rejected")
            return False
        return True


class ExternalSigninClient:
    """Client for Apple's authorization and token endpoints.

    Args:
        signer: Builds the ES256 client secret for each exchange.
        verifier: Signature check applied to identity tokens.
        timeout: Token exchange timeout in seconds.
        transport: Optional httpx transport (tests pass a MockTransport).
        clock: Returns the current Unix time in seconds.
    """

    def __init__(
        self,
        signer: ClientAssertionSigner,
        *,
        verifier: IdentityTokenVerifier = accept_unverified,
        timeout: float = _DEFAULT_HTTP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._signer = signer
        self._verifier = verifier
        self._timeout = timeout
        self._transport = transport
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "ExternalSigninClient":
        """Build a client from application settings."""
        verifier: IdentityTokenVerifier = accept_unverified
        if settings.apple_verify_id_token_signature:
            verifier = JwksSignatureVerifier()
        return cls(
            ClientAssertionSigner.from_settings(settings),
            verifier=verifier,
            timeout=settings.oauth_http_timeout,
            transport=transport,
        )

    @property
    def client_id(self) -> str:
        return self._signer.client_id

    def build_authorization_url(self, redirect_uri: str, state: str) -> str:
        """Build the Apple authorization URL for the sign-in redirect.

        Args:
            redirect_uri: Callback URL registered with Apple.
            state: CSRF state token echoed back on the callback.

        Returns:
            Full authorization URL.

        Raises:
            ConfigurationError: If no client id is configured.
        """
        if not self.client_id:
            msg = "Apple Sign-In not configured"
            raise ConfigurationError(msg)

        params = {
            "response_type": "code",
            "response_mode": "form_post",
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "state": state,
            "scope": _SCOPES,
        }
        return f"{APPLE_AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str, redirect_uri: str) -> dict[str, Any]:
        """Exchange an authorization code for tokens.

        Single attempt; no retries.

        Args:
            code: Authorization code from the callback.
            redirect_uri: Same redirect URI used for the authorization request.

        Returns:
            Token response dict (access_token, token_type, expires_in,
            id_token, refresh_token).

        Raises:
            ConfigurationError: If the client secret cannot be built.
            ExternalServiceError: If Apple returns non-2xx or is unreachable.
        """
        client_secret = self._signer.sign()

        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._timeout
            ) as client:
                resp = await client.post(
                    APPLE_TOKEN_URL,
                    data={
                        "client_id": self.client_id,
                        "client_secret": client_secret,
                        "code": code,
                        "grant_type": "authorization_code",
                        "redirect_uri": redirect_uri,
                    },
                    headers={"Accept": "application/json"},
                )
        except httpx.TransportError as exc:
            logger.warning(
                "Apple token endpoint unreachable",
                extra={"error": type(exc).__name__},
            )
            raise ExternalServiceError("Apple token exchange failed") from exc

        if not resp.is_success:
            logger.warning(
                "Apple token exchange rejected",
                extra={"status_code": resp.status_code},
            )
            raise ExternalServiceError(
                f"Apple token exchange failed: {resp.text}",
                provider_response=resp.text,
            )

        try:
            result: dict[str, Any] = resp.json()
        except ValueError as exc:
            raise ExternalServiceError(
                "Apple token exchange returned invalid JSON",
                provider_response=resp.text,
            ) from exc
        return result

    def decode_identity_token(self, token: str) -> dict[str, Any]:
        """Decode and validate an Apple identity token.

        Checks, in order: segment count, payload decoding, signature (via
        the configured verifier), issuer, audience, expiry.

        Args:
            token: Compact JWT from the token response.

        Returns:
            Claims dict (sub, email, email_verified, iss, aud, exp, iat, ...).

        Raises:
            ValidationError: If the token is not a decodable 3-part JWT.
            TokenValidationError: If a signature or claim check fails.
        """
        segments = token.split(".") if isinstance(token, str) else []
        if len(segments) != 3:
            raise ValidationError("Invalid Apple ID token format")

        # Only the payload segment is decoded; the header is left to the verifier
        try:
            payload = json.loads(base64url_decode(segments[1]))
        except ValueError as exc:
            raise ValidationError("Invalid Apple ID token format") from exc
        if not isinstance(payload, dict):
            raise ValidationError("Invalid Apple ID token format")

        if not self._verifier(token):
            raise TokenValidationError(
                "invalid_signature", "Apple ID token signature is invalid"
            )

        if payload.get("iss") != APPLE_ISSUER:
            raise TokenValidationError(
                "invalid_issuer", "Invalid Apple ID token issuer"
            )

        if payload.get("aud") != self.client_id:
            raise TokenValidationError(
                "invalid_audience", "Invalid Apple ID token audience"
            )

        exp = payload.get("exp")
        if not isinstance(exp, int | float) or exp < int(self._clock()):
            raise TokenValidationError("expired", "Apple ID token has expired")

        return payload
