import time
from collections.abc import AsyncGenerator, Callable

import httpx
import jwt
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from starter_auth.core.apple_client_secret import APPLE_ISSUER, ClientAssertionSigner
from starter_auth.core.apple_signin import ExternalSigninClient
from starter_auth.core.config import settings
from starter_auth.core.database import Database, create_database
from starter_auth.core.passwords import PasswordHasher
from starter_auth.core.rate_limiting import limiter
from starter_auth.models.base import Base

# Each test gets its own private in-memory SQLite database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Low iteration count keeps password tests fast; production uses 600k
TEST_PBKDF2_ITERATIONS = 1_000

# Apple developer credentials used by the fake Apple deployment
TEST_APPLE_TEAM_ID = "TEAM123456"
TEST_APPLE_CLIENT_ID = "com.example.starter.web"
TEST_APPLE_KEY_ID = "KEY1234567"
TEST_APPLE_SUBJECT = "001234.abcdef0123456789.0042"
TEST_APPLE_EMAIL = "apple.user@example.com"

# Security: test-only HMAC secret for identity tokens (signature is not checked
# by the default verifier)
TEST_ID_TOKEN_SECRET = "test-identity-token-secret-at-least-32-bytes"  # nosec B105  # gitleaks:allow


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Clear slowapi counters so limits never leak between tests."""
    limiter.reset()
    yield
    limiter.reset()


# =============================================================================
# Record store
# =============================================================================


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[Database, None]:
    """Fresh in-memory record store with all tables created."""
    db = create_database(TEST_DATABASE_URL)

    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield db

    await db.dispose()


@pytest_asyncio.fixture
async def db_session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with database.session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def password_hasher() -> PasswordHasher:
    """PBKDF2 hasher with a test-sized iteration count."""
    return PasswordHasher(iterations=TEST_PBKDF2_ITERATIONS)


# =============================================================================
# Fake Apple deployment
# =============================================================================


@pytest.fixture(scope="session")
def apple_private_key() -> ec.EllipticCurvePrivateKey:
    """P-256 key standing in for the .p8 key from the Apple portal."""
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(scope="session")
def apple_private_key_pem(apple_private_key: ec.EllipticCurvePrivateKey) -> str:
    """PEM PKCS#8 text of apple_private_key."""
    return apple_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def signer(apple_private_key_pem: str) -> ClientAssertionSigner:
    """Client secret signer configured with the test credentials."""
    return ClientAssertionSigner(
        team_id=TEST_APPLE_TEAM_ID,
        client_id=TEST_APPLE_CLIENT_ID,
        key_id=TEST_APPLE_KEY_ID,
        private_key_pem=apple_private_key_pem,
    )


@pytest.fixture
def make_identity_token() -> Callable[..., str]:
    """Factory for Apple-shaped identity tokens.

    Keyword arguments override claims; a claim set to None is omitted.
    """

    def _make(**overrides) -> str:
        now = int(time.time())
        claims = {
            "iss": APPLE_ISSUER,
            "aud": TEST_APPLE_CLIENT_ID,
            "sub": TEST_APPLE_SUBJECT,
            "email": TEST_APPLE_EMAIL,
            "email_verified": "true",
            "iat": now,
            "exp": now + 600,
        }
        claims.update(overrides)
        claims = {key: value for key, value in claims.items() if value is not None}
        return jwt.encode(claims, TEST_ID_TOKEN_SECRET, algorithm="HS256")

    return _make


class FakeAppleTokenEndpoint:
    """Stands in for https://appleid.apple.com/auth/token.

    Attributes:
        requests: Every request received, in order.
        status_code: Status returned by the next exchange.
        payload: JSON body returned on success.
        error_body: Raw body returned when status_code is not 2xx.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.payload: dict = {}
        self.error_body = '{"error":"invalid_grant"}'

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if 200 <= self.status_code < 300:
            return httpx.Response(self.status_code, json=self.payload)
        return httpx.Response(self.status_code, text=self.error_body)


@pytest.fixture
def apple_token_endpoint(make_identity_token) -> FakeAppleTokenEndpoint:
    """Token endpoint that answers with a valid identity token by default."""
    endpoint = FakeAppleTokenEndpoint()
    endpoint.payload = {
        "access_token": "apple-access-token",
        "token_type": "Bearer",
        "expires_in": 3600,
        "refresh_token": "apple-refresh-token",
        "id_token": make_identity_token(),
    }
    return endpoint


@pytest.fixture
def signin_client(
    signer: ClientAssertionSigner, apple_token_endpoint: FakeAppleTokenEndpoint
) -> ExternalSigninClient:
    """Apple client wired to the fake token endpoint."""
    return ExternalSigninClient(
        signer, transport=httpx.MockTransport(apple_token_endpoint.handler)
    )


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest.fixture
def app(
    database: Database,
    password_hasher: PasswordHasher,
    signin_client: ExternalSigninClient,
):
    """Application wired to the in-memory store and fake Apple client.

    Session cookies are issued without the Secure flag because the test
    client talks plain http.
    """
    from starter_auth.main import create_app

    original_secure = settings.session_cookie_secure
    settings.session_cookie_secure = False

    yield create_app(
        database=database,
        password_hasher=password_hasher,
        signin_client=signin_client,
    )

    settings.session_cookie_secure = original_secure


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for API tests."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
