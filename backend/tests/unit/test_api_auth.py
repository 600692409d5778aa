"""Tests for the password auth endpoints.

POST /api/v1/auth/signup, POST /api/v1/auth/login,
POST /api/v1/auth/logout, GET /api/v1/auth/me.
"""

from datetime import timedelta

import pytest
from sqlalchemy import update

from starter_auth.models import Session, User
from starter_auth.models.base import utcnow
from starter_auth.repositories.user_repository import UserRepository

_PASSWORD = "ValidP@ss1"  # nosec B105  # gitleaks:allow
_SIGNUP_URL = "/api/v1/auth/signup"
_LOGIN_URL = "/api/v1/auth/login"
_LOGOUT_URL = "/api/v1/auth/logout"
_ME_URL = "/api/v1/auth/me"


def _set_cookie(response, name: str) -> str | None:
    """Raw Set-Cookie header for a cookie name, lower-cased for matching."""
    for header in response.headers.get_list("set-cookie"):
        if header.startswith(f"{name}="):
            return header.lower()
    return None


async def _signup(client, email: str = "alice@example.com", **extra):
    return await client.post(
        _SIGNUP_URL, json={"email": email, "password": _PASSWORD, **extra}
    )


# ===================================================================
# POST /api/v1/auth/signup
# ===================================================================


class TestSignup:
    """Tests for POST /api/v1/auth/signup."""

    async def test_returns_public_user(self, client):
        """Response is {"user": {id, email, name}} with no password material."""
        response = await _signup(client, "Alice@Example.com", name="Alice")

        assert response.status_code == 200
        user = response.json()["user"]
        assert set(user) == {"id", "email", "name"}
        assert user["email"] == "alice@example.com"
        assert user["name"] == "Alice"

    async def test_sets_session_cookie(self, client):
        """Signup signs the user in with a 30-day httpOnly cookie."""
        response = await _signup(client)

        cookie = _set_cookie(response, "session")
        assert cookie is not None
        assert "httponly" in cookie
        assert "max-age=2592000" in cookie
        assert "path=/" in cookie
        assert "samesite=lax" in cookie

    async def test_duplicate_email_returns_409(self, client):
        await _signup(client)

        response = await _signup(client, "ALICE@example.com")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "EMAIL_ALREADY_EXISTS"

    @pytest.mark.parametrize(
        "body",
        [
            {"email": "not-an-email", "password": _PASSWORD},
            {"email": "alice@example.com", "password": "short"},
            {"email": "alice@example.com", "password": "x" * 129},
            {"email": "alice@example.com"},
            {"email": "alice@example.com", "password": _PASSWORD, "is_admin": True},
        ],
    )
    async def test_invalid_body_returns_400(self, client, body):
        """Malformed input is a VALIDATION_ERROR, and extra fields are refused."""
        response = await client.post(_SIGNUP_URL, json=body)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_new_user_is_not_admin(self, client, database):
        """Signup can never grant admin."""
        response = await _signup(client)

        async with database.session_factory() as session:
            user = await UserRepository.get_by_id(session, response.json()["user"]["id"])
        assert user is not None
        assert user.is_admin is False


# ===================================================================
# POST /api/v1/auth/login
# ===================================================================


class TestLogin:
    """Tests for POST /api/v1/auth/login."""

    async def test_valid_credentials_return_user_and_cookie(self, client):
        created = (await _signup(client)).json()["user"]
        client.cookies.clear()

        response = await client.post(
            _LOGIN_URL, json={"email": "ALICE@example.com", "password": _PASSWORD}
        )

        assert response.status_code == 200
        assert response.json()["user"]["id"] == created["id"]
        assert _set_cookie(response, "session") is not None

    async def test_wrong_password_returns_401(self, client):
        await _signup(client)

        response = await client.post(
            _LOGIN_URL, json={"email": "alice@example.com", "password": "wrong-pass"}
        )

        assert response.status_code == 401
        assert response.json()["error"] == {
            "code": "UNAUTHORIZED",
            "message": "Invalid email or password",
            "details": None,
        }
        assert _set_cookie(response, "session") is None

    async def test_unknown_email_matches_wrong_password(self, client):
        """Unknown email gets the exact same response as a wrong password."""
        await _signup(client)

        wrong_password = await client.post(
            _LOGIN_URL, json={"email": "alice@example.com", "password": "wrong-pass"}
        )
        unknown_email = await client.post(
            _LOGIN_URL, json={"email": "ghost@example.com", "password": _PASSWORD}
        )

        assert unknown_email.status_code == wrong_password.status_code
        assert unknown_email.json() == wrong_password.json()

    async def test_rate_limited_after_ten_attempts(self, client):
        """The eleventh login within 15 minutes is throttled."""
        body = {"email": "ghost@example.com", "password": _PASSWORD}
        for _ in range(10):
            response = await client.post(_LOGIN_URL, json=body)
            assert response.status_code == 401

        response = await client.post(_LOGIN_URL, json=body)

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMITED"
        assert response.headers["retry-after"] == "900"


# ===================================================================
# GET /api/v1/auth/me
# ===================================================================


class TestMe:
    """Tests for GET /api/v1/auth/me."""

    async def test_signed_out_returns_null_user(self, client):
        response = await client.get(_ME_URL)

        assert response.status_code == 200
        assert response.json() == {"user": None}

    async def test_signed_in_returns_user_with_admin_flag(self, client):
        created = (await _signup(client, name="Alice")).json()["user"]

        response = await client.get(_ME_URL)

        assert response.json() == {
            "user": {
                "id": created["id"],
                "email": "alice@example.com",
                "name": "Alice",
                "isAdmin": False,
            }
        }

    async def test_unknown_session_is_cleared(self, client):
        """A cookie that maps to no session gets deleted."""
        client.cookies.set("session", "forged-session-id")

        response = await client.get(_ME_URL)

        assert response.json() == {"user": None}
        cookie = _set_cookie(response, "session")
        assert cookie is not None
        assert "max-age=0" in cookie

    async def test_expired_session_returns_null_user(self, client, database):
        await _signup(client)
        async with database.session_factory() as session:
            await session.execute(
                update(Session).values(expires_at=utcnow() - timedelta(seconds=1))
            )
            await session.commit()

        response = await client.get(_ME_URL)

        assert response.json() == {"user": None}

    async def test_admin_flag_reported(self, client, database):
        """isAdmin reflects the stored flag."""
        created = (await _signup(client)).json()["user"]
        async with database.session_factory() as session:
            await session.execute(
                update(User).where(User.id == created["id"]).values(is_admin=True)
            )
            await session.commit()

        response = await client.get(_ME_URL)

        assert response.json()["user"]["isAdmin"] is True


# ===================================================================
# POST /api/v1/auth/logout
# ===================================================================


class TestLogout:
    """Tests for POST /api/v1/auth/logout."""

    async def test_logout_ends_session(self, client):
        await _signup(client)
        session_id = client.cookies.get("session")

        response = await client.post(_LOGOUT_URL)

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert "max-age=0" in _set_cookie(response, "session")

        # The old token is dead server-side, not just forgotten by the browser
        client.cookies.set("session", session_id)
        assert (await client.get(_ME_URL)).json() == {"user": None}

    async def test_logout_without_session_succeeds(self, client):
        response = await client.post(_LOGOUT_URL)

        assert response.status_code == 200
        assert response.json() == {"success": True}
