"""Tests for the account authentication-method union."""

import pytest

from starter_auth.core.account_kinds import (
    Both,
    Credentialed,
    ExternallyLinked,
    auth_method_columns,
    auth_method_from_columns,
    link_provider,
)


class TestAuthMethodFromColumns:
    """Tests for rebuilding the union from storage columns."""

    def test_password_only(self):
        assert auth_method_from_columns("salt:key", None) == Credentialed("salt:key")

    def test_provider_only(self):
        assert auth_method_from_columns(None, "apple-sub") == ExternallyLinked(
            "apple-sub"
        )

    def test_both(self):
        assert auth_method_from_columns("salt:key", "apple-sub") == Both(
            password_hash="salt:key", provider_id="apple-sub"
        )

    @pytest.mark.parametrize(("password_hash", "provider_id"), [(None, None), ("", "")])
    def test_neither_is_rejected(self, password_hash, provider_id):
        """An account with no way to sign in cannot be represented."""
        with pytest.raises(ValueError, match="no authentication method"):
            auth_method_from_columns(password_hash, provider_id)


class TestAuthMethodColumns:
    """Tests for flattening the union back to columns."""

    def test_credentialed(self):
        assert auth_method_columns(Credentialed("salt:key")) == ("salt:key", None)

    def test_externally_linked(self):
        assert auth_method_columns(ExternallyLinked("apple-sub")) == (None, "apple-sub")

    def test_both(self):
        assert auth_method_columns(Both("salt:key", "apple-sub")) == (
            "salt:key",
            "apple-sub",
        )


class TestLinkProvider:
    """Tests for attaching a provider identity."""

    def test_password_account_gains_provider(self):
        """Linking a password-only account yields Both."""
        assert link_provider(Credentialed("salt:key"), "apple-sub") == Both(
            "salt:key", "apple-sub"
        )

    def test_existing_link_is_not_overwritten(self):
        """A provider-only account keeps its original provider id."""
        method = ExternallyLinked("original-sub")
        assert link_provider(method, "new-sub") is method

    def test_both_is_unchanged(self):
        method = Both("salt:key", "original-sub")
        assert link_provider(method, "new-sub") is method
