"""Authentication methods a user account can carry.

A user signs in with a password, with an external provider, or with
both. The three kinds form a closed union so an account with no way to
sign in cannot be constructed. The users table stores the union as two
nullable columns guarded by a check constraint.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Credentialed:
    """Password-only account.

    Attributes:
        password_hash: Stored PBKDF2 digest ("salt_hex:key_hex").
    """

    password_hash: str


@dataclass(frozen=True)
class ExternallyLinked:
    """Provider-only account (no password).

    Attributes:
        provider_id: Subject identifier issued by the identity provider.
    """

    provider_id: str


@dataclass(frozen=True)
class Both:
    """Account with a password and a linked provider identity."""

    password_hash: str
    provider_id: str


AuthMethod = Credentialed | ExternallyLinked | Both


def auth_method_from_columns(
    password_hash: str | None, provider_id: str | None
) -> AuthMethod:
    """Rebuild the union from the nullable storage columns.

    Args:
        password_hash: users.password_hash value.
        provider_id: users.provider_id value.

    Returns:
        The matching AuthMethod.

    Raises:
        ValueError: If neither column is set.
    """
    if password_hash and provider_id:
        return Both(password_hash=password_hash, provider_id=provider_id)
    if password_hash:
        return Credentialed(password_hash=password_hash)
    if provider_id:
        return ExternallyLinked(provider_id=provider_id)
    msg = "User has no authentication method"
    raise ValueError(msg)


def auth_method_columns(method: AuthMethod) -> tuple[str | None, str | None]:
    """Flatten an AuthMethod into (password_hash, provider_id) columns."""
    if isinstance(method, Both):
        return method.password_hash, method.provider_id
    if isinstance(method, Credentialed):
        return method.password_hash, None
    return None, method.provider_id


def link_provider(method: AuthMethod, provider_id: str) -> AuthMethod:
    """Attach a provider identity to an account.

    Accounts that already carry a provider id are returned unchanged;
    an existing link is never overwritten.
    """
    if isinstance(method, Credentialed):
        return Both(password_hash=method.password_hash, provider_id=provider_id)
    return method
