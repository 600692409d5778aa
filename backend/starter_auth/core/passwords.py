"""Password hashing with PBKDF2-HMAC-SHA256.

Stored format: ``hex(salt) + ":" + hex(derived_key)`` with a fresh
16-byte salt per hash, 600,000 iterations, and a 32-byte derived key.
"""

import hashlib
import hmac
import secrets

PBKDF2_ITERATIONS = 600_000
SALT_LENGTH = 16
HASH_LENGTH = 32

_SEPARATOR = ":"


class PasswordHasher:
    """Derives and verifies salted password digests.

    Args:
        iterations: PBKDF2 iteration count. Only lower it in tests; stored
            digests do not record the count, so every digest in a store
            must share one value.
    """

    def __init__(self, iterations: int = PBKDF2_ITERATIONS) -> None:
        self.iterations = iterations

    def _derive(self, password: str, salt: bytes) -> bytes:
        return hashlib.pbkdf2_hmac(
            "sha256",
            password.encode("utf-8"),
            salt,
            self.iterations,
            dklen=HASH_LENGTH,
        )

    def hash(self, password: str) -> str:
        """Hash a password with a fresh random salt.

        Args:
            password: Plain-text password.

        Returns:
            "salt_hex:key_hex" digest string.
        """
        salt = secrets.token_bytes(SALT_LENGTH)
        key = self._derive(password, salt)
        return f"{salt.hex()}{_SEPARATOR}{key.hex()}"

    def verify(self, password: str, stored: str) -> bool:
        """Check a password against a stored digest.

        Malformed digests never raise; they simply fail verification.

        Args:
            password: Plain-text password to check.
            stored: Digest produced by ``hash``.

        Returns:
            True if the password matches.
        """
        salt_hex, sep, expected_hex = stored.partition(_SEPARATOR)
        if not sep or not salt_hex or not expected_hex:
            return False
        try:
            salt = bytes.fromhex(salt_hex)
            expected = bytes.fromhex(expected_hex)
        except ValueError:
            return False

        return hmac.compare_digest(self._derive(password, salt), expected)
