"""Client secret generation for Sign in with Apple.

Apple's token endpoint does not accept a static client secret. Instead the
client sends a short-lived ES256-signed JWT built from the developer team
id, the Services ID (client id), and a private key downloaded from the
Apple developer portal.

Pipeline:
- load_private_key: PEM PKCS#8 text -> P-256 private key
- ClientAssertionSigner.sign: header + claims -> ECDSA signature -> compact JWT
- der_to_raw: DER ECDSA signature -> fixed-width r||s required by JWS
"""

import base64
import binascii
import json
import logging
import re
import time
from collections.abc import Callable

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from jwt.utils import base64url_encode

from starter_auth.core.config import Settings
from starter_auth.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Issuer of Apple identity tokens, and audience of the client secret
APPLE_ISSUER = "https://appleid.apple.com"

# Apple rejects client secrets valid for longer than 6 months
CLIENT_SECRET_LIFETIME_SECONDS = 180 * 24 * 60 * 60

# r and s are 32 bytes each on P-256
_COORDINATE_SIZE = 32
_RAW_SIGNATURE_SIZE = 2 * _COORDINATE_SIZE
_DER_INTEGER_TAG = 0x02

_PEM_ARMOR = re.compile(r"-----(BEGIN|END) PRIVATE KEY-----")


def der_to_raw(der: bytes) -> bytes:
    """Convert a DER-encoded ECDSA signature to raw r||s.

    64-byte input is assumed to be raw already and returned unchanged.
    Otherwise the 2-byte SEQUENCE header is skipped and the two INTEGERs
    are copied right-aligned into 32-byte slots. A 33-byte INTEGER whose
    first byte is 0x00 is sign padding; the padding byte is dropped.

    Args:
        der: Signature bytes from an ECDSA primitive.

    Returns:
        64-byte raw signature.

    Raises:
        ValueError: If an INTEGER tag is missing or the input is truncated.
    """
    if len(der) == _RAW_SIGNATURE_SIZE:
        return der

    raw = bytearray(_RAW_SIGNATURE_SIZE)
    offset = 2  # skip SEQUENCE tag and length

    for slot_end in (_COORDINATE_SIZE, _RAW_SIGNATURE_SIZE):
        if offset >= len(der) or der[offset] != _DER_INTEGER_TAG:
            msg = "Invalid DER signature"
            raise ValueError(msg)
        offset += 1
        length = der[offset] if offset < len(der) else 0
        offset += 1
        if length == _COORDINATE_SIZE + 1 and der[offset : offset + 1] == b"\x00":
            offset += 1
            length = _COORDINATE_SIZE

        size = min(length, _COORDINATE_SIZE)
        chunk = der[offset : offset + size]
        if len(chunk) != size:
            msg = "Invalid DER signature: truncated integer"
            raise ValueError(msg)
        raw[slot_end - size : slot_end] = chunk
        offset += length

    return bytes(raw)


def load_private_key(pem: str) -> ec.EllipticCurvePrivateKey:
    """Import a PEM-encoded PKCS#8 P-256 private key.

    Header/footer lines and all whitespace are stripped before base64
    decoding. Literal "\\n" sequences (common when the key is pasted into a
    single-line environment variable) are treated as whitespace.

    Args:
        pem: Contents of the .p8 file from the Apple developer portal.

    Returns:
        EC private key on the P-256 curve.

    Raises:
        ConfigurationError: If the material is not a P-256 PKCS#8 key.
    """
    cleaned = _PEM_ARMOR.sub("", pem.replace("\\n", "\n"))
    cleaned = "".join(cleaned.split())
    try:
        der = base64.b64decode(cleaned, validate=True)
        key = serialization.load_der_private_key(der, password=None)
    except (binascii.Error, ValueError, TypeError, UnsupportedAlgorithm) as exc:
        msg = "Apple private key is not a valid PKCS#8 key"
        raise ConfigurationError(msg) from exc

    if not isinstance(key, ec.EllipticCurvePrivateKey) or not isinstance(
        key.curve, ec.SECP256R1
    ):
        msg = "Apple private key must be an EC key on curve P-256"
        raise ConfigurationError(msg)
    return key


class ClientAssertionSigner:
    """Builds the ES256 client secret for Apple's token endpoint.

    Credentials are checked when ``sign`` runs, not at construction, so an
    unconfigured deployment still boots and only the Apple flow fails.

    Args:
        team_id: Apple developer team id (``iss``).
        client_id: Services ID (``sub``).
        key_id: Id of the signing key (``kid`` header).
        private_key_pem: PEM PKCS#8 private key text.
        clock: Returns the current Unix time in seconds.
    """

    def __init__(
        self,
        *,
        team_id: str,
        client_id: str,
        key_id: str,
        private_key_pem: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.team_id = team_id
        self.client_id = client_id
        self.key_id = key_id
        self._private_key_pem = private_key_pem
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClientAssertionSigner":
        """Build a signer from application settings."""
        return cls(
            team_id=settings.apple_team_id,
            client_id=settings.apple_client_id,
            key_id=settings.apple_key_id,
            private_key_pem=settings.apple_private_key.get_secret_value(),
        )

    def _require_configured(self) -> None:
        missing = [
            name
            for name, value in (
                ("APPLE_TEAM_ID", self.team_id),
                ("APPLE_CLIENT_ID", self.client_id),
                ("APPLE_KEY_ID", self.key_id),
                ("APPLE_PRIVATE_KEY", self._private_key_pem),
            )
            if not value
        ]
        if missing:
            logger.error(
                "Apple Sign-In credentials missing",
                extra={"missing": missing},
            )
            msg = "Apple Sign-In not configured"
            raise ConfigurationError(msg)

    def sign(self) -> str:
        """Create a freshly signed client secret.

        Returns:
            Compact JWT "header.payload.signature".

        Raises:
            ConfigurationError: If a credential is missing or the key is invalid.
        """
        self._require_configured()

        now = int(self._clock())
        header = {"alg": "ES256", "kid": self.key_id, "typ": "JWT"}
        payload = {
            "iss": self.team_id,
            "iat": now,
            "exp": now + CLIENT_SECRET_LIFETIME_SECONDS,
            "aud": APPLE_ISSUER,
            "sub": self.client_id,
        }

        signing_input = b".".join(
            (
                base64url_encode(_compact_json(header)),
                base64url_encode(_compact_json(payload)),
            )
        )

        key = load_private_key(self._private_key_pem)
        der_signature = key.sign(signing_input, ec.ECDSA(hashes.SHA256()))
        signature_b64 = base64url_encode(der_to_raw(der_signature))

        return (signing_input + b"." + signature_b64).decode("ascii")


def _compact_json(value: dict) -> bytes:
    return json.dumps(value, separators=(",", ":")).encode("utf-8")
