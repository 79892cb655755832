"""Signed session tokens.

Tokens are compact HS256 JWTs carrying ``sub`` (user id), ``iat`` and ``exp``.
They are not persisted server-side, so a token stays valid until it expires;
there is no revocation list.
"""

import hmac
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
import jwt
from jwt.algorithms import HMACAlgorithm
from jwt.utils import base64url_encode

from app.errors import Expired, InvalidSignature, Malformed
from app.utils.helpers import as_utc

ALGORITHM = "HS256"
REQUIRED_CLAIMS = ["sub", "iat", "exp"]


@dataclass(frozen=True)
class SigningKey:
    """HMAC signing key with an identifier published in the token header."""
    key_id: str
    secret: str

    def __repr__(self) -> str:
        return f"SigningKey(key_id={self.key_id!r})"


class TokenService:
    """Issues and verifies session tokens for a single signing key."""

    def __init__(self, signing_key: SigningKey, ttl: timedelta):
        if not signing_key.secret:
            raise ValueError("Signing secret must not be empty")
        if ttl <= timedelta(0):
            raise ValueError("Token TTL must be positive")
        self.signing_key = signing_key
        self.ttl = ttl
        self._algorithm = HMACAlgorithm(HMACAlgorithm.SHA256)
        self._key = self._algorithm.prepare_key(signing_key.secret)

    @property
    def ttl_seconds(self) -> int:
        return int(self.ttl.total_seconds())

    def issue(self, user_id: str, now: datetime) -> str:
        """Mint a token for ``user_id`` valid from ``now`` until ``now + ttl``.

        Claims carry whole seconds; ``exp`` is rounded up so a token never
        expires before ``now + ttl``.
        """
        if not user_id:
            raise ValueError("user_id is required")
        issued_at = as_utc(now)
        claims = {
            "sub": user_id,
            "iat": int(issued_at.timestamp()),
            "exp": math.ceil((issued_at + self.ttl).timestamp()),
        }
        return jwt.encode(
            claims,
            self.signing_key.secret,
            algorithm=ALGORITHM,
            headers={"kid": self.signing_key.key_id},
        )

    def verify(self, token: str, now: datetime) -> str:
        """Return the user id carried by ``token``.

        The signature is checked over the exact bytes presented, everything
        before the last ``.``, before any part of the token is decoded. A
        token altered anywhere therefore fails with ``InvalidSignature``.
        Expiry is judged by ``now``, the verifier's clock.

        Raises:
            Malformed: token has no signature segment, or is correctly signed
                but is not a decodable three-part JWT.
            InvalidSignature: signature does not match header and claims.
            Expired: ``now`` is past the token's expiry.
        """
        if not isinstance(token, str):
            raise Malformed("Token is not a string")
        raw = token.encode("utf-8", errors="surrogatepass")

        signing_input, dot, signature_segment = raw.rpartition(b".")
        if not dot:
            raise Malformed("Token has no signature segment")

        expected = base64url_encode(self._algorithm.sign(signing_input, self._key))
        if not hmac.compare_digest(expected, signature_segment):
            raise InvalidSignature("Token signature mismatch")

        parts = signing_input.split(b".")
        if len(parts) != 2 or not all(parts):
            raise Malformed("Token must have three segments")

        try:
            claims = jwt.decode(
                token,
                self.signing_key.secret,
                algorithms=[ALGORITHM],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": REQUIRED_CLAIMS,
                },
            )
        except jwt.InvalidTokenError as e:
            raise Malformed(f"Token claims could not be decoded: {e}") from e

        subject = claims.get("sub")
        expires_at = claims.get("exp")
        if not isinstance(subject, str) or not subject:
            raise Malformed("Token subject is missing")
        if not isinstance(expires_at, int) or isinstance(expires_at, bool):
            raise Malformed("Token expiry is not an integer timestamp")

        if as_utc(now).timestamp() > expires_at:
            raise Expired("Token has expired")

        return subject
