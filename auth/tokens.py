"""
auth/tokens.py -- JWT issuance and verification.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub (username), name, jti, iss,
       aud, iat and exp. Nothing else -- no roles, no user id. Verification
       returns None on any failure; the route layer turns that into a 401.

  jti: uuid4 gives 122 random bits, so two tokens minted in the same second
       for the same user still differ.

  Stateless: there is no token table and no revocation. A token stays valid
       until its exp regardless of later account changes.

  Key: the symmetric key is injected at construction. Production keys must be
       at least 32 bytes (256 bits); core.config.Settings rejects shorter ones
       at startup, this class does not re-check.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta

from jose import JWTError, jwt

from auth.clock import Clock, utc_now
from auth.models import IssuedToken

logger = logging.getLogger("loginapi.auth.tokens")

_ALGORITHM = "HS256"


class TokenIssuer:
    """Builds and signs bearer tokens.

    Usage:
        issuer = TokenIssuer(secret_key, issuer="LoginApi", audience="LoginApiUsers")
        issued = issuer.issue("alice")
        claims = issuer.decode(issued.token)
    """

    def __init__(
        self,
        secret_key: str,
        issuer: str,
        audience: str,
        expire_minutes: int = 60,
        clock: Clock = utc_now,
    ) -> None:
        self._secret_key = secret_key
        self.issuer = issuer
        self.audience = audience
        self.expire_minutes = expire_minutes
        self._clock = clock

    @property
    def expires_in_seconds(self) -> int:
        """Configured lifetime in seconds -- the OAuth2 `expires_in` value."""
        return self.expire_minutes * 60

    def issue(self, username: str) -> IssuedToken:
        """Mint a signed token for username. Pure apart from reading the clock.

        Timestamps are truncated to whole seconds before encoding so that
        issued_at/expires_at on the returned object equal the iat/exp claims
        exactly.
        """
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + timedelta(minutes=self.expire_minutes)
        token_id = uuid.uuid4().hex
        claims = {
            "sub": username,
            "name": username,
            "jti": token_id,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(claims, self._secret_key, algorithm=_ALGORITHM)
        return IssuedToken(
            token=token,
            subject=username,
            token_id=token_id,
            issuer=self.issuer,
            audience=self.audience,
            issued_at=issued_at,
            expires_at=expires_at,
        )

    def decode(self, token: str) -> dict | None:
        """Verify signature, issuer, audience and expiry. Returns the claims or None.

        exp and iat must be present; jose treats them as optional otherwise.

        Returning None (rather than raising) keeps the caller simple: any
        invalid token is treated as unauthenticated.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                options={"require_exp": True, "require_iat": True},
            )
        except JWTError as exc:
            logger.debug("Rejected bearer token: %s", exc)
            return None
        if not payload.get("sub") or not payload.get("jti"):
            return None
        return payload
