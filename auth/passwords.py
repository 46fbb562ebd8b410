"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

bcrypt only ever reads the first 72 bytes of its input, and bcrypt >= 4.1
raises instead of silently truncating. We truncate explicitly on both hash
and verify so the two always see the same bytes.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import bcrypt

_BCRYPT_MAX_BYTES = 72


def _to_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class PasswordHasher:
    """One-way salted hashing for stored credentials.

    Usage:
        hasher = PasswordHasher(rounds=12)
        digest = hasher.hash("secret1")
        hasher.verify("secret1", digest)  # True
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        # Timing equalization dummy. Computed at construction, at the
        # configured cost, so the first unknown-username login is not
        # measurably slower than later ones.
        self._dummy_hash: str = self.hash("loginapi_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a self-contained bcrypt digest (salt and cost are embedded)."""
        return bcrypt.hashpw(_to_bytes(plain), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if the plaintext matches the digest.

        A malformed or empty digest returns False instead of raising.
        bcrypt.checkpw compares in constant time.
        """
        try:
            return bcrypt.checkpw(_to_bytes(plain), hashed.encode("utf-8"))
        except (ValueError, TypeError, AttributeError):
            return False

    def verify_dummy(self, plain: str) -> None:
        """Burn one verify's worth of CPU against a throwaway digest."""
        self.verify(plain, self._dummy_hash)
