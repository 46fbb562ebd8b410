"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store, service, and routes do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class UserRecord:
    """A registered local account.

    password_hash is the self-contained bcrypt digest; the plaintext is never
    held here. email is optional but unique across the store when present.

    created_at is stamped once at registration. updated_at stays None until
    the first successful standard login and is bumped on each one after that
    (the OAuth2 password grant leaves it alone).
    """

    username: str
    password_hash: str
    created_at: datetime
    email: str | None = None
    updated_at: datetime | None = None
    id: int | None = None  # assigned by the store on insert


@dataclass(frozen=True)
class IssuedToken:
    """A signed bearer token plus the claims it embeds.

    The core keeps no session table -- this object exists only long enough to
    be serialized into a response. Validity is decided entirely by the
    signature and `expires_at`.
    """

    token: str
    subject: str
    token_id: str
    issuer: str
    audience: str
    issued_at: datetime
    expires_at: datetime

    @property
    def lifetime_seconds(self) -> int:
        return int((self.expires_at - self.issued_at).total_seconds())
