"""
auth/service.py -- Registration and credential verification.

CredentialService is the only component that combines the store and the
hasher. It returns UserRecord on success and AuthFailure otherwise; it never
raises for a domain failure. Store exceptions other than DuplicateKeyError
propagate to the boundary in auth/flows.py.

Enumeration resistance:
  verify() returns the same INVALID_CREDENTIALS failure for an unknown
  username and for a wrong password, and runs bcrypt in both cases so the
  response time does not reveal which one happened.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

from auth.clock import Clock, utc_now
from auth.errors import AuthErrorKind, AuthFailure
from auth.models import UserRecord
from auth.passwords import PasswordHasher
from auth.store import DuplicateKeyError, UserStore

logger = logging.getLogger("loginapi.auth.service")

_DUPLICATE_KIND = {
    "username": AuthErrorKind.DUPLICATE_USERNAME,
    "email": AuthErrorKind.DUPLICATE_EMAIL,
}


class CredentialService:
    def __init__(self, store: UserStore, hasher: PasswordHasher, clock: Clock = utc_now) -> None:
        self.store = store
        self.hasher = hasher
        self._clock = clock

    def register(
        self,
        username: str,
        password: str,
        confirm_password: str,
        email: str | None = None,
    ) -> UserRecord | AuthFailure:
        """Create a new account.

        Checks run in a fixed order: password confirmation, username, then
        email. A duplicate username is reported without looking at the email.
        Exactly one insert happens on success and none on any failure.
        """
        if password != confirm_password:
            return AuthFailure(
                AuthErrorKind.VALIDATION_FAILED,
                field_errors={"confirmPassword": ["Password and confirmation password do not match"]},
            )

        if self.store.find_by_username(username) is not None:
            logger.warning("Registration rejected: username %s already exists", username)
            return AuthFailure(AuthErrorKind.DUPLICATE_USERNAME)

        if email and self.store.find_by_email(email) is not None:
            logger.warning("Registration rejected: email %s already in use", email)
            return AuthFailure(AuthErrorKind.DUPLICATE_EMAIL)

        record = UserRecord(
            username=username,
            password_hash=self.hasher.hash(password),
            email=email or None,
            created_at=self._clock(),
        )
        try:
            return self.store.insert(record)
        except DuplicateKeyError as exc:
            # Lost a race with a concurrent registration.
            logger.warning("Registration rejected at insert: duplicate %s for %s", exc.field, username)
            return AuthFailure(_DUPLICATE_KIND[exc.field])

    def verify(self, username: str, password: str) -> UserRecord | AuthFailure:
        """Check a username/password pair.

        Always runs bcrypt whether or not the user exists:
        - Unknown username: bcrypt runs against the hasher's dummy digest
        - Wrong password: bcrypt runs against the real digest
        """
        user = self.store.find_by_username(username)
        if user is None:
            # Equalize timing -- do NOT return before running bcrypt.
            self.hasher.verify_dummy(password)
            logger.warning("Login failed for %s", username)
            return AuthFailure(AuthErrorKind.INVALID_CREDENTIALS)
        if not self.hasher.verify(password, user.password_hash):
            logger.warning("Login failed for %s", username)
            return AuthFailure(AuthErrorKind.INVALID_CREDENTIALS)
        return user

    def mark_logged_in(self, user: UserRecord) -> UserRecord:
        """Bump updated_at to now. Called by the standard login flow only."""
        now = self._clock()
        self.store.touch_updated_at(user.id, now)
        user.updated_at = now
        return user
