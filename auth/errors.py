"""
auth/errors.py -- Typed failure outcomes for the authentication core.

Domain failures are values, not exceptions. Every core operation returns
either its success type or an AuthFailure, and callers branch on
isinstance(result, AuthFailure). Only genuinely unexpected collaborator
failures travel as exceptions, and those are caught at one boundary
(auth/flows.py) and turned into AuthErrorKind.INTERNAL.

The HTTP layer owns the mapping from kind to status code; this module knows
nothing about HTTP.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class AuthErrorKind(str, Enum):
    VALIDATION_FAILED = "validation_failed"
    DUPLICATE_USERNAME = "duplicate_username"
    DUPLICATE_EMAIL = "duplicate_email"
    # Covers both "no such user" and "wrong password" -- never split these.
    INVALID_CREDENTIALS = "invalid_credentials"
    UNSUPPORTED_GRANT_TYPE = "unsupported_grant_type"
    INTERNAL = "internal"


_DEFAULT_MESSAGES: dict[AuthErrorKind, str] = {
    AuthErrorKind.VALIDATION_FAILED: "Validation failed",
    AuthErrorKind.DUPLICATE_USERNAME: "Username already exists",
    AuthErrorKind.DUPLICATE_EMAIL: "Email is already in use",
    AuthErrorKind.INVALID_CREDENTIALS: "Invalid username or password",
    AuthErrorKind.UNSUPPORTED_GRANT_TYPE: "Only the password grant type is supported",
    AuthErrorKind.INTERNAL: "Internal server error",
}


@dataclass(frozen=True)
class AuthFailure:
    """A failed core operation.

    field_errors is only populated for VALIDATION_FAILED and maps the wire
    field name to its messages, matching the 422 envelope's `errors` map.
    """

    kind: AuthErrorKind
    message: str = ""
    field_errors: dict[str, list[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.message:
            object.__setattr__(self, "message", _DEFAULT_MESSAGES[self.kind])
