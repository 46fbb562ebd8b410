"""
auth/flows.py -- The three public authentication flows.

  register        -- create the account, then issue a token
  login           -- verify, bump updated_at, issue a token
  password_grant  -- OAuth2 "password" grant: verify, issue a token,
                     do NOT bump updated_at

Only login records activity on the account; password_grant leaves
updated_at untouched.

Each flow returns a typed result or an AuthFailure. Failure-to-status
mapping lives in api/routes/auth.py.

Boundary:
  @_boundary is the one place where an unexpected exception from a
  collaborator (store down, driver error, timeout) is caught. It is logged
  with traceback and becomes AuthErrorKind.INTERNAL; nothing about the cause
  reaches the caller.

Layer rule: no imports from api/. core/ is allowed (build_auth_flows reads
Settings).
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass

from auth.clock import Clock, utc_now
from auth.errors import AuthErrorKind, AuthFailure
from auth.models import IssuedToken
from auth.passwords import PasswordHasher
from auth.service import CredentialService
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import Settings

logger = logging.getLogger("loginapi.auth.flows")

PASSWORD_GRANT_TYPE = "password"


@dataclass(frozen=True)
class SessionGrant:
    """Result of register and login: the token plus the envelope message."""

    username: str
    issued: IssuedToken
    message: str


@dataclass(frozen=True)
class PasswordGrant:
    """Result of the OAuth2 password grant."""

    access_token: str
    expires_in: int
    username: str
    token_type: str = "Bearer"


def _boundary(flow):
    @functools.wraps(flow)
    def wrapper(self, *args, **kwargs):
        try:
            return flow(self, *args, **kwargs)
        except Exception:
            logger.exception("Unexpected failure in %s", flow.__name__)
            return AuthFailure(AuthErrorKind.INTERNAL)

    return wrapper


class AuthFlows:
    def __init__(self, credentials: CredentialService, tokens: TokenIssuer) -> None:
        self.credentials = credentials
        self.tokens = tokens

    @_boundary
    def register(
        self,
        username: str,
        password: str,
        confirm_password: str,
        email: str | None = None,
    ) -> SessionGrant | AuthFailure:
        user = self.credentials.register(username, password, confirm_password, email)
        if isinstance(user, AuthFailure):
            return user
        issued = self.tokens.issue(user.username)
        logger.info("User %s registered", user.username)
        return SessionGrant(username=user.username, issued=issued, message="Registration successful")

    @_boundary
    def login(self, username: str, password: str) -> SessionGrant | AuthFailure:
        user = self.credentials.verify(username, password)
        if isinstance(user, AuthFailure):
            return user
        self.credentials.mark_logged_in(user)
        issued = self.tokens.issue(user.username)
        logger.info("User %s logged in", user.username)
        return SessionGrant(username=user.username, issued=issued, message="Login successful")

    @_boundary
    def password_grant(self, grant_type: str, username: str, password: str) -> PasswordGrant | AuthFailure:
        # Checked before any store access; a wrong grant type is a client
        # error, not a credential error.
        if grant_type != PASSWORD_GRANT_TYPE:
            return AuthFailure(AuthErrorKind.UNSUPPORTED_GRANT_TYPE)
        user = self.credentials.verify(username, password)
        if isinstance(user, AuthFailure):
            return user
        issued = self.tokens.issue(user.username)
        logger.info("User %s obtained a token via password grant", user.username)
        return PasswordGrant(
            access_token=issued.token,
            expires_in=self.tokens.expires_in_seconds,
            username=user.username,
        )


def build_auth_flows(settings: Settings, store: UserStore, clock: Clock = utc_now) -> AuthFlows:
    """Wire the core from Settings. Called once from the app lifespan."""
    credentials = CredentialService(store, PasswordHasher(rounds=settings.bcrypt_rounds), clock=clock)
    tokens = TokenIssuer(
        settings.secret_key,
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
        expire_minutes=settings.token_expire_minutes,
        clock=clock,
    )
    return AuthFlows(credentials, tokens)
