"""
api/routes/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/auth/register  -- create account; envelope with token
  POST /api/auth/login     -- password login; envelope with token
  POST /api/auth/token     -- OAuth2 password grant (form-encoded); token shape
  GET  /api/auth/me        -- claims of the presented bearer token

The handlers are plain `def`, so FastAPI runs them in its thread pool and
bcrypt never blocks the event loop.

Outcome mapping:
  AuthFlows returns either a result or an AuthFailure. The tables below are
  the only place a failure kind becomes an HTTP status.

Security:
  POST /login and POST /token are rate-limited per client IP.
  Unknown username and wrong password produce byte-identical responses.
  Cache-Control: no-store on every response that may carry a token.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    ApiResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    OAuthErrorResponse,
    RegisterRequest,
    TokenResponse,
)
from auth.dependencies import get_auth_flows, get_token_claims
from auth.errors import AuthErrorKind, AuthFailure
from auth.flows import AuthFlows, SessionGrant
from core.config import get_settings

_settings = get_settings()

router = APIRouter()

_ENVELOPE_STATUS: dict[AuthErrorKind, int] = {
    AuthErrorKind.VALIDATION_FAILED: 422,
    AuthErrorKind.DUPLICATE_USERNAME: 409,
    AuthErrorKind.DUPLICATE_EMAIL: 409,
    AuthErrorKind.INVALID_CREDENTIALS: 401,
    AuthErrorKind.UNSUPPORTED_GRANT_TYPE: 400,
    AuthErrorKind.INTERNAL: 500,
}

_OAUTH_ERRORS: dict[AuthErrorKind, tuple[int, str]] = {
    AuthErrorKind.UNSUPPORTED_GRANT_TYPE: (400, "unsupported_grant_type"),
    AuthErrorKind.INVALID_CREDENTIALS: (401, "invalid_grant"),
    AuthErrorKind.INTERNAL: (500, "server_error"),
}


# ---------------------------------------------------------------------------
# Envelope flows
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=ApiResponse)
def register(body: RegisterRequest, flows: AuthFlows = Depends(get_auth_flows)) -> JSONResponse:
    """Create an account and return a token for it.

    409 on a duplicate username (checked first) or a duplicate email.
    """
    result = flows.register(body.username, body.password, body.confirm_password, body.email)
    return _envelope(result)


@router.post("/auth/login", response_model=ApiResponse)
@limiter.limit(_settings.login_rate_limit)  # under @router so the registered endpoint is the limited one
def login(request: Request, body: LoginRequest, flows: AuthFlows = Depends(get_auth_flows)) -> JSONResponse:
    """Authenticate with username and password.

    Returns the same 401 for a wrong username and a wrong password to avoid
    leaking username existence.
    """
    result = flows.login(body.username, body.password)
    return _envelope(result)


@router.get("/auth/me", response_model=ApiResponse)
def me(claims: dict = Depends(get_token_claims)) -> JSONResponse:
    """Echo the identity asserted by a valid bearer token. Never touches the store."""
    data = MeResponse(
        username=claims["sub"],
        token_id=claims["jti"],
        expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
    )
    return JSONResponse(
        status_code=200,
        content=ApiResponse(
            status_code=200,
            success=True,
            message="Token is valid",
            data=data.model_dump(mode="json", by_alias=True),
        ).to_content(),
    )


# ---------------------------------------------------------------------------
# OAuth2 password grant
# ---------------------------------------------------------------------------


@router.post(
    "/auth/token",
    response_model=TokenResponse,
    responses={400: {"model": OAuthErrorResponse}, 401: {"model": OAuthErrorResponse}},
)
@limiter.limit(_settings.login_rate_limit)
def token(
    request: Request,
    grant_type: str = Form(default="password"),
    username: str = Form(...),
    password: str = Form(...),
    flows: AuthFlows = Depends(get_auth_flows),
) -> JSONResponse:
    """Exchange a username and password for a bearer token.

    Only grant_type=password is accepted; anything else is a 400 before the
    credentials are looked at. Unlike /login this does not record the login
    on the account.
    """
    result = flows.password_grant(grant_type, username, password)
    if isinstance(result, AuthFailure):
        status_code, error = _OAUTH_ERRORS.get(result.kind, (400, "invalid_request"))
        resp = JSONResponse(
            status_code=status_code,
            content=OAuthErrorResponse(error=error, error_description=result.message).model_dump(),
        )
    else:
        resp = JSONResponse(
            status_code=200,
            content=TokenResponse(
                access_token=result.access_token,
                token_type=result.token_type,
                expires_in=result.expires_in,
                username=result.username,
            ).model_dump(),
        )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _envelope(result: SessionGrant | AuthFailure) -> JSONResponse:
    if isinstance(result, AuthFailure):
        status_code = _ENVELOPE_STATUS[result.kind]
        resp = JSONResponse(
            status_code=status_code,
            content=ApiResponse.fail(status_code, result.message, result.field_errors).to_content(),
        )
    else:
        data = LoginResponse(
            success=True,
            token=result.issued.token,
            message=result.message,
            expires_at=result.issued.expires_at,
        )
        resp = JSONResponse(
            status_code=200,
            content=ApiResponse(
                status_code=200,
                success=True,
                message=result.message,
                data=data.model_dump(mode="json", by_alias=True),
            ).to_content(),
        )
    resp.headers["Cache-Control"] = "no-store"
    return resp
