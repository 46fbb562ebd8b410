"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_auth_flows() hands route handlers the AuthFlows instance built in the
app lifespan.

get_token_claims() is what downstream routes use to assert identity from a
bearer token. It checks signature, issuer, audience and expiry and nothing
else: there is no store lookup and no revocation list, so the claims are
trusted exactly as long as the token is unexpired.

The OAuth2PasswordBearer scheme points at the password grant endpoint, which
makes the generated OpenAPI document offer a working "Authorize" flow.

Layer rule: auth/dependencies.py may import from fastapi because this module
is part of the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from fastapi.security import OAuth2PasswordBearer

from auth.flows import AuthFlows

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def get_auth_flows(request: Request) -> AuthFlows:
    return request.app.state.auth_flows


def get_token_claims(
    token: str | None = Depends(oauth2_scheme),
    flows: AuthFlows = Depends(get_auth_flows),
) -> dict:
    """Require a valid bearer token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(claims: dict = Depends(get_token_claims)): ...
    """
    claims = flows.tokens.decode(token) if token else None
    if claims is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return claims
