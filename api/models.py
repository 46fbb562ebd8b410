"""
API request and response models for the Login API REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Two disjoint response contracts live here:
  ApiResponse    -- the uniform envelope for register, login, me and errors
                    {statusCode, success, message, data?, errors?}
  TokenResponse  -- the OAuth2 token shape for the password grant
                    {access_token, token_type, expires_in, username}
                    with OAuthErrorResponse {error, error_description} on failure

Request field rules (lengths, username pattern, confirmation match, email
syntax) are enforced here, before the auth core is invoked.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationInfo, field_validator

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

USERNAME_PATTERN = r"^[A-Za-z0-9_]+$"
EMAIL_MAX_LENGTH = 100


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    username: str = Field(min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    password: str = Field(min_length=6, max_length=100)


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register.

    Wire names are camelCase (confirmPassword); populate_by_name lets Python
    callers use confirm_password as well.
    """

    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    password: str = Field(min_length=6, max_length=100)
    confirm_password: str = Field(alias="confirmPassword", min_length=1)
    email: Optional[EmailStr] = None

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, value: str, info: ValidationInfo) -> str:
        # password is absent from info.data when it failed its own checks;
        # that error is already reported, so don't pile a second one on top.
        password = info.data.get("password")
        if password is not None and value != password:
            raise ValueError("Password and confirmation password do not match")
        return value

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        """Treat "" as "no email" and cap the length before syntax validation."""
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        if isinstance(value, str) and len(value) > EMAIL_MAX_LENGTH:
            raise ValueError(f"Email must be at most {EMAIL_MAX_LENGTH} characters")
        return value


# ---------------------------------------------------------------------------
# Response models -- uniform envelope
# ---------------------------------------------------------------------------


class LoginResponse(BaseModel):
    """`data` payload of a successful register or login."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    token: Optional[str] = None
    message: Optional[str] = None
    # The token's own exp claim -- the envelope never computes a second expiry.
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")


class MeResponse(BaseModel):
    """`data` payload of GET /api/auth/me."""

    model_config = ConfigDict(populate_by_name=True)

    username: str
    token_id: str = Field(alias="tokenId")
    expires_at: datetime = Field(alias="expiresAt")


class ApiResponse(BaseModel):
    """The uniform response envelope.

    `errors` maps a request field (wire spelling) to its validation messages
    and is only present on 422 responses.
    """

    model_config = ConfigDict(populate_by_name=True)

    status_code: int = Field(alias="statusCode")
    success: bool
    message: str
    data: Optional[Any] = None
    field_errors: Optional[dict[str, list[str]]] = Field(default=None, alias="errors")

    def to_content(self) -> dict:
        """JSON-ready dict with wire names; absent optionals are omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def fail(cls, status_code: int, message: str, field_errors: Optional[dict[str, list[str]]] = None) -> "ApiResponse":
        return cls(status_code=status_code, success=False, message=message, field_errors=field_errors or None)


# ---------------------------------------------------------------------------
# Response models -- OAuth2 token endpoint
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """Successful password grant (RFC 6749 section 5.1, plus username)."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    username: str


class OAuthErrorResponse(BaseModel):
    """Failed password grant (RFC 6749 section 5.2)."""

    error: str
    error_description: str


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
