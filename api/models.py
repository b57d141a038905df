"""
API request and response models for TokenGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Wire format is camelCase (accessToken, refreshToken) because that is what
existing browser clients send and read. Python attribute names stay
snake_case; the alias generator does the mapping, and populate_by_name lets
Python callers and tests use either spelling.

Request fields are Optional on purpose: a missing username or refreshToken
is a domain-level 400/403 decided by auth.service, not a 422 from Pydantic.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import Identity
from auth.tokens import MAX_PASSWORD_BYTES

_WIRE = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CredentialsRequest(BaseModel):
    """Request body for POST /api/register and POST /api/login.

    Only the username is stripped. The password is kept byte for byte, so
    "  secret  " and "secret" are different credentials. Its limit is
    bcrypt's 72 bytes of UTF-8, not 72 characters.
    """

    model_config = _WIRE

    username: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = None

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("password")
    @classmethod
    def check_password_bytes(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
        return value


class RefreshRequest(BaseModel):
    """Request body for POST /api/refresh-token and POST /api/logout."""

    model_config = _WIRE

    refresh_token: Optional[str] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class LoginResponse(BaseModel):
    """Response for POST /api/login."""

    model_config = ConfigDict(frozen=True, **_WIRE)

    access_token: str
    refresh_token: str


class RefreshResponse(BaseModel):
    """Response for POST /api/refresh-token.

    refresh_token is only present when rotation is enabled; the route
    excludes None fields so the default wire shape is {accessToken}.
    """

    model_config = ConfigDict(frozen=True, **_WIRE)

    access_token: str
    refresh_token: Optional[str] = None


class UserClaims(BaseModel):
    """The decoded access-token identity echoed back by /api/protected."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    iat: Optional[int] = None
    exp: Optional[int] = None

    @classmethod
    def from_identity(cls, identity: Identity) -> "UserClaims":
        return cls(
            id=identity.id,
            username=identity.username,
            iat=identity.issued_at,
            exp=identity.expires_at,
        )


class ProtectedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    user: UserClaims


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
