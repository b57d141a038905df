"""
api/routes/auth.py -- Authentication REST endpoints.

Routes (mounted under /api by api/main.py):
  POST /register       -- create an account; 201
  POST /login          -- verify credentials; returns {accessToken, refreshToken}
  POST /refresh-token  -- exchange a refresh token for a new access token
  GET  /protected      -- sample protected resource (requires access token)
  POST /logout         -- revoke a refresh token; 200 even if already gone

All business rules live in auth.service. Handlers here only pull the stores
off app.state, call the service, and shape the response. Failures are raised
as auth.errors.AuthError subclasses and rendered by the handler in api/main.py.

Security:
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from api.models import (
    CredentialsRequest,
    LoginResponse,
    MessageResponse,
    ProtectedResponse,
    RefreshRequest,
    RefreshResponse,
    UserClaims,
)
from auth.dependencies import get_current_identity, get_refresh_store, get_user_store
from auth.errors import ForbiddenError
from auth.models import Identity
from auth.service import login_user, logout_user, refresh_access_token, register_user
from auth.store import RefreshTokenStore, UserStore

# Auth policy:
# - POST /api/register:       public
# - POST /api/login:          public
# - POST /api/refresh-token:  public -- the refresh token itself is the credential
# - POST /api/logout:         public -- the refresh token itself is the credential
# - GET  /api/protected:      requires access token (get_current_identity)
router = APIRouter()


@router.post("/register", response_model=MessageResponse, status_code=201)
def register(body: CredentialsRequest, users: UserStore = Depends(get_user_store)) -> MessageResponse:
    """Create a local account. Duplicate usernames get 400."""
    register_user(users, body.username, body.password)
    return MessageResponse(message="User registered successfully")


@router.post("/login", response_model=LoginResponse)
def login(
    body: CredentialsRequest,
    response: Response,
    users: UserStore = Depends(get_user_store),
    refresh_tokens: RefreshTokenStore = Depends(get_refresh_store),
) -> LoginResponse:
    """Authenticate with username and password; return an access/refresh token pair.

    Unknown username -> 400 "User not found"; wrong password -> 401.
    """
    pair = login_user(users, refresh_tokens, body.username, body.password)
    response.headers["Cache-Control"] = "no-store"
    return LoginResponse(access_token=pair.access_token, refresh_token=pair.refresh_token)


@router.post("/refresh-token", response_model=RefreshResponse, response_model_exclude_none=True)
def refresh_token(
    body: RefreshRequest,
    response: Response,
    refresh_tokens: RefreshTokenStore = Depends(get_refresh_store),
) -> RefreshResponse:
    """Exchange a stored, unexpired, correctly signed refresh token for a new access token.

    Every rejection (missing, unknown, logged out, expired, bad signature) is 403.
    """
    outcome = refresh_access_token(refresh_tokens, body.refresh_token)
    if not outcome.accepted:
        raise ForbiddenError(outcome.reason or "Invalid refresh token")
    response.headers["Cache-Control"] = "no-store"
    return RefreshResponse(access_token=outcome.access_token, refresh_token=outcome.refresh_token)


@router.get("/protected", response_model=ProtectedResponse)
def protected(identity: Identity = Depends(get_current_identity)) -> ProtectedResponse:
    """Return the caller's decoded identity. 401 without a token, 403 with a bad one."""
    return ProtectedResponse(
        message="Protected data accessed successfully",
        user=UserClaims.from_identity(identity),
    )


@router.post("/logout", response_model=MessageResponse)
def logout(
    body: RefreshRequest,
    refresh_tokens: RefreshTokenStore = Depends(get_refresh_store),
) -> MessageResponse:
    """Revoke the presented refresh token. Idempotent."""
    logout_user(refresh_tokens, body.refresh_token)
    return MessageResponse(message="Logged out successfully")
