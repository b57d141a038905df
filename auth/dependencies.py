"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_current_identity() is the access-token gate for protected routes:
  - no "Authorization: Bearer <token>" header -> UnauthenticatedError (401)
  - bad signature or expired token            -> ForbiddenError (403)
  - otherwise the decoded Identity is stored on request.state.identity
    and returned to the route.

The check is stateless: it verifies the signature and embedded expiry only.
Access tokens are not persisted, so nothing is looked up and nothing is
cached between requests. The 401/403 split matters to clients: 403 is
their signal to try POST /refresh-token and retry once.

The stores are reached through request.app.state (see get_user_store /
get_refresh_store) so tests can swap them by patching the lifespan.

Layer rule: no imports from client/. auth/dependencies.py may import from
fastapi because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import ForbiddenError, UnauthenticatedError
from auth.models import Identity
from auth.store import RefreshTokenStore, UserStore
from auth.tokens import verify_access_token


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def get_current_identity(request: Request) -> Identity:
    """Require a valid access token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_current_identity)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise UnauthenticatedError("Access token required")

    check = verify_access_token(token)
    if not check.ok:
        raise ForbiddenError("Invalid access token", details=check.reason)

    identity = Identity(
        id=check.claims["id"],
        username=check.claims["username"],
        issued_at=check.claims.get("iat"),
        expires_at=check.claims.get("exp"),
    )
    request.state.identity = identity
    return identity


def get_user_store(request: Request) -> UserStore:
    return request.app.state.user_store


def get_refresh_store(request: Request) -> RefreshTokenStore:
    return request.app.state.refresh_store
