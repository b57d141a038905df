"""
auth/errors.py -- Exception hierarchy for the authentication core.

Every failure the service reports to a caller is one of these. The API layer
registers a single handler for AuthError that maps status_code and code onto
the JSON error envelope, so route handlers never build error responses by hand.

Hierarchy:
    AuthError (base)
    ├── ValidationError       400  missing or malformed input
    ├── ConflictError         400  username already taken
    ├── NotFoundError         400  unknown username at login
    ├── UnauthorizedError     401  wrong password
    ├── UnauthenticatedError  401  no access token presented
    ├── ForbiddenError        403  bad, expired or revoked token
    └── InternalError         500  store or signing failure

Conflict and not-found map to 400, not 409/404, to match the status codes
existing clients of this API already handle.

Layer rule: no imports from api/, client/ or core/.
"""

from __future__ import annotations

from typing import Optional


class AuthError(Exception):
    """Base exception for all authentication errors.

    Attributes:
        message: Human-readable error description, returned to the client.
        details: Optional extra context for the response "detail" field.
    """

    status_code: int = 500
    code: str = "auth_error"

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(AuthError):
    status_code = 400
    code = "validation_error"


class ConflictError(AuthError):
    status_code = 400
    code = "conflict"


class NotFoundError(AuthError):
    status_code = 400
    code = "not_found"


class UnauthorizedError(AuthError):
    status_code = 401
    code = "bad_credentials"


class UnauthenticatedError(AuthError):
    status_code = 401
    code = "unauthenticated"


class ForbiddenError(AuthError):
    status_code = 403
    code = "forbidden"


class InternalError(AuthError):
    status_code = 500
    code = "internal_error"
