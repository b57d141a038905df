"""
auth/tokens.py -- JWT issuance/verification and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Access and refresh tokens carry the same
       identity claims ({id, username}) but are signed with two distinct
       secrets (JWT_SECRET, JWT_REFRESH_SECRET) and two distinct lifetimes.
       A refresh token therefore never verifies as an access token.

       Refresh tokens also carry a random jti. Without it two logins by the
       same user within one second would produce byte-identical tokens, and
       logging out one session would revoke the other.

  Verification: verify_*_token() returns a TokenCheck value -- either ok
       with the decoded claims, or not ok with a short reason ("expired",
       "invalid"). Callers branch on the value; nothing raises for a bad token.

  Passwords: bcrypt directly (no passlib wrapper). The cost factor comes from
       Settings.bcrypt_rounds and can be overridden per call for tests.

  Secrets: sourced from core.config.get_settings(). The Settings class
       enforces length and distinctness at startup.

Layer rule: no imports from api/ or client/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from core.config import get_settings

logger = logging.getLogger("tokengate.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


MAX_PASSWORD_BYTES = 72


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes of UTF-8 input: older releases
    truncate silently, newer ones raise. Both are refused here with
    ValueError so two different passwords can never share a hash.
    """
    if len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
    salt = bcrypt.gensalt(rounds or _settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    if len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES:
        # Could never have been hashed by hash_password()
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# ---------------------------------------------------------------------------
# Verification result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenCheck:
    """Outcome of verifying a signed token.

    ok=True  -> claims holds the decoded payload.
    ok=False -> reason is "expired" or "invalid"; claims is empty.
    """

    ok: bool
    claims: dict = field(default_factory=dict)
    reason: str | None = None

    @classmethod
    def accept(cls, claims: dict) -> TokenCheck:
        return cls(ok=True, claims=claims)

    @classmethod
    def reject(cls, reason: str) -> TokenCheck:
        return cls(ok=False, reason=reason)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def _sign(claims: dict, secret: str, duration: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        **claims,
        "iat": now,
        "exp": now + timedelta(seconds=duration),
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def _verify(token: str, secret: str) -> TokenCheck:
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except ExpiredSignatureError:
        return TokenCheck.reject("expired")
    except JWTError:
        return TokenCheck.reject("invalid")
    if not isinstance(payload.get("id"), int) or not isinstance(payload.get("username"), str):
        return TokenCheck.reject("invalid")
    return TokenCheck.accept(payload)


def create_access_token(user_id: int, username: str, expire_seconds: int | None = None) -> str:
    """Sign a short-lived access token for the given identity.

    Args:
        user_id:        Numeric user ID stored in the DB.
        username:       Username, echoed back to clients by /protected.
        expire_seconds: Lifetime override. None uses
                        Settings.access_token_expires_in. Tests pass a
                        negative value to mint an already-expired token.
    """
    duration = _settings.access_token_expires_in if expire_seconds is None else expire_seconds
    return _sign({"id": user_id, "username": username}, _settings.jwt_secret, duration)


def create_refresh_token(user_id: int, username: str, expire_seconds: int | None = None) -> str:
    """Sign a long-lived refresh token for the given identity.

    The caller must persist it (RefreshTokenStore.insert) together with an
    expiry computed from the same setting. The stored expiry, not the exp
    claim, decides whether the token is still accepted.
    """
    duration = _settings.refresh_token_expires_in if expire_seconds is None else expire_seconds
    claims = {"id": user_id, "username": username, "jti": secrets.token_hex(16)}
    return _sign(claims, _settings.jwt_refresh_secret, duration)


def verify_access_token(token: str) -> TokenCheck:
    """Verify signature and embedded expiry under the access secret."""
    return _verify(token, _settings.jwt_secret)


def verify_refresh_token(token: str) -> TokenCheck:
    """Verify signature and embedded expiry under the refresh secret."""
    return _verify(token, _settings.jwt_refresh_secret)
