"""
auth/service.py -- Registration, login, refresh and logout.

These functions own the token lifecycle. They take the stores as arguments
(no globals), raise AuthError subclasses for every caller-visible failure,
and never touch HTTP objects. api/routes/auth.py is a thin translation layer
on top.

Refresh flow:
    PRESENTED -> STORE_LOOKUP_PENDING -> SIGNATURE_CHECK_PENDING -> ACCEPTED
                         |                        |
                         +--------> REJECTED <----+

  The store lookup runs first: a token that was logged out or whose stored
  expiry has passed is rejected before any signature work, even if its exp
  claim is still in the future. The signature check then guards against a
  forged row or a token signed with the access secret.

Rotation:
  With Settings.rotate_refresh_tokens off (default), an accepted refresh
  token stays valid until logout or its stored expiry, so a leaked token is
  usable for its whole lifetime. Turning rotation on deletes the presented
  row and issues a replacement with every accepted refresh.

Layer rule: no imports from api/ or client/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from auth.models import TokenPair, User
from auth.store import RefreshTokenStore, UserStore
from auth.tokens import (
    MAX_PASSWORD_BYTES,
    create_access_token,
    create_refresh_token,
    hash_password,
    verify_password,
    verify_refresh_token,
)
from core.config import get_settings

logger = logging.getLogger("tokengate.auth")

MISSING_CREDENTIALS = "Username and password are required"


# ---------------------------------------------------------------------------
# Registration / login
# ---------------------------------------------------------------------------


def register_user(store: UserStore, username: str | None, password: str | None) -> int:
    """Create a local account and return its ID.

    Raises:
        ValidationError: username or password missing/empty.
                         Password longer than MAX_PASSWORD_BYTES in UTF-8.
        ConflictError:   username already taken (pre-check or insert race).
        InternalError:   the store failed.
    """
    if not username or not password:
        raise ValidationError(MISSING_CREDENTIALS)
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")

    try:
        if store.get_by_username(username) is not None:
            raise ConflictError("Username already exists")
        user_id = store.create_user(User(username=username, hashed_password=hash_password(password)))
    except IntegrityError as exc:
        # Concurrent registration won the race between the check and the insert
        raise ConflictError("Username already exists") from exc
    except SQLAlchemyError as exc:
        logger.exception("Registration failed for %r", username)
        raise InternalError("Error registering user") from exc

    logger.info("Registered user %r (id=%s)", username, user_id)
    return user_id


def login_user(
    users: UserStore,
    refresh_tokens: RefreshTokenStore,
    username: str | None,
    password: str | None,
) -> TokenPair:
    """Check credentials, then issue and persist a token pair.

    The stored expiry is computed here from the configured refresh lifetime,
    independently of the exp claim inside the token. Both come from the same
    setting so they agree to within the time it takes to sign.

    Raises:
        ValidationError:   username or password missing/empty.
        NotFoundError:     no such username.
        UnauthorizedError: password does not match.
        InternalError:     the store failed.
    """
    if not username or not password:
        raise ValidationError(MISSING_CREDENTIALS)

    settings = get_settings()
    try:
        user = users.get_by_username(username)
        if user is None:
            raise NotFoundError("User not found")
        if not verify_password(password, user.hashed_password):
            raise UnauthorizedError("Invalid credentials")

        pair = TokenPair(
            access_token=create_access_token(user.id, user.username),
            refresh_token=create_refresh_token(user.id, user.username),
        )
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=settings.refresh_token_expires_in)
        refresh_tokens.insert(user.id, pair.refresh_token, expires_at)
    except SQLAlchemyError as exc:
        logger.exception("Login failed for %r", username)
        raise InternalError("Error logging in") from exc

    logger.info("User %r logged in", username)
    return pair


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------


class RefreshState(str, Enum):
    PRESENTED = "presented"
    STORE_LOOKUP_PENDING = "store_lookup_pending"
    SIGNATURE_CHECK_PENDING = "signature_check_pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class RefreshOutcome:
    """Terminal result of one refresh attempt.

    state is always ACCEPTED or REJECTED. On ACCEPTED access_token is set,
    and refresh_token is set only when rotation is enabled. On REJECTED
    reason holds the message returned to the client and stage records the
    step that rejected the token.
    """

    state: RefreshState
    access_token: str | None = None
    refresh_token: str | None = None
    reason: str | None = None
    stage: RefreshState | None = None

    @property
    def accepted(self) -> bool:
        return self.state is RefreshState.ACCEPTED


def _reject(reason: str, stage: RefreshState) -> RefreshOutcome:
    return RefreshOutcome(state=RefreshState.REJECTED, reason=reason, stage=stage)


def refresh_access_token(
    refresh_tokens: RefreshTokenStore,
    token: str | None,
    rotate: bool | None = None,
) -> RefreshOutcome:
    """Run the refresh state machine for a presented token.

    Args:
        refresh_tokens: store holding the persisted refresh tokens.
        token:          the refresh token the client presented.
        rotate:         override Settings.rotate_refresh_tokens.

    Raises InternalError only when the store itself fails; every rejection
    is reported through the returned outcome.
    """
    settings = get_settings()
    rotate = settings.rotate_refresh_tokens if rotate is None else rotate

    state = RefreshState.PRESENTED
    if not token:
        return _reject("Refresh token required", state)

    state = RefreshState.STORE_LOOKUP_PENDING
    try:
        row = refresh_tokens.find_valid(token)
    except SQLAlchemyError as exc:
        logger.exception("Refresh token lookup failed")
        raise InternalError("Error refreshing token") from exc
    if row is None:
        return _reject("Invalid or expired refresh token", state)

    state = RefreshState.SIGNATURE_CHECK_PENDING
    check = verify_refresh_token(token)
    if not check.ok or check.claims["id"] != row.user_id:
        logger.warning("Refresh token for user_id=%s failed verification (%s)", row.user_id, check.reason)
        return _reject("Invalid refresh token", state)

    user_id, username = check.claims["id"], check.claims["username"]
    new_refresh: str | None = None
    if rotate:
        new_refresh = create_refresh_token(user_id, username)
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=settings.refresh_token_expires_in)
        try:
            # Delete first: if the insert then fails the client must log in
            # again, which is safer than leaving two live tokens.
            if refresh_tokens.delete_by_token(token) == 0:
                # A concurrent logout or rotation already consumed this token
                return _reject("Invalid or expired refresh token", state)
            refresh_tokens.insert(user_id, new_refresh, expires_at)
        except SQLAlchemyError as exc:
            logger.exception("Refresh token rotation failed for user_id=%s", user_id)
            raise InternalError("Error refreshing token") from exc

    state = RefreshState.ACCEPTED
    return RefreshOutcome(
        state=state,
        access_token=create_access_token(user_id, username),
        refresh_token=new_refresh,
    )


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------


def logout_user(refresh_tokens: RefreshTokenStore, token: str | None) -> int:
    """Revoke a refresh token. Idempotent; returns the number of rows removed."""
    if not token:
        return 0
    try:
        removed = refresh_tokens.delete_by_token(token)
    except SQLAlchemyError as exc:
        logger.exception("Logout failed")
        raise InternalError("Error logging out") from exc
    logger.info("Logout removed %d refresh token(s)", removed)
    return removed
