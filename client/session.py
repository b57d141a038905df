"""
client/session.py -- HTTP client for the TokenGate API.

AuthClient holds the current access/refresh token pair and reproduces the
browser client's behaviour:

  - fetch_protected() sends the access token; on 403 it exchanges the
    refresh token for a new access token and retries the call exactly once.
  - If the refresh itself is rejected, both tokens are dropped and
    SessionExpiredError is raised -- the caller must log in again.
  - 401 (no token at all) is NOT retried; there is nothing to refresh.

The HTTP session is injectable. Production code uses a requests.Session;
tests pass FastAPI's TestClient, which exposes the same get/post/json/
status_code surface.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

logger = logging.getLogger("tokengate.client")


class ApiError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


class SessionExpiredError(ApiError):
    """The refresh token was rejected; a fresh login is required."""


def _error_message(resp) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or "Request failed"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if body.get("message"):
            return body["message"]
    return "Request failed"


class AuthClient:
    """Stateful client for one user session.

    Usage:
        client = AuthClient("http://localhost:3000")
        client.register("alice", "pw1")
        client.login("alice", "pw1")
        data = client.fetch_protected()
        client.logout()
    """

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        session: Any = None,
        timeout: Optional[float] = 10,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout
        self.access_token = access_token
        self.refresh_token = refresh_token

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs):
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        return getattr(self.session, method)(f"{self.base_url}/api{path}", **kwargs)

    @staticmethod
    def _raise_for_status(resp) -> None:
        if resp.status_code >= 400:
            raise ApiError(resp.status_code, _error_message(resp))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @property
    def logged_in(self) -> bool:
        return bool(self.access_token and self.refresh_token)

    def register(self, username: str, password: str) -> None:
        resp = self._request("post", "/register", json={"username": username, "password": password})
        self._raise_for_status(resp)

    def login(self, username: str, password: str) -> None:
        """Log in and keep the returned token pair on the client."""
        resp = self._request("post", "/login", json={"username": username, "password": password})
        self._raise_for_status(resp)
        data = resp.json()
        self.access_token = data["accessToken"]
        self.refresh_token = data["refreshToken"]

    def refresh(self) -> str:
        """Exchange the refresh token for a new access token and return it.

        Raises SessionExpiredError (and forgets both tokens) if the server
        rejects the refresh token.
        """
        resp = self._request("post", "/refresh-token", json={"refreshToken": self.refresh_token})
        if resp.status_code == 403:
            self.clear()
            raise SessionExpiredError(403, "Session expired. Please log in again.")
        self._raise_for_status(resp)
        data = resp.json()
        self.access_token = data["accessToken"]
        if data.get("refreshToken"):
            # Server rotates refresh tokens
            self.refresh_token = data["refreshToken"]
        return self.access_token

    def fetch_protected(self) -> dict:
        """GET /protected, refreshing and retrying once on 403."""
        resp = self._get_protected()
        if resp.status_code == 403 and self.refresh_token:
            logger.info("Access token rejected; refreshing and retrying once")
            self.refresh()
            resp = self._get_protected()
        self._raise_for_status(resp)
        return resp.json()

    def _get_protected(self):
        headers = {"Authorization": f"Bearer {self.access_token}"} if self.access_token else {}
        return self._request("get", "/protected", headers=headers)

    def logout(self) -> None:
        """Revoke the refresh token server-side, then forget both tokens."""
        resp = self._request("post", "/logout", json={"refreshToken": self.refresh_token})
        self._raise_for_status(resp)
        self.clear()

    def clear(self) -> None:
        self.access_token = None
        self.refresh_token = None
