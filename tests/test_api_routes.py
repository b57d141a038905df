"""
tests/test_api_routes.py -- Integration tests for the /api auth routes.

These tests exercise the full stack: FastAPI routing -> dependency injection
-> auth.service -> UserStore/RefreshTokenStore -> response model
serialization -> exception handlers. Each test registers its own username
because the module shares one in-memory database.

Coverage:
  - POST /register: 201, duplicate 400, missing fields 400, malformed body 400
  - POST /login: camelCase token pair, unknown user 400, bad password 401
  - GET /protected: 401 without token, 403 with bad/expired token, 200 claims
  - POST /refresh-token: 403 for missing/unknown/revoked tokens, 200 otherwise
  - POST /logout: idempotent 200
  - Error envelope on unknown paths
  - The complete register -> login -> protected -> refresh -> logout flow

Fixtures used (from conftest.py):
  - api_client: TestClient over the real app with an isolated store
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from auth.tokens import create_access_token, verify_access_token


def _register(client: TestClient, username: str, password: str = "pw1"):
    return client.post("/api/register", json={"username": username, "password": password})


def _login(client: TestClient, username: str, password: str = "pw1") -> dict:
    _register(client, username, password)
    resp = client.post("/api/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestRoot:
    def test_welcome(self, api_client: TestClient) -> None:
        resp = api_client.get("/")
        assert resp.status_code == 200
        assert resp.json() == {"message": "Welcome to API"}

    def test_unknown_path_uses_error_envelope(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/nope")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "http_404"


class TestRegister:
    def test_created(self, api_client: TestClient) -> None:
        resp = _register(api_client, "reg-new")
        assert resp.status_code == 201
        assert resp.json() == {"message": "User registered successfully"}

    def test_duplicate(self, api_client: TestClient) -> None:
        _register(api_client, "reg-dup")
        resp = _register(api_client, "reg-dup", "other")
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Username already exists"

    def test_missing_password(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/register", json={"username": "reg-nopw"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_empty_body(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/register", json={})
        assert resp.status_code == 400

    def test_malformed_json(self, api_client: TestClient) -> None:
        resp = api_client.post(
            "/api/register",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_password_over_bcrypt_limit(self, api_client: TestClient) -> None:
        resp = _register(api_client, "reg-long", "x" * 73)
        assert resp.status_code == 400

    def test_multibyte_password_over_72_bytes(self, api_client: TestClient) -> None:
        """40 characters but 80 bytes of UTF-8: over bcrypt's limit."""
        resp = _register(api_client, "reg-mb", "\u00e9" * 40)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_multibyte_password_at_72_bytes(self, api_client: TestClient) -> None:
        assert _register(api_client, "reg-mb-ok", "\u00e9" * 36).status_code == 201
        resp = api_client.post("/api/login", json={"username": "reg-mb-ok", "password": "\u00e9" * 36})
        assert resp.status_code == 200

    def test_password_whitespace_is_significant(self, api_client: TestClient) -> None:
        assert _register(api_client, "reg-ws", "  secret  ").status_code == 201
        stripped = api_client.post("/api/login", json={"username": "reg-ws", "password": "secret"})
        assert stripped.status_code == 401
        exact = api_client.post("/api/login", json={"username": "reg-ws", "password": "  secret  "})
        assert exact.status_code == 200

    def test_blank_password_is_a_password(self, api_client: TestClient) -> None:
        assert _register(api_client, "reg-blank", "   ").status_code == 201

    def test_username_is_stripped(self, api_client: TestClient) -> None:
        assert _register(api_client, "  reg-pad  ").status_code == 201
        resp = api_client.post("/api/login", json={"username": "reg-pad", "password": "pw1"})
        assert resp.status_code == 200


class TestLogin:
    def test_returns_camel_case_pair(self, api_client: TestClient) -> None:
        _register(api_client, "login-ok")
        resp = api_client.post("/api/login", json={"username": "login-ok", "password": "pw1"})
        assert resp.status_code == 200
        data = resp.json()
        assert set(data) == {"accessToken", "refreshToken"}
        assert data["accessToken"] != data["refreshToken"]
        assert resp.headers["Cache-Control"] == "no-store"

    def test_unknown_user(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/login", json={"username": "login-ghost", "password": "pw1"})
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "User not found"

    def test_wrong_password(self, api_client: TestClient) -> None:
        _register(api_client, "login-bad")
        resp = api_client.post("/api/login", json={"username": "login-bad", "password": "nope"})
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Invalid credentials"

    def test_missing_fields(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/login", json={"username": "login-ok"})
        assert resp.status_code == 400


class TestProtected:
    def test_no_token_is_401(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/protected")
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Access token required"

    def test_non_bearer_header_is_401(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/protected", headers={"Authorization": "Token abc"})
        assert resp.status_code == 401

    def test_garbage_token_is_403(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/protected", headers=_bearer("not-a-jwt"))
        assert resp.status_code == 403
        assert resp.json()["error"]["message"] == "Invalid access token"

    def test_expired_token_is_403(self, api_client: TestClient) -> None:
        token = create_access_token(1, "someone", expire_seconds=-10)
        resp = api_client.get("/api/protected", headers=_bearer(token))
        assert resp.status_code == 403
        assert resp.json()["error"]["detail"] == "expired"

    def test_refresh_token_is_not_accepted(self, api_client: TestClient) -> None:
        tokens = _login(api_client, "prot-swap")
        resp = api_client.get("/api/protected", headers=_bearer(tokens["refreshToken"]))
        assert resp.status_code == 403

    def test_returns_decoded_identity(self, api_client: TestClient) -> None:
        tokens = _login(api_client, "prot-ok")
        resp = api_client.get("/api/protected", headers=_bearer(tokens["accessToken"]))
        assert resp.status_code == 200
        data = resp.json()
        assert data["message"] == "Protected data accessed successfully"
        assert data["user"]["username"] == "prot-ok"
        assert data["user"]["exp"] > data["user"]["iat"]


class TestRefreshToken:
    def test_issues_new_access_token(self, api_client: TestClient) -> None:
        tokens = _login(api_client, "ref-ok")
        resp = api_client.post("/api/refresh-token", json={"refreshToken": tokens["refreshToken"]})
        assert resp.status_code == 200
        data = resp.json()
        assert set(data) == {"accessToken"}
        assert resp.headers["Cache-Control"] == "no-store"
        check = verify_access_token(data["accessToken"])
        assert check.ok and check.claims["username"] == "ref-ok"

    def test_missing_token(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/refresh-token", json={})
        assert resp.status_code == 403
        assert resp.json()["error"]["message"] == "Refresh token required"

    def test_unknown_token(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/refresh-token", json={"refreshToken": "never-issued"})
        assert resp.status_code == 403
        assert resp.json()["error"]["message"] == "Invalid or expired refresh token"

    def test_access_token_rejected(self, api_client: TestClient) -> None:
        tokens = _login(api_client, "ref-swap")
        resp = api_client.post("/api/refresh-token", json={"refreshToken": tokens["accessToken"]})
        assert resp.status_code == 403


class TestLogout:
    def test_idempotent(self, api_client: TestClient) -> None:
        tokens = _login(api_client, "out-twice")
        body = {"refreshToken": tokens["refreshToken"]}
        first = api_client.post("/api/logout", json=body)
        second = api_client.post("/api/logout", json=body)
        assert first.status_code == second.status_code == 200
        assert first.json() == {"message": "Logged out successfully"}

    def test_without_token(self, api_client: TestClient) -> None:
        assert api_client.post("/api/logout", json={}).status_code == 200

    def test_other_sessions_survive(self, api_client: TestClient) -> None:
        laptop = _login(api_client, "out-multi")
        phone = api_client.post("/api/login", json={"username": "out-multi", "password": "pw1"}).json()
        api_client.post("/api/logout", json={"refreshToken": laptop["refreshToken"]})
        assert api_client.post("/api/refresh-token", json={"refreshToken": laptop["refreshToken"]}).status_code == 403
        assert api_client.post("/api/refresh-token", json={"refreshToken": phone["refreshToken"]}).status_code == 200


class TestFullSession:
    def test_register_login_refresh_logout(self, api_client: TestClient) -> None:
        """The end-to-end flow a browser client goes through."""
        assert _register(api_client, "alice", "pw1").status_code == 201
        assert _register(api_client, "alice", "pw1").status_code == 400

        login = api_client.post("/api/login", json={"username": "alice", "password": "pw1"})
        assert login.status_code == 200
        access, refresh = login.json()["accessToken"], login.json()["refreshToken"]

        protected = api_client.get("/api/protected", headers=_bearer(access))
        assert protected.status_code == 200
        assert protected.json()["user"]["username"] == "alice"

        refreshed = api_client.post("/api/refresh-token", json={"refreshToken": refresh})
        assert refreshed.status_code == 200
        new_access = refreshed.json()["accessToken"]
        assert api_client.get("/api/protected", headers=_bearer(new_access)).status_code == 200

        assert api_client.post("/api/logout", json={"refreshToken": refresh}).status_code == 200
        rejected = api_client.post("/api/refresh-token", json={"refreshToken": refresh})
        assert rejected.status_code == 403
        assert rejected.json()["error"]["message"] == "Invalid or expired refresh token"

        # Access tokens are stateless: the one already issued still works until it expires
        assert api_client.get("/api/protected", headers=_bearer(new_access)).status_code == 200
