"""
tests/test_api_routes.py -- Integration tests for the HTTP surface.

These tests run the full stack: middleware (access policy, sessions, rate
limiter) -> routing -> dependencies -> UserStore/MoveStore -> serialization.

Coverage:
  - Public routes: /api/hello, login options, registration (incl. duplicate email)
  - Authentication failures: 401 + Basic challenge, browser redirect to login
  - Authorization failures: 403 for a plain user on the admin endpoint
  - All three login mechanisms: Bearer JWT, HTTP Basic, form login cookie
  - Moves: create and list, payload returned verbatim

Fixtures used (from conftest.py):
  - api_client: ApiEnv(client, user_store, moves, user_token, admin_token)
"""

from __future__ import annotations

import pytest

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, USER_EMAIL, USER_PASSWORD, ApiEnv, bearer


@pytest.fixture(autouse=True)
def _clear_cookies(api_client: ApiEnv):
    """Login responses set a cookie on the shared client; drop it after each test."""
    yield
    api_client.client.cookies.clear()


class TestPublicRoutes:
    def test_hello_without_auth(self, api_client: ApiEnv) -> None:
        resp = api_client.client.get("/api/hello")
        assert resp.status_code == 200
        assert resp.text == "Hello from MoveMaster!"

    def test_login_options(self, api_client: ApiEnv) -> None:
        resp = api_client.client.get("/api/auth/login")
        assert resp.status_code == 200
        data = resp.json()
        assert data["login_url"] == "/api/auth/login"
        assert data["username_field"] == "username"
        assert data["error_msg"] is None

    def test_login_options_error_is_whitelisted(self, api_client: ApiEnv) -> None:
        """Unknown ?error= values are dropped, never reflected."""
        client = api_client.client
        assert client.get("/api/auth/login?error=bad_credentials").json()["error_msg"] == "Invalid email or password."
        assert client.get("/api/auth/login?error=<script>").json()["error_msg"] is None

    def test_login_options_carry_next(self, api_client: ApiEnv) -> None:
        client = api_client.client
        data = client.get("/api/auth/login", params={"next": "/api/moves?page=2"}).json()
        assert data["login_url"] == "/api/auth/login?next=/api/moves%3Fpage%3D2"
        assert client.get("/api/auth/login?next=//evil.example.com").json()["login_url"] == "/api/auth/login"

    def test_next_round_trips_through_login(self, api_client: ApiEnv) -> None:
        client = api_client.client
        location = client.get("/api/moves?page=2&size=5", headers={"Accept": "text/html"}).headers["location"]
        login_url = client.get(location).json()["login_url"]
        resp = client.post(login_url, data={"username": USER_EMAIL, "password": USER_PASSWORD})
        assert resp.headers["location"] == "/api/moves?page=2&size=5"


class TestRegistration:
    def test_register_then_duplicate(self, api_client: ApiEnv) -> None:
        client = api_client.client
        resp = client.post("/api/auth/register", json={"email": "a@x.com", "password": "p1"})
        assert resp.status_code == 200
        assert resp.json() == {"status": "registered"}

        resp = client.post("/api/auth/register", json={"email": "a@x.com", "password": "p1"})
        assert resp.status_code == 200
        assert resp.json() == {"error": "Email already exists"}

    def test_registered_account_is_local_user(self, api_client: ApiEnv) -> None:
        api_client.client.post("/api/auth/register", json={"email": "local@x.com", "password": "pw"})
        user = api_client.user_store.get_by_email("local@x.com")
        assert user.provider.value == "local"
        assert {r.value for r in user.roles} == {"ROLE_USER"}

    def test_missing_password_is_validation_error(self, api_client: ApiEnv) -> None:
        resp = api_client.client.post("/api/auth/register", json={"email": "nopw@x.com"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"
        assert api_client.user_store.get_by_email("nopw@x.com") is None

    def test_overlong_email_is_validation_error(self, api_client: ApiEnv) -> None:
        email = "x" * 250 + "@x.com"
        resp = api_client.client.post("/api/auth/register", json={"email": email, "password": "pw"})
        assert resp.status_code == 422
        assert api_client.user_store.get_by_email(email) is None

    def test_registered_user_can_use_basic_auth(self, api_client: ApiEnv) -> None:
        client = api_client.client
        client.post("/api/auth/register", json={"email": "basic@x.com", "password": "s3cret"})
        resp = client.get("/api/secure/user", auth=("basic@x.com", "s3cret"))
        assert resp.status_code == 200


class TestAuthenticationRequired:
    @pytest.mark.parametrize("method", ["GET", "POST"])
    def test_moves_unauthenticated(self, api_client: ApiEnv, method: str) -> None:
        resp = api_client.client.request(method, "/api/moves", json={"name": "x"} if method == "POST" else None)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"
        assert resp.headers["www-authenticate"].startswith("Basic")

    def test_browser_is_redirected_to_login(self, api_client: ApiEnv) -> None:
        resp = api_client.client.get("/api/moves", headers={"Accept": "text/html,application/xhtml+xml"})
        assert resp.status_code == 302
        assert resp.headers["location"] == "/api/auth/login?next=/api/moves"

    def test_stale_cookie_does_not_block_bearer(self, api_client: ApiEnv) -> None:
        client = api_client.client
        client.cookies.set("access_token", "stale.or.forged")
        assert client.get("/api/moves", headers=bearer(api_client.user_token)).status_code == 200
        assert client.get("/api/moves", auth=(USER_EMAIL, USER_PASSWORD)).status_code == 200

    def test_browser_redirect_keeps_query_string(self, api_client: ApiEnv) -> None:
        resp = api_client.client.get("/api/moves?page=2&size=5", headers={"Accept": "text/html"})
        assert resp.status_code == 302
        assert resp.headers["location"] == "/api/auth/login?next=/api/moves%3Fpage%3D2%26size%3D5"

    def test_invalid_bearer_token(self, api_client: ApiEnv) -> None:
        resp = api_client.client.get("/api/moves", headers=bearer("not.a.jwt"))
        assert resp.status_code == 401

    def test_wrong_basic_password(self, api_client: ApiEnv) -> None:
        resp = api_client.client.get("/api/moves", auth=(USER_EMAIL, "wrong"))
        assert resp.status_code == 401

    def test_malformed_basic_header(self, api_client: ApiEnv) -> None:
        resp = api_client.client.get("/api/moves", headers={"Authorization": "Basic !!!notbase64"})
        assert resp.status_code == 401

    def test_me_requires_auth_even_under_public_prefix(self, api_client: ApiEnv) -> None:
        resp = api_client.client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_secure_endpoint_without_identity_is_401_not_403(self, api_client: ApiEnv) -> None:
        assert api_client.client.get("/api/secure/admin").status_code == 401


class TestRoleAuthorization:
    def test_user_denied_admin_endpoint(self, api_client: ApiEnv) -> None:
        resp = api_client.client.get("/api/secure/admin", headers=bearer(api_client.user_token))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_user_allowed_user_endpoint(self, api_client: ApiEnv) -> None:
        resp = api_client.client.get("/api/secure/user", headers=bearer(api_client.user_token))
        assert resp.status_code == 200
        assert resp.text == "User or Admin can access this endpoint."

    def test_admin_allowed_both(self, api_client: ApiEnv) -> None:
        client = api_client.client
        resp = client.get("/api/secure/admin", headers=bearer(api_client.admin_token))
        assert resp.status_code == 200
        assert resp.text == "Only Admin can access this endpoint."
        assert client.get("/api/secure/user", headers=bearer(api_client.admin_token)).status_code == 200

    def test_admin_via_basic_auth(self, api_client: ApiEnv) -> None:
        resp = api_client.client.get("/api/secure/admin", auth=(ADMIN_EMAIL, ADMIN_PASSWORD))
        assert resp.status_code == 200


class TestFormLogin:
    def test_login_sets_cookie_and_redirects_home(self, api_client: ApiEnv) -> None:
        client = api_client.client
        resp = client.post("/api/auth/login", data={"username": USER_EMAIL, "password": USER_PASSWORD})
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        assert resp.headers["cache-control"] == "no-store"
        assert "access_token" in client.cookies

        # The cookie alone now authenticates.
        assert client.get("/api/secure/user").status_code == 200
        assert client.get("/api/secure/admin").status_code == 403

    def test_login_honours_relative_next(self, api_client: ApiEnv) -> None:
        resp = api_client.client.post(
            "/api/auth/login?next=/api/moves",
            data={"username": USER_EMAIL, "password": USER_PASSWORD},
        )
        assert resp.headers["location"] == "/api/moves"

    def test_login_rejects_offsite_next(self, api_client: ApiEnv) -> None:
        resp = api_client.client.post(
            "/api/auth/login?next=//evil.example.com",
            data={"username": USER_EMAIL, "password": USER_PASSWORD},
        )
        assert resp.headers["location"] == "/"

    def test_bad_credentials(self, api_client: ApiEnv) -> None:
        client = api_client.client
        resp = client.post("/api/auth/login", data={"username": USER_EMAIL, "password": "nope"})
        assert resp.status_code == 302
        assert resp.headers["location"] == "/api/auth/login?error=bad_credentials"
        assert "access_token" not in client.cookies

    def test_unknown_email(self, api_client: ApiEnv) -> None:
        resp = api_client.client.post("/api/auth/login", data={"username": "ghost@x.com", "password": "x"})
        assert resp.headers["location"] == "/api/auth/login?error=bad_credentials"

    def test_logout_clears_cookie(self, api_client: ApiEnv) -> None:
        client = api_client.client
        client.post("/api/auth/login", data={"username": USER_EMAIL, "password": USER_PASSWORD})
        resp = client.post("/api/auth/logout")
        assert resp.status_code == 200
        set_cookie = resp.headers.get("set-cookie", "").lower()
        assert "access_token=" in set_cookie
        assert "max-age=0" in set_cookie

    def test_me_and_root_return_identity(self, api_client: ApiEnv) -> None:
        client = api_client.client
        for path in ("/api/auth/me", "/"):
            resp = client.get(path, headers=bearer(api_client.admin_token))
            assert resp.status_code == 200
            data = resp.json()
            assert data["email"] == ADMIN_EMAIL
            assert data["provider"] == "local"
            assert data["roles"] == ["ROLE_ADMIN", "ROLE_USER"]


class TestMoves:
    def test_create_and_list(self, api_client: ApiEnv) -> None:
        client = api_client.client
        headers = bearer(api_client.user_token)
        payload = {"name": "Lyon to Paris", "moveDate": "2026-11-02", "rooms": [{"name": "Kitchen", "boxes": 12}]}

        resp = client.post("/api/moves", json=payload, headers=headers)
        assert resp.status_code == 200
        created = resp.json()
        assert isinstance(created["id"], int)
        assert {k: v for k, v in created.items() if k != "id"} == payload

        listed = client.get("/api/moves", headers=headers).json()
        assert created in listed

    def test_store_assigns_id(self, api_client: ApiEnv) -> None:
        resp = api_client.client.post("/api/moves", json={"id": 9999, "name": "x"}, headers=bearer(api_client.user_token))
        assert resp.json()["id"] != 9999

    def test_body_must_be_object(self, api_client: ApiEnv) -> None:
        resp = api_client.client.post("/api/moves", json=["not", "an", "object"], headers=bearer(api_client.user_token))
        assert resp.status_code == 422

    def test_basic_auth_reaches_moves(self, api_client: ApiEnv) -> None:
        resp = api_client.client.get("/api/moves", auth=(USER_EMAIL, USER_PASSWORD))
        assert resp.status_code == 200
        assert isinstance(resp.json(), list)
