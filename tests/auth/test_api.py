"""Tests for the /auth routes over the fully wired app.

Services run for real over the in-memory credential store and FakeValkey;
only the email gateway and the security event sink are mocked.
"""

import pytest

from auth.security_logger import SecurityEvent
from clients.email_client import EmailTemplate
from fakes import TEST_PASSWORD


def _login(client, email="alice@example.com", password=TEST_PASSWORD):
    return client.post("/auth/login", json={"email": email, "password": password})


def _bearer(response) -> dict[str, str]:
    return {"Authorization": f"Bearer {response.json()['data']['accessToken']}"}


def _sent_link(email_client, template: EmailTemplate) -> str:
    for call in reversed(email_client.send_transactional_email.call_args_list):
        sent_template, _, params = call.args
        if sent_template == template:
            return next(value for key, value in params.items() if key.endswith("_url"))
    raise AssertionError(f"No {template.value} email sent")


class TestRegister:
    """POST /auth/register"""

    def test_creates_account_and_signs_in(self, client):
        response = client.post(
            "/auth/register",
            json={"firstName": "Bob", "lastName": "Jones", "email": "Bob@Example.com", "password": "Secret123"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["user"]["email"] == "bob@example.com"
        assert body["data"]["user"]["emailVerified"] is False
        assert body["data"]["expiresIn"] == "15m"
        assert "passwordHash" not in body["data"]["user"]
        assert client.cookies.get("refreshToken")

    def test_duplicate_email(self, client, user):
        response = client.post(
            "/auth/register",
            json={"firstName": "A", "lastName": "S", "email": "alice@example.com", "password": "Secret123"},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "EMAIL_EXISTS"

    def test_weak_password(self, client):
        response = client.post(
            "/auth/register",
            json={"firstName": "A", "lastName": "S", "email": "a@example.com", "password": "short"},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_FAILED"

    def test_malformed_body(self, client):
        response = client.post("/auth/register", json={"email": "not-an-email"})

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["code"] == "VALIDATION_FAILED"


class TestLogin:
    """POST /auth/login"""

    def test_success_envelope(self, client, user):
        response = _login(client)

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Login successful"
        assert set(body["data"]) == {"user", "accessToken", "expiresIn"}
        assert body["data"]["user"]["id"] == str(user.id)
        assert "code" not in body

    def test_refresh_cookie_attributes(self, client, user):
        response = _login(client)

        set_cookie = response.headers["set-cookie"]
        assert set_cookie.startswith("refreshToken=")
        assert "HttpOnly" in set_cookie
        assert "SameSite=strict" in set_cookie
        assert "Max-Age=604800" in set_cookie

    def test_refresh_token_not_in_body(self, client, user):
        response = _login(client)
        assert client.cookies.get("refreshToken") not in response.text

    def test_wrong_password(self, client, user):
        response = _login(client, password="WrongPass1")

        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Invalid credentials", "code": "INVALID_CREDENTIALS"}

    def test_unknown_email_indistinguishable(self, client, user):
        unknown = _login(client, email="nobody@example.com")
        wrong = _login(client, password="WrongPass1")

        assert unknown.status_code == wrong.status_code
        assert unknown.json() == wrong.json()

    def test_lockout_after_five_failures(self, client, user):
        """Five wrong passwords lock the account; the sixth attempt is refused even with the right one."""
        for _ in range(5):
            assert _login(client, password="WrongPass1").status_code == 401

        response = _login(client)

        assert response.status_code == 423
        assert response.json()["code"] == "ACCOUNT_LOCKED"
        assert "120 minutes" in response.json()["message"]

    def test_deactivated(self, client, auth_db, user):
        auth_db.set_active(user.id, False)

        response = _login(client)

        assert response.status_code == 403
        assert response.json()["code"] == "ACCOUNT_DEACTIVATED"


class TestRateLimit:

    def test_login_limited_per_client(self, client, user, config):
        for _ in range(config.auth_rate_limit_attempts):
            _login(client, email="nobody@example.com")

        response = _login(client, email="nobody@example.com")

        assert response.status_code == 429
        assert response.json()["code"] == "RATE_LIMITED"
        assert int(response.headers["Retry-After"]) > 0

    def test_rate_limited_is_logged(self, client, user, config, security_logger):
        for _ in range(config.auth_rate_limit_attempts + 1):
            _login(client, email="nobody@example.com")

        events = [c.args[0] for c in security_logger.log.call_args_list]
        assert SecurityEvent.RATE_LIMITED in events

    def test_successful_login_resets_counter(self, client, user, config):
        for _ in range(config.auth_rate_limit_attempts - 1):
            _login(client, email="nobody@example.com")
        assert _login(client).status_code == 200

        for _ in range(config.auth_rate_limit_attempts):
            assert _login(client, email="nobody@example.com").status_code == 401


class TestProtectedRoutes:

    def test_me(self, client, user):
        response = client.get("/auth/me", headers=_bearer(_login(client)))

        assert response.status_code == 200
        assert response.json()["data"]["email"] == "alice@example.com"

    def test_me_without_token(self, client):
        response = client.get("/auth/me")

        assert response.status_code == 401
        assert response.json()["code"] == "NO_TOKEN"
        assert "X-Request-ID" in response.headers

    def test_refresh_token_is_not_an_access_token(self, client, user):
        _login(client)
        refresh_token = client.cookies.get("refreshToken")

        response = client.get("/auth/me", headers={"Authorization": f"Bearer {refresh_token}"})

        assert response.json()["code"] == "INVALID_TOKEN"

    def test_health_is_public(self, client):
        assert client.get("/health").json() == {"success": True, "data": {"status": "ok"}}


class TestRefresh:
    """POST /auth/refresh"""

    def test_rotates_cookie(self, client, user, auth_db):
        _login(client)
        original = client.cookies.get("refreshToken")

        response = client.post("/auth/refresh")

        assert response.status_code == 200
        assert set(response.json()["data"]) == {"accessToken", "expiresIn"}
        rotated = client.cookies.get("refreshToken")
        assert rotated != original
        assert auth_db.has_refresh_token(user.id, rotated)
        assert not auth_db.has_refresh_token(user.id, original)

    def test_new_access_token_works(self, client, user):
        _login(client)
        response = client.post("/auth/refresh")

        assert client.get("/auth/me", headers=_bearer(response)).status_code == 200

    def test_missing_cookie(self, client):
        response = client.post("/auth/refresh")

        assert response.status_code == 401
        assert response.json()["code"] == "NO_REFRESH_TOKEN"

    def test_garbage_cookie_is_cleared(self, client):
        client.cookies.set("refreshToken", "not-a-jwt")

        response = client.post("/auth/refresh")

        assert response.json()["code"] == "INVALID_REFRESH_TOKEN"
        assert 'refreshToken=""' in response.headers["set-cookie"] or "Max-Age=0" in response.headers["set-cookie"]

    def test_replay_revokes_every_session(self, client, user, auth_db):
        """Presenting a rotated-away token signs the account out everywhere."""
        _login(client)
        stolen = client.cookies.get("refreshToken")
        client.post("/auth/refresh")
        legitimate = client.cookies.get("refreshToken")

        client.cookies.clear()
        client.cookies.set("refreshToken", stolen)
        replay = client.post("/auth/refresh")

        assert replay.status_code == 401
        assert replay.json()["code"] == "INVALID_REFRESH_TOKEN"
        assert auth_db.stored_token_count(user.id) == 0

        client.cookies.clear()
        client.cookies.set("refreshToken", legitimate)
        assert client.post("/auth/refresh").status_code == 401


class TestLogout:

    def test_logout_revokes_this_device(self, client, user, auth_db):
        login = _login(client)
        token = client.cookies.get("refreshToken")

        response = client.post("/auth/logout", headers=_bearer(login))

        assert response.status_code == 200
        assert not auth_db.has_refresh_token(user.id, token)
        assert client.cookies.get("refreshToken") is None

    def test_logout_all(self, client, user, auth_db):
        _login(client)
        login = _login(client)

        client.post("/auth/logout-all", headers=_bearer(login))

        assert auth_db.stored_token_count(user.id) == 0

    def test_logout_requires_auth(self, client):
        assert client.post("/auth/logout").status_code == 401


class TestChangePassword:

    def test_wrong_current_password(self, client, user):
        response = client.post(
            "/auth/change-password",
            headers=_bearer(_login(client)),
            json={"currentPassword": "WrongPass1", "password": "NewSecret456"},
        )

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_PASSWORD"

    def test_keeps_current_session_only(self, client, user, auth_db):
        _login(client)
        other_device = client.cookies.get("refreshToken")
        client.cookies.clear()
        login = _login(client)
        this_device = client.cookies.get("refreshToken")

        response = client.post(
            "/auth/change-password",
            headers=_bearer(login),
            json={"currentPassword": TEST_PASSWORD, "password": "NewSecret456"},
        )

        assert response.status_code == 200
        assert auth_db.has_refresh_token(user.id, this_device)
        assert not auth_db.has_refresh_token(user.id, other_device)
        assert _login(client, password="NewSecret456").status_code == 200


class TestPasswordReset:

    def test_unknown_email_same_response(self, client, user):
        known = client.post("/auth/forgot-password", json={"email": "alice@example.com"})
        unknown = client.post("/auth/forgot-password", json={"email": "nobody@example.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()

    def test_full_reset_flow(self, client, user, email_client, auth_db):
        _login(client)
        client.post("/auth/forgot-password", json={"email": "alice@example.com"})
        token = _sent_link(email_client, EmailTemplate.PASSWORD_RESET).rsplit("/", 1)[1]

        response = client.post(f"/auth/reset-password/{token}", json={"password": "NewSecret456"})

        assert response.status_code == 200
        assert auth_db.stored_token_count(user.id) == 0
        assert _login(client, password="NewSecret456").status_code == 200

    def test_reset_token_single_use(self, client, user, email_client):
        client.post("/auth/forgot-password", json={"email": "alice@example.com"})
        token = _sent_link(email_client, EmailTemplate.PASSWORD_RESET).rsplit("/", 1)[1]
        client.post(f"/auth/reset-password/{token}", json={"password": "NewSecret456"})

        response = client.post(f"/auth/reset-password/{token}", json={"password": "Another789"})

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_TOKEN"

    def test_gateway_failure(self, client, user, email_client):
        from clients.email_client import EmailGatewayError

        email_client.send_transactional_email.side_effect = EmailGatewayError("down")

        response = client.post("/auth/forgot-password", json={"email": "alice@example.com"})

        assert response.status_code == 500
        assert response.json()["code"] == "EMAIL_SEND_FAILED"


class TestEmailVerification:

    def test_verify_link_from_registration(self, client, email_client, auth_db):
        client.post(
            "/auth/register",
            json={"firstName": "Bob", "lastName": "Jones", "email": "bob@example.com", "password": "Secret123"},
        )
        link = _sent_link(email_client, EmailTemplate.VERIFY_EMAIL)
        assert link.startswith("https://crm.example.com/verify-email/")

        response = client.get(f"/auth/verify-email/{link.rsplit('/', 1)[1]}")

        assert response.status_code == 200
        assert auth_db.get_user_by_email("bob@example.com").email_verified

    def test_resend_when_verified(self, client, user):
        response = client.post("/auth/resend-verification", headers=_bearer(_login(client)))

        assert response.status_code == 400
        assert response.json()["code"] == "ALREADY_VERIFIED"


class TestApiKeys:

    def test_create_use_and_revoke(self, client, user):
        headers = _bearer(_login(client))

        created = client.post("/auth/api-keys", headers=headers, json={"name": "CI"})
        assert created.status_code == 201
        key = created.json()["data"]["key"]
        key_id = created.json()["data"]["id"]

        me = client.get("/auth/me", headers={"X-API-Key": key})
        assert me.status_code == 200
        assert me.json()["data"]["id"] == str(user.id)

        assert client.delete(f"/auth/api-keys/{key_id}", headers=headers).status_code == 200

        rejected = client.get("/auth/me", headers={"X-API-Key": key})
        assert rejected.status_code == 401
        assert rejected.json()["code"] == "INVALID_API_KEY"

    def test_revoke_unknown(self, client, user):
        response = client.delete(
            "/auth/api-keys/00000000-0000-0000-0000-000000000000",
            headers=_bearer(_login(client)),
        )

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"
