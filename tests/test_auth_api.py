"""End-to-end tests for the /auth routes."""

from datetime import datetime, timedelta, timezone

from conftest import TEST_SECRET, bearer, login
from ienerzy.services.tokens import TokenCodec
from ienerzy.services.users import Identity


class TestLogin:
    def test_admin_login_returns_tokens_and_me_reports_admin(self, client, fake_sms):
        body = login(client, fake_sms, "9999999999", "admin")

        assert body["token"]
        assert body["refreshToken"]
        assert body["user"]["role"] == "admin"
        assert body["user"]["phone"] == "9999999999"

        me = client.get("/auth/me", headers=bearer(body["token"]))
        assert me.status_code == 200
        assert me.json()["user"]["role"] == "admin"
        assert me.json()["user"]["name"] == "Admin User"

    def test_routes_are_also_served_under_api_prefix(self, client, fake_sms):
        body = login(client, fake_sms)

        me = client.get("/api/auth/me", headers=bearer(body["token"]))
        assert me.status_code == 200

    def test_delivered_sms_keeps_code_out_of_response(self, client, fake_sms):
        response = client.post("/auth/login", json={"phone": "9999999999", "userType": "admin"})

        body = response.json()
        assert body["success"] is True
        assert body["phone"] == "9999999999"
        assert body["expiresIn"] == "5 minutes"
        assert "otp" not in body
        assert response.headers["X-RateLimit-Remaining"] == "2"

    def test_failed_sms_falls_back_to_returning_code(self, client, fake_sms):
        fake_sms.fail = True

        response = client.post("/auth/login", json={"phone": "9999999999", "userType": "admin"})

        assert response.status_code == 200
        code = response.json()["otp"]
        verified = client.post(
            "/auth/verify-otp", json={"phone": "9999999999", "otp": code, "userType": "admin"}
        )
        assert verified.status_code == 200

    def test_unknown_staff_phone_is_404(self, client):
        response = client.post("/auth/login", json={"phone": "5555555555", "userType": "dealer"})

        assert response.status_code == 404
        assert response.json() == {"error": "User not found"}

    def test_unknown_consumer_phone_is_404(self, client):
        response = client.post(
            "/auth/login", json={"phone": "9999999999", "userType": "consumer"}
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Consumer not found"}

    def test_missing_phone_is_400(self, client):
        response = client.post("/auth/login", json={"userType": "admin"})

        assert response.status_code == 400
        assert "error" in response.json()

    def test_consumer_login(self, client, fake_sms):
        body = login(client, fake_sms, "1111111111", "consumer")

        assert body["user"]["role"] == "consumer"
        assert body["user"]["isConsumer"] is True
        me = client.get("/auth/me", headers=bearer(body["token"]))
        assert me.json()["user"]["name"] == "John Doe"
        assert me.json()["user"]["isConsumer"] is True


class TestVerifyOtp:
    def test_three_wrong_codes_lock_out_the_right_one(self, client, fake_sms):
        client.post("/auth/login", json={"phone": "9999999999", "userType": "admin"})
        code = fake_sms.last_code("9999999999")
        wrong = "000000" if code != "000000" else "111111"

        for _ in range(3):
            response = client.post(
                "/auth/verify-otp", json={"phone": "9999999999", "otp": wrong}
            )
            assert response.status_code == 400
            assert response.json()["error"] == "Invalid OTP"

        response = client.post("/auth/verify-otp", json={"phone": "9999999999", "otp": code})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Too many failed attempts")

    def test_code_cannot_be_used_twice(self, client, fake_sms):
        client.post("/auth/login", json={"phone": "9999999999", "userType": "admin"})
        code = fake_sms.last_code("9999999999")

        first = client.post("/auth/verify-otp", json={"phone": "9999999999", "otp": code})
        second = client.post("/auth/verify-otp", json={"phone": "9999999999", "otp": code})

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["error"] == "OTP expired or not found"

    def test_only_latest_code_verifies(self, client, app, monkeypatch):
        codes = iter(["111111", "222222"])
        monkeypatch.setattr(
            app.state.auth_service.otp_store, "generate_code", lambda: next(codes)
        )
        client.post("/auth/login", json={"phone": "9999999999", "userType": "admin"})
        client.post("/auth/login", json={"phone": "9999999999", "userType": "admin"})

        stale = client.post("/auth/verify-otp", json={"phone": "9999999999", "otp": "111111"})
        fresh = client.post("/auth/verify-otp", json={"phone": "9999999999", "otp": "222222"})

        assert stale.status_code == 400
        assert fresh.status_code == 200


class TestProtectedRoutes:
    def test_missing_token_is_401(self, client):
        response = client.get("/auth/me")

        assert response.status_code == 401
        assert response.json() == {"error": "Access token required"}

    def test_foreign_signature_is_403(self, client):
        foreign = TokenCodec("some-other-secret-that-is-long-enough-0123", "HS256", 60, 60)
        token = foreign.issue_access(
            Identity(id=1, name="Admin User", phone="9999999999", role="admin"), False
        )

        response = client.get("/auth/me", headers=bearer(token))

        assert response.status_code == 403

    def test_expired_token_is_401_with_refresh_hint(self, client):
        issued_at = datetime.now(timezone.utc) - timedelta(days=2)
        codec = TokenCodec(TEST_SECRET, "HS256", 60, 60, clock=lambda: issued_at)
        token = codec.issue_access(
            Identity(id=1, name="Admin User", phone="9999999999", role="admin"), False
        )

        response = client.get("/auth/me", headers=bearer(token))

        assert response.status_code == 401
        assert "refresh" in response.json()["error"]

    def test_validly_signed_token_without_session_is_401(self, client):
        codec = TokenCodec(TEST_SECRET, "HS256", 3600, 3600)
        token = codec.issue_access(
            Identity(id=1, name="Admin User", phone="9999999999", role="admin"), False
        )

        response = client.get("/auth/me", headers=bearer(token))

        assert response.status_code == 401


class TestLogout:
    def test_logout_revokes_token(self, client, fake_sms):
        body = login(client, fake_sms)
        headers = bearer(body["token"])

        response = client.post("/auth/logout", headers=headers)
        assert response.status_code == 200

        assert client.get("/auth/me", headers=headers).status_code == 401
        assert client.get("/auth/sessions", headers=headers).status_code == 401
        assert client.post("/auth/logout", headers=headers).status_code == 401
        refreshed = client.post("/auth/refresh", json={"refreshToken": body["refreshToken"]})
        assert refreshed.status_code == 401

    def test_logout_all_only_affects_caller(self, client, fake_sms):
        first = login(client, fake_sms, "9999999999", "admin")
        second = login(client, fake_sms, "9999999999", "admin")
        dealer = login(client, fake_sms, "8888888888", "dealer")

        response = client.post("/auth/logout-all", headers=bearer(first["token"]))

        assert response.status_code == 200
        assert response.json()["sessionsRevoked"] == 2
        assert client.get("/auth/me", headers=bearer(first["token"])).status_code == 401
        assert client.get("/auth/me", headers=bearer(second["token"])).status_code == 401
        assert client.get("/auth/me", headers=bearer(dealer["token"])).status_code == 200


class TestSessions:
    def test_sessions_listing_hides_tokens(self, client, fake_sms):
        first = login(client, fake_sms)
        login(client, fake_sms)

        response = client.get(
            "/auth/sessions",
            headers={**bearer(first["token"]), "User-Agent": "pytest-agent"},
        )

        assert response.status_code == 200
        sessions = response.json()["sessions"]
        assert len(sessions) == 2
        for session in sessions:
            assert set(session) == {
                "id",
                "createdAt",
                "lastActivity",
                "expiresAt",
                "ipAddress",
                "userAgent",
            }
            assert first["token"] not in session.values()


class TestRefresh:
    def test_refresh_rotates_the_pair(self, client, fake_sms):
        body = login(client, fake_sms)

        response = client.post("/auth/refresh", json={"refreshToken": body["refreshToken"]})

        assert response.status_code == 200
        pair = response.json()
        assert pair["token"] != body["token"]
        assert pair["refreshToken"] != body["refreshToken"]
        assert client.get("/auth/me", headers=bearer(pair["token"])).status_code == 200
        assert client.get("/auth/me", headers=bearer(body["token"])).status_code == 401
        replay = client.post("/auth/refresh", json={"refreshToken": body["refreshToken"]})
        assert replay.status_code == 401

    def test_garbage_refresh_token_is_401(self, client):
        response = client.post("/auth/refresh", json={"refreshToken": "not-a-real-token"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid refresh token"}

    def test_short_refresh_token_is_401(self, client):
        response = client.post("/auth/refresh", json={"refreshToken": "abc"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid refresh token"}

    def test_access_token_cannot_refresh(self, client, fake_sms):
        body = login(client, fake_sms)

        response = client.post("/auth/refresh", json={"refreshToken": body["token"]})

        assert response.status_code == 401


class TestRateLimits:
    def test_fourth_otp_request_in_a_minute_is_429(self, client):
        payload = {"phone": "9999999999", "userType": "admin"}
        for _ in range(3):
            assert client.post("/auth/login", json=payload).status_code == 200

        response = client.post("/auth/login", json=payload)

        assert response.status_code == 429
        body = response.json()
        assert body["error"] == "Rate limit exceeded"
        assert body["message"] == "Too many otp attempts. Please try again later."
        assert 0 < body["retryAfter"] <= 60
        assert "resetTime" in body
        assert response.headers["Retry-After"] == str(body["retryAfter"])

    def test_limits_are_per_phone(self, client):
        for _ in range(3):
            client.post("/auth/login", json={"phone": "9999999999", "userType": "admin"})

        response = client.post("/auth/login", json={"phone": "8888888888", "userType": "dealer"})

        assert response.status_code == 200


def test_health_reports_database(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": True}


def test_health_is_also_served_at_root(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["database"] is True
