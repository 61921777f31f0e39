# Overview: Pytest coverage for login, sessions, role gates and system routes.

from datetime import timedelta

import pyotp
import pytest

from fulfillment.models import SessionToken, User
from fulfillment.errors import InvalidCredentialsError, NotFoundError, ValidationError
from fulfillment.roles import MERCHANT_STAFF, PLATFORM_ADMIN
from fulfillment.services import auth_service, session_service
from fulfillment.time_utils import utcnow


PASSWORD = "Password123!"


class TestPasswordsAndUsers:

    @pytest.mark.parametrize("password", ["short1!", "alllowercase1!", "ALLUPPERCASE1!", "NoDigits!!", "NoSpecial123"])
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(ValidationError):
            auth_service.validate_password_strength(password)

    def test_hash_and_verify(self, app):
        hashed = auth_service.hash_password(PASSWORD)

        assert hashed.startswith("$2")
        assert auth_service.verify_password(PASSWORD, hashed)
        assert not auth_service.verify_password("Password123?", hashed)
        assert not auth_service.verify_password(PASSWORD, "not-a-bcrypt-hash")

    def test_merchant_role_requires_merchant(self, db_session):
        with pytest.raises(ValidationError):
            auth_service.create_user(email="x@test", password=PASSWORD, role=MERCHANT_STAFF)

    def test_platform_role_cannot_have_merchant(self, db_session, merchant_a):
        with pytest.raises(ValidationError):
            auth_service.create_user(email="x@test", password=PASSWORD, role=PLATFORM_ADMIN, merchant_id=merchant_a.id)

    def test_unknown_merchant(self, db_session):
        with pytest.raises(NotFoundError):
            auth_service.create_user(email="x@test", password=PASSWORD, role=MERCHANT_STAFF, merchant_id=424242)

    def test_duplicate_email_is_case_insensitive(self, db_session, platform_admin):
        with pytest.raises(ValidationError, match="already exists"):
            auth_service.create_user(email="ADMIN@sjfs.test", password=PASSWORD, role=PLATFORM_ADMIN)

    def test_authenticate(self, db_session, platform_admin):
        user = auth_service.authenticate("Admin@SJFS.test", PASSWORD)

        assert user.id == platform_admin.id
        assert user.last_login_at is not None

        with pytest.raises(InvalidCredentialsError, match="Invalid email or password"):
            auth_service.authenticate("admin@sjfs.test", "Wrong123!")
        with pytest.raises(InvalidCredentialsError, match="Invalid email or password"):
            auth_service.authenticate("nobody@sjfs.test", PASSWORD)


class TestSessions:

    def test_session_carries_merchant_context(self, db_session, merchant_admin, merchant_a):
        _, token = session_service.create_session(merchant_admin.id)

        context = session_service.validate_session(token)

        assert context.user.id == merchant_admin.id
        assert context.merchant_id == merchant_a.id

    def test_only_hash_is_stored(self, db_session, merchant_admin):
        session, token = session_service.create_session(merchant_admin.id)

        assert session.token_hash == session_service.hash_token(token)
        assert db_session.query(SessionToken).filter_by(token_hash=token).count() == 0

    def test_idle_session_is_revoked(self, db_session, merchant_admin):
        session, token = session_service.create_session(merchant_admin.id)
        session.last_used_at = utcnow() - timedelta(hours=3)
        db_session.commit()

        assert session_service.validate_session(token) is None
        assert db_session.get(SessionToken, session.id).revoked_reason == "Idle timeout"

    def test_expired_session(self, db_session, merchant_admin):
        session, token = session_service.create_session(merchant_admin.id)
        session.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        assert session_service.validate_session(token) is None

    def test_deactivated_user_session_is_revoked(self, db_session, merchant_admin):
        _, token = session_service.create_session(merchant_admin.id)
        merchant_admin.is_active = False
        db_session.commit()

        assert session_service.validate_session(token) is None

    def test_cleanup_removes_old_revoked_sessions(self, db_session, merchant_admin):
        old, old_token = session_service.create_session(merchant_admin.id)
        _, fresh_token = session_service.create_session(merchant_admin.id)
        old.created_at = utcnow() - timedelta(days=40)
        db_session.commit()
        session_service.revoke_session(old_token)

        assert session_service.cleanup_expired_sessions(30) == 1
        assert session_service.validate_session(fresh_token) is not None

    def test_unknown_user(self, db_session):
        with pytest.raises(ValueError):
            session_service.create_session(424242)


class TestAuthRoutes:

    def test_login_and_me(self, client, db_session, merchant_admin):
        response = client.post("/api/auth/login", json={"email": "owner@acme.test", "password": PASSWORD})

        assert response.status_code == 200
        token = response.get_json()["token"]

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.get_json()["user"]["email"] == "owner@acme.test"
        assert me.get_json()["merchant"]["business_name"] == "Acme Stores"

    def test_login_wrong_password(self, client, db_session, merchant_admin):
        response = client.post("/api/auth/login", json={"email": "owner@acme.test", "password": "Wrong123!"})

        assert response.status_code == 401
        assert response.get_json()["code"] == "INVALID_CREDENTIALS"

    def test_login_missing_fields(self, client, db_session):
        response = client.post("/api/auth/login", json={"email": "owner@acme.test"})

        assert response.status_code == 400

    def test_login_with_two_factor(self, client, db_session, merchant_admin):
        secret, _ = auth_service.enable_two_factor(merchant_admin)
        creds = {"email": "owner@acme.test", "password": PASSWORD}

        first = client.post("/api/auth/login", json=creds)
        assert first.status_code == 401
        assert first.get_json()["code"] == "TWO_FACTOR_REQUIRED"

        bad = client.post("/api/auth/login", json={**creds, "twoFactorToken": "12345678"})
        assert bad.status_code == 401

        ok = client.post("/api/auth/login", json={**creds, "twoFactorToken": pyotp.TOTP(secret).now()})
        assert ok.status_code == 200

    def test_logout_revokes_token(self, client, db_session, merchant_admin, auth_headers):
        headers = auth_headers(merchant_admin)

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_missing_or_garbage_token(self, client, db_session):
        assert client.get("/api/auth/me").status_code == 401
        assert client.get("/api/auth/me", headers={"Authorization": "Bearer nope"}).status_code == 401
        assert client.get("/api/auth/me", headers={"Authorization": "Token abc"}).status_code == 401


class TestSystemRoutes:

    def test_health(self, client, db_session, merchant_a):
        response = client.get("/api/health")

        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["merchants"] == 1

    def test_cors_for_allowed_origin(self, client, db_session):
        allowed = client.get("/api/health", headers={"Origin": "http://localhost:3000"})
        denied = client.get("/api/health", headers={"Origin": "https://evil.example"})

        assert allowed.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
        assert "Access-Control-Allow-Origin" not in denied.headers

    def test_purge_route_validates_retention(self, client, db_session, platform_admin, auth_headers):
        headers = auth_headers(platform_admin)

        assert client.post("/api/admin/notifications/purge", json={"retentionDays": -1}, headers=headers).status_code == 400
        ok = client.post("/api/admin/notifications/purge", json={"retentionDays": 10}, headers=headers)
        assert ok.status_code == 200
        assert ok.get_json() == {"deleted": 0}


class TestCommands:

    def test_init_db_seeds_services_once(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "init-db"])
        second = runner.invoke(args=["system", "init-db"])

        assert "PASS Seeded 8 service(s)" in first.output
        assert "PASS Seeded 0 service(s)" in second.output

    def test_users_create(self, app, db_session, merchant_a):
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            "users", "create",
            "--email", "Clerk2@Acme.test",
            "--password", PASSWORD,
            "--role", MERCHANT_STAFF,
            "--merchant-id", str(merchant_a.id),
        ])

        assert result.exit_code == 0, result.output
        assert db_session.query(User).filter_by(email="clerk2@acme.test").count() == 1

    def test_reset_db_requires_confirmation(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["system", "reset-db"])

        assert result.exit_code == 1
        assert "FAIL" in result.output
