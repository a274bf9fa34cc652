"""Test authentication endpoints and utilities."""

from datetime import timedelta

import pytest

from factories import TEST_PASSWORD, token_for
from missionhub.auth import (
    authenticate_token,
    create_access_token,
    decode_token,
    hash_password,
    verify_password,
)
from missionhub.errors import NotAuthenticatedError
from missionhub.models import Role


class TestAuthUtilities:
    """Test authentication utility functions."""

    def test_hash_and_verify_password(self):
        hashed = hash_password("s3cret-password")
        assert hashed != "s3cret-password"
        assert verify_password("s3cret-password", hashed)
        assert not verify_password("wrong-password", hashed)

    def test_verify_against_garbage_hash(self):
        assert not verify_password("anything", "not-a-bcrypt-hash")

    def test_create_and_decode_token(self, settings):
        token = create_access_token("user-1", Role.provider, settings)
        payload = decode_token(token, settings)
        assert payload["sub"] == "user-1"
        assert payload["role"] == "PROVIDER"
        assert payload["type"] == "access"
        assert "exp" in payload and "iat" in payload

    def test_authenticate_token(self, settings):
        auth = authenticate_token(create_access_token("user-1", Role.admin, settings), settings)
        assert auth.user_id == "user-1"
        assert auth.role == Role.admin

    def test_expired_token_is_rejected(self, settings):
        token = create_access_token("user-1", Role.client, settings, expires_delta=timedelta(seconds=-5))
        with pytest.raises(NotAuthenticatedError):
            authenticate_token(token, settings)

    def test_missing_token_is_rejected(self, settings):
        with pytest.raises(NotAuthenticatedError):
            authenticate_token(None, settings)

    def test_token_signed_with_other_secret(self, settings):
        other = settings.model_copy(update={"jwt_secret_key": "not-the-real-secret"})
        token = create_access_token("user-1", Role.client, other)
        with pytest.raises(NotAuthenticatedError):
            authenticate_token(token, settings)


class TestRegister:
    def _body(self, **overrides):
        body = {
            "email": "New.User@Example.com",
            "password": "long-enough-pw",
            "first_name": "New",
            "last_name": "User",
        }
        body.update(overrides)
        return body

    def test_register_client(self, client, fake_db):
        response = client.post("/api/auth/register", json=self._body())
        assert response.status_code == 201
        body = response.json()
        assert body["token"]
        assert body["user"]["email"] == "new.user@example.com"
        assert body["user"]["role"] == "CLIENT"
        assert "password_hash" not in body["user"]
        stored = fake_db.tables["users"][0]
        assert stored["password_hash"] != "long-enough-pw"

    def test_register_provider(self, client):
        response = client.post("/api/auth/register", json=self._body(role="PROVIDER"))
        assert response.status_code == 201
        assert response.json()["user"]["role"] == "PROVIDER"

    def test_duplicate_email_conflicts(self, client):
        assert client.post("/api/auth/register", json=self._body()).status_code == 201
        response = client.post("/api/auth/register", json=self._body(email="new.user@example.com"))
        assert response.status_code == 409
        assert response.json() == {"error": "User already exists"}

    def test_admin_self_registration_is_rejected(self, client):
        response = client.post("/api/auth/register", json=self._body(role="ADMIN"))
        assert response.status_code == 400

    def test_short_password_fails_validation(self, client):
        response = client.post("/api/auth/register", json=self._body(password="short"))
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Validation failed"
        assert any("password" in d["loc"] for d in body["details"])


class TestLogin:
    def test_login_returns_token(self, client, users, settings):
        response = client.post(
            "/api/auth/login", json={"email": "CLIENT@example.com", "password": TEST_PASSWORD}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["user"]["id"] == users["client"]["id"]
        assert authenticate_token(body["token"], settings).role == Role.client

    @pytest.mark.parametrize(
        "email,password",
        [("client@example.com", "wrong-password"), ("nobody@example.com", TEST_PASSWORD)],
    )
    def test_bad_credentials_share_one_message(self, client, users, email, password):
        response = client.post("/api/auth/login", json={"email": email, "password": password})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid email or password"}


class TestMe:
    def test_me(self, client, users, auth_headers):
        response = client.get("/api/auth/me", headers=auth_headers["provider"])
        assert response.status_code == 200
        assert response.json()["id"] == users["provider"]["id"]

    def test_me_requires_token(self, client):
        response = client.get("/api/auth/me")
        assert response.status_code == 401

    def test_me_for_deleted_user(self, client, users, fake_db):
        headers = {"Authorization": f"Bearer {token_for(users['client'])}"}
        fake_db.tables["users"] = [u for u in fake_db.tables["users"] if u["id"] != users["client"]["id"]]
        assert client.get("/api/auth/me", headers=headers).status_code == 404
