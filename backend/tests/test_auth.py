"""Test bearer identity decoding."""

from datetime import timedelta

import pytest
from fastapi import HTTPException

from app.auth import AuthContext, create_access_token, decode_token
from app.config import get_settings


class TestTokens:
    """Test token creation and decoding."""

    def test_create_and_decode_token(self):
        settings = get_settings()
        token = create_access_token("usr_test123456", settings)

        payload = decode_token(token, settings)

        assert payload["sub"] == "usr_test123456"
        assert payload["type"] == "access"
        assert "exp" in payload
        assert "iat" in payload
        assert "role" not in payload

    def test_role_claim(self):
        settings = get_settings()
        token = create_access_token("usr_admin", settings, role="admin")
        assert decode_token(token, settings)["role"] == "admin"

    def test_expired_token(self):
        settings = get_settings()
        token = create_access_token("usr_test", settings, expires_delta=timedelta(seconds=-1))

        with pytest.raises(HTTPException) as exc_info:
            decode_token(token, settings)

        assert exc_info.value.status_code == 401

    def test_garbage_token(self):
        with pytest.raises(HTTPException):
            decode_token("not.a.jwt", get_settings())


class TestAuthContext:
    def test_admin_role(self):
        assert AuthContext("usr_1", role="admin").is_admin is True
        assert AuthContext("usr_1").is_admin is False


class TestAuthCookie:
    def test_cookie_fallback(self, client, repo, make_job):
        from app.auth import AUTH_COOKIE_NAME

        repo.save_job(make_job("job-1"))
        token = create_access_token("usr_cookie_user", get_settings())
        client.cookies.set(AUTH_COOKIE_NAME, token)

        response = client.post("/api/v1/jobs/job-1/apply", json={})

        assert response.status_code == 201
        assert response.json()["applicant_id"] == "usr_cookie_user"
