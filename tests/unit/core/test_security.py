"""Unit tests for access token verification and config loading."""

from datetime import datetime, timedelta

import jwt
import pytest

from tutorapi.core.config import get_settings
from tutorapi.core.exceptions import AuthenticationError
from tutorapi.core.security import decode_access_token, is_admin
from tutorapi.database.models import UserRole


def test_valid_token_returns_claims(make_token) -> None:
    claims = decode_access_token(make_token("user-1", "ala@example.com"))

    assert claims["sub"] == "user-1"
    assert claims["email"] == "ala@example.com"


def test_expired_token_is_rejected(make_token) -> None:
    with pytest.raises(AuthenticationError) as excinfo:
        decode_access_token(make_token("user-1", expires_in=-10))

    assert excinfo.value.message == "Token expired"


def test_wrong_secret_and_audience_are_rejected(make_token) -> None:
    with pytest.raises(AuthenticationError):
        decode_access_token(make_token("user-1", secret="other-secret"))
    with pytest.raises(AuthenticationError):
        decode_access_token(make_token("user-1", audience="anon"))


def test_token_without_subject_is_malformed() -> None:
    token = jwt.encode(
        {"aud": "authenticated", "exp": datetime.utcnow() + timedelta(minutes=5)},
        "test-secret",
        algorithm="HS256",
    )

    with pytest.raises(AuthenticationError) as excinfo:
        decode_access_token(token)

    assert excinfo.value.message == "Malformed token"


def test_admin_role_comes_from_database(session) -> None:
    session.add(UserRole(user_id="admin-1", role="admin"))
    session.add(UserRole(user_id="user-1", role="moderator"))
    session.flush()

    assert is_admin(session, "admin-1")
    assert not is_admin(session, "user-1")


def test_settings_read_from_environment() -> None:
    settings = get_settings()

    assert settings.jwt_secret == "test-secret"
    assert settings.database_url == "sqlite://"
    assert settings.default_language == "pl"
    assert not settings.is_development()
    assert not settings.is_production()
