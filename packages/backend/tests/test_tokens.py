"""JWT and password hashing unit tests."""

import jwt
import pytest

from genremnant.auth.jwt import (
    TokenError,
    create_access_token,
    create_refresh_token,
    verify_token,
)
from genremnant.auth.password import hash_password, verify_password
from genremnant.config import settings


def test_access_token_claims():
    token = create_access_token("user-1", "a@example.com", "contributor")
    payload = verify_token(token, expected_type="access")
    assert payload["sub"] == "user-1"
    assert payload["email"] == "a@example.com"
    assert payload["role"] == "contributor"


def test_token_type_is_enforced():
    refresh = create_refresh_token("user-1")
    assert verify_token(refresh, expected_type="refresh")["sub"] == "user-1"
    with pytest.raises(TokenError, match="expected access"):
        verify_token(refresh, expected_type="access")


def test_expired_token():
    token = create_access_token("user-1", "a@example.com", "regular", expires_minutes=-1)
    with pytest.raises(TokenError, match="expired"):
        verify_token(token)


def test_token_signed_with_other_secret():
    forged = jwt.encode({"sub": "user-1", "type": "access"}, "not-the-secret", algorithm="HS256")
    with pytest.raises(TokenError, match="Invalid token"):
        verify_token(forged)


def test_token_without_subject():
    token = jwt.encode({"type": "access"}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    with pytest.raises(TokenError, match="missing subject"):
        verify_token(token)


def test_password_hashing():
    hashed = hash_password("secret123")
    assert hashed != "secret123"
    assert verify_password("secret123", hashed)
    assert not verify_password("secret124", hashed)
