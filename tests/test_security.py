"""
Testes de segurança: tokens de sessão, senhas, chave de rate limit
"""
import pytest
from unittest.mock import Mock
from uuid import UUID
import jwt

from app.utils.jwt_utils import create_access_token, verify_access_token
from app.utils.passwords import hash_password, verify_password
from app.middleware.rate_limit import get_rate_limit_key
from app.config import settings


class TestAccessToken:
    """Testes do JWT de sessão"""

    def test_create_and_verify_access_token(self):
        user_id = UUID("00000000-0000-0000-0000-000000000001")

        token = create_access_token(user_id, expires_min=60)
        assert isinstance(token, str)
        assert verify_access_token(token) == user_id

    def test_verify_access_token_expired(self):
        token = create_access_token(UUID("00000000-0000-0000-0000-000000000001"), expires_min=-1)

        with pytest.raises(ValueError, match="expired"):
            verify_access_token(token)

    def test_verify_rejects_other_token_type(self):
        token = jwt.encode(
            {"sub": "00000000-0000-0000-0000-000000000001", "type": "internal", "exp": 9999999999},
            settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
        )
        with pytest.raises(ValueError, match="not an access token"):
            verify_access_token(token)

    def test_verify_rejects_wrong_secret(self):
        token = jwt.encode(
            {"sub": "00000000-0000-0000-0000-000000000001", "type": "access", "exp": 9999999999},
            "another-secret",
            algorithm=settings.JWT_ALGORITHM,
        )
        with pytest.raises(ValueError, match="Invalid token"):
            verify_access_token(token)


class TestPasswords:
    """Testes de hash de senha (bcrypt)"""

    def test_hash_and_verify(self):
        hashed = hash_password("sweet-dreams-42")
        assert hashed != "sweet-dreams-42"
        assert verify_password("sweet-dreams-42", hashed) is True
        assert verify_password("wrong-password", hashed) is False

    def test_missing_hash_never_verifies(self):
        assert verify_password("anything", None) is False

    def test_corrupted_hash(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False


class TestRateLimitKey:
    """Testes da chave de rate limiting"""

    def test_uses_client_ip(self):
        request = Mock()
        request.client.host = "10.0.0.1"
        request.headers = {}
        assert get_rate_limit_key(request) == "ip:10.0.0.1"

    def test_prefers_forwarded_for(self):
        request = Mock()
        request.client.host = "10.0.0.1"
        request.headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
        assert get_rate_limit_key(request) == "ip:203.0.113.7"
