"""
Test suite for bearer token handling and role based access.
"""

import uuid
from datetime import timedelta

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from marketplace.api.deps import get_current_principal, require_role
from marketplace.core.config import Settings, get_settings
from marketplace.core.security import (
    Principal,
    Role,
    TokenError,
    create_access_token,
    decode_token,
)


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


# ============================================================================
# Token Tests
# ============================================================================


class TestTokens:
    """Test suite for token creation and decoding."""

    def test_round_trip(self, user_id):
        token = create_access_token(user_id, Role.SELLER, "seller@example.com")

        principal = decode_token(token)

        assert principal == Principal(user_id, Role.SELLER, "seller@example.com")
        assert not principal.is_admin

    def test_claims(self, user_id):
        settings = get_settings()
        token = create_access_token(user_id, Role.BUYER)

        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])

        assert claims["sub"] == str(user_id)
        assert claims["role"] == "buyer"
        assert claims["type"] == "access"
        assert "email" not in claims

    def test_admin_principal(self, user_id):
        principal = decode_token(create_access_token(user_id, Role.ADMIN))

        assert principal.is_admin

    def test_expired_token(self, user_id):
        token = create_access_token(user_id, Role.BUYER, expires_delta=timedelta(seconds=-1))

        with pytest.raises(TokenError) as exc_info:
            decode_token(token)

        assert exc_info.value.code == "TOKEN_EXPIRED"

    def test_wrong_key(self, user_id):
        other = Settings(secret_key="another-secret-key-that-is-long-enough")
        token = create_access_token(user_id, Role.BUYER, settings=other)

        with pytest.raises(TokenError) as exc_info:
            decode_token(token)

        assert exc_info.value.code == "TOKEN_INVALID"

    def test_empty_token(self):
        with pytest.raises(TokenError) as exc_info:
            decode_token("")

        assert exc_info.value.code == "EMPTY_TOKEN"

    def test_invalid_subject(self):
        settings = get_settings()
        token = jwt.encode(
            {"sub": "not-a-uuid", "role": "buyer"},
            settings.secret_key,
            algorithm=settings.jwt_algorithm,
        )

        with pytest.raises(TokenError) as exc_info:
            decode_token(token)

        assert exc_info.value.code == "TOKEN_CLAIMS_INVALID"

    def test_unknown_role(self, user_id):
        settings = get_settings()
        token = jwt.encode(
            {"sub": str(user_id), "role": "superuser"},
            settings.secret_key,
            algorithm=settings.jwt_algorithm,
        )

        with pytest.raises(TokenError):
            decode_token(token)


# ============================================================================
# Dependency Tests
# ============================================================================


class TestAuthDependencies:
    """Test suite for the FastAPI authentication dependencies."""

    @pytest.mark.asyncio
    async def test_current_principal(self, user_id):
        token = create_access_token(user_id, Role.BUYER)

        principal = await get_current_principal(bearer(token))

        assert principal.user_id == user_id

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_principal(None)

        assert exc_info.value.status_code == 401
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}

    @pytest.mark.asyncio
    async def test_invalid_credentials(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_principal(bearer("garbage"))

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_role_allowed(self, user_id):
        checker = require_role(Role.SELLER, Role.ADMIN)
        principal = Principal(user_id, Role.ADMIN)

        assert await checker(principal) is principal

    @pytest.mark.asyncio
    async def test_role_denied(self, user_id):
        checker = require_role(Role.SELLER)

        with pytest.raises(HTTPException) as exc_info:
            await checker(Principal(user_id, Role.BUYER))

        assert exc_info.value.status_code == 403
