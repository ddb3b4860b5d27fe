"""
Bearer token handling.

Identity is owned by an upstream service; this module only verifies the
signed JWT it issues and exposes the caller as a :class:`Principal`. Tokens
carry ``sub`` (user id), ``role`` and ``email`` claims.

Example:
    >>> token = create_access_token(user_id, Role.BUYER, "buyer@example.com")
    >>> decode_token(token).role
    <Role.BUYER: 'buyer'>
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from marketplace.core.config import Settings, get_settings
from marketplace.core.logging import get_logger

logger = get_logger(__name__)


class Role(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


class TokenError(Exception):
    """Exception raised for token-related errors."""

    def __init__(self, message: str, code: str, **context):
        super().__init__(message)
        self.code = code
        self.context = context


@dataclass(frozen=True)
class Principal:
    """Authenticated caller."""

    user_id: uuid.UUID
    role: Role
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def create_access_token(
    user_id: uuid.UUID,
    role: Role,
    email: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
    settings: Optional[Settings] = None,
) -> str:
    """
    Issue a signed access token.

    Used by local tooling and tests; production tokens come from the
    identity service and are signed with the same shared key.
    """
    settings = settings or get_settings()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))

    claims: Dict[str, Any] = {
        "sub": str(user_id),
        "role": Role(role).value,
        "exp": expire,
        "iat": now,
        "type": "access",
    }
    if email:
        claims["email"] = email

    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Optional[Settings] = None) -> Principal:
    """
    Decode and validate an access token.

    Raises:
        TokenError: If the token is empty, expired, malformed or carries
            unusable claims
    """
    if not token:
        raise TokenError("Token cannot be empty", code="EMPTY_TOKEN")

    settings = settings or get_settings()

    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError as e:
        logger.warning("Token has expired", error=str(e))
        raise TokenError("Token has expired", code="TOKEN_EXPIRED") from e
    except JWTError as e:
        logger.warning("Invalid token", error=str(e), error_type=type(e).__name__)
        raise TokenError("Invalid token", code="TOKEN_INVALID") from e

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
        role = Role(payload.get("role", Role.BUYER.value))
    except ValueError as e:
        logger.warning(
            "Token carries invalid claims",
            subject=payload.get("sub"),
            role=payload.get("role"),
        )
        raise TokenError("Token carries invalid claims", code="TOKEN_CLAIMS_INVALID") from e

    return Principal(user_id=user_id, role=role, email=payload.get("email"))
