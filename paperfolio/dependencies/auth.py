"""
Paperfolio Authentication Dependencies
Password hashing, JWT access tokens and user/role dependencies for FastAPI.
"""

import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paperfolio.config.settings import settings
from paperfolio.database.connection import get_db_session
from paperfolio.database.models import Role, User
from paperfolio.exceptions import StreamAuthenticationError

# Configure logging
logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.security.bcrypt_rounds
)

# HTTP Bearer scheme for API documentation
http_bearer = HTTPBearer(auto_error=False)

_password_rule = re.compile(settings.security.password_pattern)


# ============================================================================
# Password Utilities
# ============================================================================

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain password against a hashed password.

    Args:
        plain_password: The plain text password.
        hashed_password: The hashed password to compare against.

    Returns:
        bool: True if passwords match, False otherwise.
    """
    return pwd_context.verify(plain_password, hashed_password)


def hash_password(password: str) -> str:
    """
    Hash a plain text password.

    Args:
        password: The plain text password to hash.

    Returns:
        str: The hashed password.
    """
    return pwd_context.hash(password)


def is_password_strong(password: Optional[str]) -> bool:
    """Letter, digit, 8 to 128 characters."""
    return password is not None and _password_rule.fullmatch(password) is not None


# ============================================================================
# JWT Token Utilities
# ============================================================================

def create_access_token(
    user_id: int,
    username: str,
    role: str,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a new JWT access token.

    Args:
        user_id: The user's ID.
        username: The user's login name.
        role: The role the session authenticated as (e.g. ROLE_USER).
        expires_delta: Optional custom expiration time.

    Returns:
        str: The encoded JWT token.
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt.access_token_expire_minutes)

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "username": username,
        "role": role,
        "type": "access",
        "exp": now + expires_delta,
        "iat": now,
        "jti": uuid.uuid4().hex,
    }

    return jwt.encode(
        payload,
        settings.jwt.secret_key,
        algorithm=settings.jwt.algorithm
    )


def decode_token(token: str) -> Optional[dict]:
    """
    Decode and validate a JWT token.

    Args:
        token: The JWT token to decode.

    Returns:
        Optional[dict]: The decoded token payload or None if invalid.
    """
    try:
        return jwt.decode(
            token,
            settings.jwt.secret_key,
            algorithms=[settings.jwt.algorithm]
        )
    except JWTError as e:
        logger.warning(f"Token decode error: {e}")
        return None


def validate_stream_token(token: Optional[str]) -> dict:
    """
    Validate the access token passed as a query parameter to the price stream.

    EventSource clients cannot set headers, so the token travels in the URL.

    Raises:
        StreamAuthenticationError: If the token is missing or invalid.
    """
    if token is None or not token.strip():
        raise StreamAuthenticationError("Token is required")

    payload = decode_token(token.strip())
    if payload is None or payload.get("type") != "access" or not payload.get("sub"):
        raise StreamAuthenticationError("Invalid token")

    return payload


# ============================================================================
# User Authentication Dependencies
# ============================================================================

_credentials_exception = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer)
) -> dict:
    """
    Decode the bearer access token of the current request.

    Raises:
        HTTPException: 401 if the token is missing, invalid or not an access token.
    """
    if credentials is None:
        raise _credentials_exception

    payload = decode_token(credentials.credentials)
    if payload is None or not payload.get("sub"):
        raise _credentials_exception

    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload


async def get_current_user(
    payload: dict = Depends(get_token_payload),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """
    Get the current authenticated user from the JWT token.

    Returns:
        User: The authenticated user.

    Raises:
        HTTPException: If authentication fails.
    """
    try:
        user_id = int(payload["sub"])
    except (KeyError, ValueError):
        raise _credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise _credentials_exception

    return user


def require_role(required_role: Role):
    """
    Create a dependency that requires the session to be authenticated as a role.

    The check is against the role chosen at login (the token's role claim),
    not every role the user holds.

    Args:
        required_role: The required role.

    Returns:
        Callable: Dependency function.
    """
    async def role_checker(
        payload: dict = Depends(get_token_payload),
        current_user: User = Depends(get_current_user),
    ) -> User:
        if payload.get("role") != required_role.value:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required role: {required_role.value}"
            )
        return current_user

    return role_checker


# Role dependencies
require_admin = require_role(Role.ROLE_ADMIN)
require_user = require_role(Role.ROLE_USER)


__all__ = [
    "pwd_context",
    "http_bearer",
    "verify_password",
    "hash_password",
    "is_password_strong",
    "create_access_token",
    "decode_token",
    "validate_stream_token",
    "get_token_payload",
    "get_current_user",
    "require_role",
    "require_admin",
    "require_user",
]
