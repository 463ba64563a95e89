"""
JWT authentication and password hashing utilities.

WHY: Staff members sign in to manage clients and invoices. This module provides:
1. Password hashing with bcrypt (OWASP A07: Authentication Failures)
2. JWT token generation and verification
3. Token blacklist for logout
4. One-time password reset tokens
"""

import hashlib
import secrets
import time
from datetime import datetime, timedelta
from typing import Dict, Any, Optional
from jose import jwt, JWTError
from passlib.context import CryptContext
import redis.asyncio as aioredis

from invoicing.core.config import settings
from invoicing.core.exceptions import (
    TokenExpiredError,
    TokenInvalidError,
)


# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# Redis connection for token blacklist
_redis_client: Optional[aioredis.Redis] = None


async def get_redis() -> aioredis.Redis:
    """
    Get Redis client for token blacklist.

    WHY: Lazy initialization ensures Redis is only connected when needed,
    and connection is reused across requests.

    Returns:
        Redis client instance
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = await aioredis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_client


# ============================================================================
# Password Hashing
# ============================================================================


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password

    Returns:
        Hashed password (includes salt and cost factor)
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash.

    WHY: Constant-time comparison (built into passlib) prevents timing
    attacks that could leak information about the password.

    Args:
        plain_password: Password provided by user
        hashed_password: Hashed password from database

    Returns:
        True if password matches, False otherwise
    """
    return pwd_context.verify(plain_password, hashed_password)


# ============================================================================
# Password Reset Tokens
# ============================================================================


def generate_reset_token() -> str:
    """Random URL-safe token emailed to the user (64 hex characters)."""
    return secrets.token_hex(32)


def hash_reset_token(token: str) -> str:
    """
    Digest stored in place of a reset token.

    WHY: The token is high-entropy, so an unsalted SHA-256 is enough to
    make a leaked database row useless as a reset link.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ============================================================================
# JWT Token Management
# ============================================================================


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Token includes the caller's data plus the standard exp/iat/nbf claims.

    Args:
        data: User data to encode in token (user_id, role, ...)
        expires_delta: Optional custom expiration time

    Returns:
        JWT token string
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)

    to_encode.update(
        {
            "exp": expire,
            "iat": datetime.utcnow(),
            "nbf": datetime.utcnow(),
        }
    )

    return jwt.encode(
        to_encode,
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def verify_token(token: str) -> Dict[str, Any]:
    """
    Verify and decode a JWT token.

    Args:
        token: JWT token string

    Returns:
        Decoded token payload with user data

    Raises:
        TokenExpiredError: If token has expired
        TokenInvalidError: If token is malformed or signature invalid
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )

    except jwt.ExpiredSignatureError:
        raise TokenExpiredError(message="Token has expired")

    except JWTError as e:
        raise TokenInvalidError(
            message="Invalid token",
            error=str(e),
        )


# ============================================================================
# Token Blacklist (Logout)
# ============================================================================


async def blacklist_token(
    token: str,
    user_id: int,
    ttl_seconds: Optional[int] = None,
) -> None:
    """
    Add a token to the blacklist (for logout).

    WHY: JWT tokens are stateless and can't be "deleted". Blacklisting
    prevents a token from being used even if it hasn't expired yet.

    Args:
        token: JWT token to blacklist
        user_id: User ID stored alongside the entry
        ttl_seconds: Optional TTL (defaults to remaining token lifetime)
    """
    redis = await get_redis()

    # No need to keep blacklist entries longer than the token lifetime
    if ttl_seconds is None:
        try:
            payload = jwt.decode(
                token,
                settings.JWT_SECRET,
                algorithms=[settings.JWT_ALGORITHM],
                options={"verify_signature": False, "verify_exp": False},
            )
            exp_timestamp = payload.get("exp")
            if exp_timestamp:
                ttl_seconds = max(
                    int(exp_timestamp - time.time()),
                    1,
                )
            else:
                ttl_seconds = settings.JWT_EXPIRATION_MINUTES * 60
        except JWTError:
            ttl_seconds = settings.JWT_EXPIRATION_MINUTES * 60

    await redis.setex(
        f"blacklist:token:{token}",
        ttl_seconds,
        str(user_id),
    )


async def is_token_blacklisted(token: str) -> bool:
    """
    Check if a token is blacklisted.

    Args:
        token: JWT token to check

    Returns:
        True if token is blacklisted, False otherwise
    """
    redis = await get_redis()
    exists = await redis.exists(f"blacklist:token:{token}")
    return exists > 0
