"""
Authentication dependencies for FastAPI.

This module provides dependencies for protecting routes with JWT authentication
and for turning the token into the acting user passed to the ledger engine.
"""

from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from ledger_backend.app.core.jwt import decode_access_token
from ledger_backend.app.core.token_revocation import is_token_revoked, are_user_tokens_revoked
from ledger_backend.app.core.exceptions import AuthenticationError, TokenRevokedError
from ledger_backend.app.domain.ledger.directions import ActingUser
from ledger_backend.app.models.enums import UserRole

# HTTP Bearer security scheme; missing credentials are reported as 401 below
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Security checks:
    1. Validates JWT token signature and expiry
    2. Checks if token has been explicitly revoked
    3. Checks if all user tokens have been revoked (user blocked)

    Returns:
        Decoded token payload containing user information

    Raises:
        AuthenticationError: missing, malformed or expired token
        TokenRevokedError: token or user revoked
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    token = credentials.credentials

    # 1. Decode and validate JWT
    payload = decode_access_token(token)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    # 2. Check if this specific token has been revoked
    if await is_token_revoked(token):
        raise TokenRevokedError()

    # 3. Check if all user tokens have been revoked (user was blocked)
    if await are_user_tokens_revoked(user_id):
        raise TokenRevokedError()

    return payload


def acting_user(payload: dict) -> ActingUser:
    """Build the explicit acting-user value handed to ledger operations."""
    role = payload.get("role")
    try:
        role = UserRole(role) if role else None
    except ValueError:
        role = None
    return ActingUser(user_id=int(payload["user_id"]), username=payload.get("sub"), role=role)
