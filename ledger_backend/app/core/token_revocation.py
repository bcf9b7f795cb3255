"""
Token Revocation System using Redis.

The identity provider (or an operator) flags tokens, or every token of a
user, as revoked; the ledger API rejects them until they expire.
"""

import logging
from redis.exceptions import RedisError
from ledger_backend.app.core.redis_client import get_redis
from ledger_backend.app.core.config import settings

logger = logging.getLogger(__name__)

# Redis key prefix for blacklisted tokens
TOKEN_BLACKLIST_PREFIX = "blacklist:token:"
USER_TOKENS_PREFIX = "user:tokens:"


async def revoke_token(token: str, user_id: int) -> bool:
    """
    Revoke a specific JWT token by adding it to the blacklist.

    Args:
        token: The JWT token string to revoke
        user_id: User ID who owns the token

    Returns:
        True if successfully revoked, False otherwise
    """
    try:
        # Tokens expire on their own, the entry only has to outlive them
        ttl_seconds = settings.access_token_expire_minutes * 60
        redis = await get_redis()
        await redis.setex(f"{TOKEN_BLACKLIST_PREFIX}{token}", ttl_seconds, str(user_id))
        return True
    except RedisError as e:
        logger.error("Error revoking token for user %s: %s", user_id, e)
        return False


async def is_token_revoked(token: str) -> bool:
    """
    Check if a token has been revoked.

    Fails open when Redis is unreachable (availability over strictness).
    """
    try:
        redis = await get_redis()
        return await redis.exists(f"{TOKEN_BLACKLIST_PREFIX}{token}") > 0
    except RedisError as e:
        logger.warning("Error checking token revocation: %s", e)
        return False


async def revoke_all_user_tokens(user_id: int) -> bool:
    """
    Revoke all active tokens for a specific user.

    Args:
        user_id: User ID whose tokens should be revoked

    Returns:
        True if successful
    """
    try:
        ttl_seconds = settings.access_token_expire_minutes * 60
        redis = await get_redis()
        await redis.setex(f"{USER_TOKENS_PREFIX}{user_id}:revoked", ttl_seconds, "1")
        return True
    except RedisError as e:
        logger.error("Error revoking all tokens for user %s: %s", user_id, e)
        return False


async def are_user_tokens_revoked(user_id: int) -> bool:
    """Check if all tokens for a user have been revoked."""
    try:
        redis = await get_redis()
        return await redis.exists(f"{USER_TOKENS_PREFIX}{user_id}:revoked") > 0
    except RedisError as e:
        logger.warning("Error checking user token revocation: %s", e)
        return False
