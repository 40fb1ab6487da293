"""Redis client for caching customer profiles and part lookups."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

import redis.asyncio as redis
from evcenter.config import settings

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None

# Key prefixes for namespace organization
CUSTOMER_PREFIX = "customer:"
PART_PREFIX = "part:"

# Timeout for Redis operations (seconds)
REDIS_TIMEOUT = 2.0


async def init_redis():
    """Initialize Redis connection with connection pooling.

    Raises:
        Exception: If connection fails or cannot be validated
    """
    global redis_client
    try:
        redis_client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
            socket_connect_timeout=5,
            socket_keepalive=True,
        )

        await redis_client.ping()
        logger.info("Redis connection initialized and validated with connection pooling")

    except Exception as e:
        logger.error(f"Failed to initialize Redis connection: {e}")
        if redis_client:
            try:
                await redis_client.aclose()
            except Exception as close_error:
                logger.debug(f"Ignoring error while closing Redis client: {close_error}")
        redis_client = None
        raise Exception(f"Redis connection initialization failed: {e}")


async def close_redis():
    """Close Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
        logger.info("Redis connection closed")


def _check_redis_initialized() -> bool:
    """Check if Redis client is initialized."""
    if not redis_client:
        logger.debug("Redis client not initialized - cache disabled")
        return False
    return True


def get_redis():
    """Get Redis client instance, or None if not initialized."""
    return redis_client


# ============================================================================
# Generic JSON helpers
# ============================================================================


async def _set_json(key: str, data: dict, ttl: int) -> bool:
    try:
        if not _check_redis_initialized():
            return False

        data["cached_at"] = datetime.now(timezone.utc).isoformat()
        value = json.dumps(data, default=str)

        try:
            await asyncio.wait_for(redis_client.setex(key, ttl, value), timeout=REDIS_TIMEOUT)
            logger.debug(f"Cached {key} (TTL: {ttl}s)")
            return True
        except asyncio.TimeoutError:
            logger.error(f"Timeout caching {key}")
            return False

    except Exception as e:
        logger.error(f"Error caching {key}: {e}")
        return False


async def _get_json(key: str) -> Optional[dict]:
    try:
        if not _check_redis_initialized():
            return None

        try:
            value = await asyncio.wait_for(redis_client.get(key), timeout=REDIS_TIMEOUT)
        except asyncio.TimeoutError:
            logger.error(f"Timeout retrieving {key}")
            return None

        if value:
            logger.debug(f"Cache hit: {key}")
            return json.loads(value)

        logger.debug(f"Cache miss: {key}")
        return None

    except Exception as e:
        logger.error(f"Error retrieving {key}: {e}")
        return None


async def _delete(key: str) -> bool:
    try:
        if not _check_redis_initialized():
            return False

        try:
            deleted = await asyncio.wait_for(redis_client.delete(key), timeout=REDIS_TIMEOUT)
        except asyncio.TimeoutError:
            logger.error(f"Timeout invalidating {key}")
            return False

        if deleted:
            logger.info(f"Cache invalidated: {key}")
        return bool(deleted)

    except Exception as e:
        logger.error(f"Error invalidating {key}: {e}")
        return False


# ============================================================================
# Customer Caching Functions
# ============================================================================


async def cache_customer(user_id: int, customer_data: dict, ttl: int = None) -> bool:
    """Cache a customer profile (user fields plus vehicles).

    Args:
        user_id: Customer id
        customer_data: Serialized profile
        ttl: Time-to-live in seconds (default: settings.CACHE_TTL)

    Returns:
        True if successful, False otherwise
    """
    return await _set_json(f"{CUSTOMER_PREFIX}{user_id}", customer_data, ttl or settings.CACHE_TTL)


async def get_cached_customer(user_id: int) -> Optional[dict]:
    """Retrieve a cached customer profile, or None."""
    return await _get_json(f"{CUSTOMER_PREFIX}{user_id}")


async def invalidate_customer_cache(user_id: int) -> bool:
    """Clear a cached customer profile after it changes."""
    return await _delete(f"{CUSTOMER_PREFIX}{user_id}")


# ============================================================================
# Part Caching Functions
# ============================================================================


async def cache_part(part_id: int, part_data: dict, ttl: int = None) -> bool:
    return await _set_json(f"{PART_PREFIX}{part_id}", part_data, ttl or settings.CACHE_TTL)


async def get_cached_part(part_id: int) -> Optional[dict]:
    return await _get_json(f"{PART_PREFIX}{part_id}")


async def invalidate_part_cache(part_id: int) -> bool:
    """Clear a cached part. Called on every stock or pricing change."""
    return await _delete(f"{PART_PREFIX}{part_id}")


# ============================================================================
# Health Check
# ============================================================================


async def check_redis_health() -> bool:
    """Test Redis connectivity.

    Returns:
        True if Redis is accessible, False otherwise
    """
    try:
        if not redis_client:
            logger.error("Redis client not initialized")
            return False

        try:
            await asyncio.wait_for(redis_client.ping(), timeout=REDIS_TIMEOUT)
            logger.debug("Redis health check: OK")
            return True
        except asyncio.TimeoutError:
            logger.error("Redis health check timed out")
            return False

    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        return False
