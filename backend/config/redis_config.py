"""
Redis Configuration for the OAuth State Registry

Provides the shared Redis client used to hold short-lived OAuth state
tokens, so in-flight logins survive restarts and work across instances.
"""
from typing import Optional
from redis import Redis
from loguru import logger

from config.settings import settings


class RedisConfig:
    """Redis connection configuration with production-ready defaults."""

    REDIS_URL = settings.REDIS_URL
    REDIS_HOST = settings.REDIS_HOST
    REDIS_PORT = settings.REDIS_PORT
    REDIS_DB = settings.REDIS_DB
    REDIS_PASSWORD = settings.REDIS_PASSWORD
    REDIS_SSL = settings.REDIS_SSL

    REDIS_MAX_CONNECTIONS = 50
    REDIS_SOCKET_TIMEOUT = settings.REDIS_SOCKET_TIMEOUT
    REDIS_SOCKET_CONNECT_TIMEOUT = settings.REDIS_SOCKET_TIMEOUT


# Singleton Redis client
_redis_client: Optional[Redis] = None


def get_redis_client() -> Redis:
    """
    Get the shared Redis client.

    Returns:
        Redis: Redis client instance with string decoding enabled
    """
    global _redis_client

    if _redis_client is None:
        if RedisConfig.REDIS_URL:
            _redis_client = Redis.from_url(
                RedisConfig.REDIS_URL,
                max_connections=RedisConfig.REDIS_MAX_CONNECTIONS,
                socket_timeout=RedisConfig.REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=RedisConfig.REDIS_SOCKET_CONNECT_TIMEOUT,
                decode_responses=True
            )
        else:
            _redis_client = Redis(
                host=RedisConfig.REDIS_HOST,
                port=RedisConfig.REDIS_PORT,
                db=RedisConfig.REDIS_DB,
                password=RedisConfig.REDIS_PASSWORD,
                ssl=RedisConfig.REDIS_SSL,
                max_connections=RedisConfig.REDIS_MAX_CONNECTIONS,
                socket_timeout=RedisConfig.REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=RedisConfig.REDIS_SOCKET_CONNECT_TIMEOUT,
                decode_responses=True
            )
        logger.info("Redis client initialized")

    return _redis_client


def close_redis_connections():
    """Close the Redis connection on app shutdown."""
    global _redis_client

    if _redis_client:
        _redis_client.close()
        _redis_client = None
        logger.info("Redis connection closed")


def test_redis_connection() -> bool:
    """
    Test Redis connection on startup.

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        get_redis_client().ping()
        logger.info("Redis connection test successful")
        return True
    except Exception as e:
        logger.error(f"Redis connection test failed: {e}")
        return False
