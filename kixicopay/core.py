import os
import asyncio
from prometheus_client import start_http_server
import logging

from .changefeed import ChangeFeed, LocalChangeFeed, RedisChangeFeed

logger = logging.getLogger(__name__)

CHANGEFEED_BACKEND = os.getenv('CHANGEFEED_BACKEND', 'local').lower()
SALE_POPUP_SECONDS = float(os.getenv('SALE_POPUP_SECONDS', '5'))
INBOX_LIMIT = int(os.getenv('INBOX_LIMIT', '20'))

REDIS = None
# Process-wide feed; crud publishes here and every subscriber opens its own subscription on it.
CHANGE_FEED: ChangeFeed = LocalChangeFeed()

def init_metrics(port: int = None):
    """Initialize Prometheus metrics server"""
    port = port or int(os.getenv('METRICS_PORT', '8001'))
    try:
        start_http_server(port)
        logger.info(f"Prometheus metrics server started on port {port}")
    except Exception as e:
        logger.warning(f'Prometheus start failed: {e}')

async def redis_startup():
    """Start Redis connection with retries"""
    global REDIS

    import redis.asyncio as aioredis

    redis_url = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    max_retries = 3
    retry_delay = 3  # seconds

    for attempt in range(max_retries):
        try:
            logger.info(f"Attempting to connect to Redis: {redis_url} (attempt {attempt + 1}/{max_retries})")

            REDIS = aioredis.from_url(
                redis_url,
                decode_responses=True,
                max_connections=20,
                retry_on_timeout=True,
                health_check_interval=30,
                socket_connect_timeout=5,
            )

            await REDIS.ping()

            logger.info("Redis connected successfully")
            break

        except Exception as e:
            logger.warning(f'Redis startup attempt {attempt + 1} failed: {e}')
            if REDIS:
                try:
                    await REDIS.aclose()
                except Exception as close_error:
                    logger.debug(f'Redis close after failed startup: {close_error}')
                REDIS = None

            if attempt < max_retries - 1:
                logger.info(f"Retrying Redis connection in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error("Failed to connect to Redis after all retries")

async def changefeed_startup():
    """Select the change feed transport.

    With CHANGEFEED_BACKEND=redis the feed is shared between app instances
    through Redis pub/sub. If Redis is unavailable the in-process feed stays
    in place, so subscribers still see changes made by this instance.
    """
    global CHANGE_FEED

    if CHANGEFEED_BACKEND != 'redis':
        logger.info("Using in-process change feed")
        return

    await redis_startup()
    if not REDIS:
        logger.warning("Redis unavailable, falling back to in-process change feed")
        return

    feed = RedisChangeFeed(REDIS)
    await feed.start()
    CHANGE_FEED = feed
    logger.info("Redis change feed started")

async def shutdown_connections():
    """Gracefully shutdown all connections"""
    global REDIS
    logger.info("Shutting down connections...")

    try:
        await CHANGE_FEED.aclose()
        logger.info("Change feed stopped")
    except Exception as e:
        logger.error(f"Error stopping change feed: {e}")

    if REDIS:
        try:
            await REDIS.aclose()
            logger.info("Redis connection closed")
        except Exception as e:
            logger.error(f"Error closing Redis connection: {e}")
        REDIS = None
