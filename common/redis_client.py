import redis # Main redis module for exceptions
import redis.asyncio as aioredis
import json
from typing import Optional

from config.app_config import app_config
from common.logger_setup import setup_logger

logger = setup_logger(__name__, level_str=app_config.LOG_LEVEL)

class RedisClient:
    """Lazily connected asyncio Redis client used to republish bridge notifications."""

    def __init__(self, host: Optional[str] = None, port: Optional[int] = None,
                 db: Optional[int] = None, password: Optional[str] = None,
                 socket_timeout_s: Optional[float] = None):
        self.host = host or app_config.REDIS_HOST
        self.port = port or app_config.REDIS_PORT
        self.db = db if db is not None else app_config.REDIS_DB
        self.password = password if password is not None else app_config.REDIS_PASSWORD
        self.socket_timeout_s = socket_timeout_s if socket_timeout_s is not None else app_config.REDIS_SOCKET_TIMEOUT_S
        self.async_redis_client: Optional[aioredis.Redis] = None

    async def _get_async_redis_client(self) -> aioredis.Redis:
        if self.async_redis_client is None:
            try:
                self.async_redis_client = aioredis.Redis(
                    host=self.host,
                    port=self.port,
                    db=self.db,
                    password=self.password,
                    socket_timeout=self.socket_timeout_s,
                    socket_connect_timeout=self.socket_timeout_s,
                    decode_responses=True
                )
                await self.async_redis_client.ping() # Test connection on creation
                logger.info(f"Asynchronous Redis client connected to {self.host}:{self.port}")
            except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError, OSError) as e:
                logger.error(f"Failed to connect asynchronous Redis client: {e}")
                if self.async_redis_client:
                    await self.async_redis_client.aclose()
                    self.async_redis_client = None
                raise
        return self.async_redis_client

    async def publish_event(self, channel: str, payload: dict) -> bool:
        if not isinstance(payload, dict):
            logger.error(f"Payload must be a dictionary. Received: {type(payload)}")
            return False
        try:
            client = await self._get_async_redis_client()
            message_json = json.dumps(payload)
            await client.publish(channel, message_json)
            logger.debug(f"Published to {channel}: {message_json}")
            return True
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError, OSError):
            logger.error(f"Connection error publishing to Redis channel {channel}. Forcing client re-init on next call.")
            if self.async_redis_client:
                await self.async_redis_client.aclose()
            self.async_redis_client = None
            return False
        except redis.exceptions.RedisError as e:
            logger.error(f"Error publishing to Redis channel {channel}: {e}")
            return False

    async def close_async_client(self):
        if self.async_redis_client:
            try:
                await self.async_redis_client.aclose()
                logger.info("Asynchronous Redis client connection closed.")
            except (redis.exceptions.RedisError, OSError) as e:
                logger.error(f"Error closing async_redis_client: {e}")
            finally:
                self.async_redis_client = None
