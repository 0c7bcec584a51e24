# main.py

import sys
from pathlib import Path
from typing import Optional

# --- The ONE AND ONLY Path Setup ---
project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))
# ------------------------------------

# Import app_config and logger_setup first as they are foundational
from config.app_config import app_config
from common.logger_setup import setup_logger

logger = setup_logger("MainApp", level_str=app_config.LOG_LEVEL)

from common.redis_client import RedisClient
from ami_bridge import AmiBridge, AmiConnectionConfig
from ami_bridge.redis_relay import RedisEventRelay

# --- Global Service Instances ---
# These will be initialized by actual_start_services
ami_bridge: Optional[AmiBridge] = None
redis_client: Optional[RedisClient] = None
redis_relay: Optional[RedisEventRelay] = None
redis_relay_handle: Optional[int] = None


# --- Lifecycle Functions (to be called by lifespan manager) ---
async def actual_start_services() -> AmiBridge:
    """Creates the bridge and its optional Redis relay. Returns the bridge."""
    global ami_bridge, redis_client, redis_relay, redis_relay_handle

    logger.info("actual_start_services: Initializing AMI bridge...")
    ami_bridge = AmiBridge()

    if app_config.AMI_EVENTS_REDIS_ENABLED:
        redis_client = RedisClient()
        redis_relay = RedisEventRelay(redis_client)
        redis_relay_handle = ami_bridge.attach_subscriber(redis_relay)
        logger.info(f"actual_start_services: Relaying AMI events to Redis channel '{app_config.AMI_EVENTS_REDIS_CHANNEL}'.")
    else:
        logger.info("actual_start_services: Redis event relay disabled.")

    if app_config.AMI_AUTO_CONNECT:
        if app_config.ASTERISK_AMI_USER and app_config.ASTERISK_AMI_SECRET:
            result = await ami_bridge.connect(AmiConnectionConfig(
                host=app_config.ASTERISK_HOST,
                port=app_config.ASTERISK_PORT,
                username=app_config.ASTERISK_AMI_USER,
                secret=app_config.ASTERISK_AMI_SECRET,
            ))
            if result["success"]:
                logger.info("actual_start_services: Asterisk AMI bridge connected.")
            else:
                logger.error(f"actual_start_services: Asterisk AMI bridge failed initial connect: {result['error']}")
        else:
            logger.warning("actual_start_services: AMI_AUTO_CONNECT set but Asterisk AMI creds not set.")

    return ami_bridge


async def actual_shutdown_services():
    """Disconnects from AMI and closes the Redis client."""
    global ami_bridge, redis_client, redis_relay, redis_relay_handle
    logger.info("actual_shutdown_services: Shutting down AMI bridge...")
    if ami_bridge:
        try:
            await ami_bridge.disconnect()
        except Exception as e:
            logger.error(f"actual_shutdown_services: Error disconnecting AMI bridge: {e}", exc_info=True)
        if redis_relay_handle is not None:
            ami_bridge.detach_subscriber(redis_relay_handle)
    if redis_relay:
        await redis_relay.drain() # final status notification
    if redis_client:
        await redis_client.close_async_client()
    ami_bridge = None
    redis_client = None
    redis_relay = None
    redis_relay_handle = None
    logger.info("actual_shutdown_services: Shutdown complete.")


if __name__ == "__main__":
    import uvicorn
    logger.info("==================================================")
    logger.info("              Starting AMI Bridge Server          ")
    logger.info("==================================================")
    logger.info(f"Launching FastAPI server on http://{app_config.WEB_SERVER_HOST}:{app_config.WEB_SERVER_PORT}")

    uvicorn.run(
        "web_interface.app:app", # IMPORTANT: Point to app instance in web_interface.app
        host=app_config.WEB_SERVER_HOST,
        port=app_config.WEB_SERVER_PORT,
        reload=app_config.LOG_LEVEL == "DEBUG",
        log_level=app_config.LOG_LEVEL.lower()
    )
