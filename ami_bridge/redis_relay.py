# ami_bridge/redis_relay.py

import asyncio
from typing import Optional, Set

from config.app_config import app_config
from common.data_models import EventNotification, StatusNotification
from common.logger_setup import setup_logger
from common.redis_client import RedisClient
from ami_bridge.ami_protocol import AmiMessage
from ami_bridge.event_fanout import AmiSubscriber

logger = setup_logger(__name__, level_str=app_config.LOG_LEVEL)


class RedisEventRelay(AmiSubscriber):
    """Republishes fan-out notifications to a Redis pub/sub channel.

    Payloads use the same envelope as the WebSocket channel:
    ``{"type": "event", "data": {...}}`` and ``{"type": "status", "connected": bool}``.
    """

    name = "redis-relay"

    def __init__(self, redis_client: RedisClient, channel: Optional[str] = None,
                 max_in_flight: Optional[int] = None):
        self.redis_client = redis_client
        self.channel = channel or app_config.AMI_EVENTS_REDIS_CHANNEL
        self.max_in_flight = max_in_flight or app_config.REDIS_RELAY_MAX_IN_FLIGHT
        self.dropped = 0
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def deliver_event(self, message: AmiMessage) -> None:
        self._schedule(EventNotification(data=message.to_dict()).model_dump())

    def deliver_status(self, connected: bool) -> None:
        self._schedule(StatusNotification(connected=connected).model_dump())

    def _schedule(self, payload: dict) -> None:
        if len(self._tasks) >= self.max_in_flight:
            # At most max_in_flight publishes; excess notifications are dropped
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                logger.warning(f"[RedisRelay] {len(self._tasks)} publishes in flight to '{self.channel}'. "
                               f"Dropped {self.dropped} notification(s) so far.")
            return
        task = asyncio.get_running_loop().create_task(self.redis_client.publish_event(self.channel, payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for publishes already scheduled."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
