# web_interface/ws_events.py

import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket
from fastapi.websockets import WebSocketDisconnect

from config.app_config import app_config
from common.data_models import EventNotification, StatusNotification
from common.logger_setup import setup_logger
from ami_bridge import AmiBridge
from ami_bridge.ami_protocol import AmiMessage
from ami_bridge.event_fanout import AmiSubscriber
from web_interface.routes_api import get_ami_bridge

logger = setup_logger(__name__, level_str=app_config.LOG_LEVEL)
router = APIRouter()


OVERFLOW_CLOSE_CODE = 1013 # Try Again Later


class SubscriberClosed(ConnectionError):
    pass


class WebSocketSubscriber(AmiSubscriber):
    """Queues fan-out notifications for one WebSocket client.

    Delivery only enqueues, so the dispatch turn never waits on the network.
    A closed socket or a full queue makes delivery raise and the fan-out drops
    the subscriber. On overflow the pump stops and closes the socket with
    OVERFLOW_CLOSE_CODE so the client knows to reconnect.
    """

    def __init__(self, websocket: WebSocket, queue_size: Optional[int] = None):
        self.websocket = websocket
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size or app_config.WS_SUBSCRIBER_QUEUE_SIZE)
        self.closed = False
        self.overflowed = False
        self.name = f"websocket {websocket.client}"
        self._pump_task: Optional[asyncio.Task] = None

    def deliver_event(self, message: AmiMessage) -> None:
        self._enqueue(EventNotification(data=message.to_dict()).model_dump())

    def deliver_status(self, connected: bool) -> None:
        self._enqueue(StatusNotification(connected=connected).model_dump())

    def _enqueue(self, payload: dict) -> None:
        if self.closed:
            raise SubscriberClosed(f"{self.name} is closed")
        try:
            self.queue.put_nowait(payload)
        except asyncio.QueueFull:
            logger.warning(f"[WebSocket] Outbound queue full for {self.name} ({self.queue.maxsize} messages). Closing it.")
            self.closed = True
            self.overflowed = True
            if self._pump_task and not self._pump_task.done():
                self._pump_task.cancel()
            raise

    async def pump(self) -> None:
        self._pump_task = asyncio.current_task()
        try:
            try:
                while not self.overflowed:
                    payload = await self.queue.get()
                    await self.websocket.send_json(payload)
            except asyncio.CancelledError:
                if not self.overflowed:
                    raise
                if self._pump_task.uncancel(): # cancelled by our caller as well as by _enqueue
                    raise
            await self._close_overflowed()
        finally:
            self.closed = True

    async def _close_overflowed(self) -> None:
        try:
            await self.websocket.close(code=OVERFLOW_CLOSE_CODE)
        except (RuntimeError, ConnectionError) as e:
            logger.debug(f"[WebSocket] Closing {self.name} after overflow failed: {e}")


@router.websocket("/ws/ami-events")
async def ami_events(websocket: WebSocket, bridge: AmiBridge = Depends(get_ami_bridge)):
    """Pushes {"type": "status"} on attach, then every AMI event as {"type": "event"}."""
    await websocket.accept()
    subscriber = WebSocketSubscriber(websocket)
    handle = bridge.attach_subscriber(subscriber)
    logger.info(f"[WebSocket] Client connected: {websocket.client}")

    sender = asyncio.create_task(subscriber.pump())
    receiver = asyncio.create_task(_drain_incoming(websocket))
    try:
        done, _ = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if not task.cancelled() and task.exception() and not isinstance(task.exception(), WebSocketDisconnect):
                logger.warning(f"[WebSocket] Connection {websocket.client} ended with error: {task.exception()!r}")
    finally:
        subscriber.closed = True
        if handle is not None:
            bridge.detach_subscriber(handle)
        for task in (sender, receiver):
            task.cancel()
        await asyncio.gather(sender, receiver, return_exceptions=True)
        logger.info(f"[WebSocket] Client disconnected: {websocket.client}")


async def _drain_incoming(websocket: WebSocket) -> None:
    # Clients do not send commands on this channel; reading only detects the close.
    while True:
        await websocket.receive_text()
