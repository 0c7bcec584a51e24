# ami_bridge/event_fanout.py

import asyncio
from typing import Callable, Dict, List, Mapping, Optional

from config.app_config import app_config
from common.logger_setup import setup_logger
from ami_bridge.ami_protocol import AmiMessage
from ami_bridge.action_correlator import ActionCorrelator

logger = setup_logger(__name__, level_str=app_config.LOG_LEVEL)


class AmiSubscriber:
    """Receives Events and connection-status changes from the fan-out.

    Both methods run synchronously inside the dispatch turn. Raising marks the
    subscriber as dead and it is removed.
    """

    name = "subscriber"

    def deliver_event(self, message: AmiMessage) -> None:
        pass

    def deliver_status(self, connected: bool) -> None:
        pass


class CallbackSubscriber(AmiSubscriber):
    def __init__(self, on_event: Callable[[AmiMessage], None],
                 on_status: Optional[Callable[[bool], None]] = None, name: str = "callback"):
        self._on_event = on_event
        self._on_status = on_status
        self.name = name

    def deliver_event(self, message: AmiMessage) -> None:
        self._on_event(message)

    def deliver_status(self, connected: bool) -> None:
        if self._on_status:
            self._on_status(connected)


class ListCollector(AmiSubscriber):
    """Scoped subscriber for one listing action (e.g. PJSIPShowEndpoints).

    Stays inert until the action's Response is Success, then gathers item
    events carrying its ActionID until the completion event arrives.
    """

    name = "list-collector"

    def __init__(self, item_event: str, complete_event: str):
        self.item_event = item_event
        self.complete_event = complete_event
        self.action_id: Optional[str] = None
        self.active = False
        self.items: List[AmiMessage] = []
        self.done: asyncio.Future = asyncio.get_running_loop().create_future()

    def activate(self, response: AmiMessage) -> None:
        if response.get("Response") == "Success":
            self.active = True

    def deliver_event(self, message: AmiMessage) -> None:
        if not self.active or self.done.done() or message.action_id != self.action_id:
            return
        if message.event_name == self.item_event:
            self.items.append(message)
        elif message.event_name == self.complete_event:
            self.done.set_result(True)

    def deliver_status(self, connected: bool) -> None:
        if not connected and not self.done.done():
            self.done.set_result(False)


class EventFanOut:
    def __init__(self, list_timeout_s: Optional[float] = None):
        self.list_timeout_s = list_timeout_s if list_timeout_s is not None else app_config.AMI_LIST_QUERY_TIMEOUT_S
        self._subscribers: Dict[int, AmiSubscriber] = {} # insertion order == registration order
        self._next_handle = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, subscriber: AmiSubscriber) -> int:
        self._next_handle += 1
        self._subscribers[self._next_handle] = subscriber
        logger.debug(f"[FanOut] Subscribed {subscriber.name} as handle {self._next_handle}. Total: {len(self._subscribers)}")
        return self._next_handle

    def unsubscribe(self, handle: int) -> bool:
        subscriber = self._subscribers.pop(handle, None)
        if subscriber is not None:
            logger.debug(f"[FanOut] Unsubscribed {subscriber.name} (handle {handle}). Total: {len(self._subscribers)}")
        return subscriber is not None

    def publish(self, message: AmiMessage) -> int:
        """Deliver an Event to every subscriber. Returns the number of successful deliveries."""
        return self._deliver("event", lambda sub: sub.deliver_event(message))

    def notify_status(self, connected: bool) -> int:
        return self._deliver("status", lambda sub: sub.deliver_status(connected))

    def _deliver(self, what: str, deliver: Callable[[AmiSubscriber], None]) -> int:
        delivered = 0
        for handle, subscriber in list(self._subscribers.items()):
            if handle not in self._subscribers: # removed by an earlier delivery in this turn
                continue
            try:
                deliver(subscriber)
                delivered += 1
            except Exception as e:
                logger.warning(f"[FanOut] Delivering {what} to {subscriber.name} (handle {handle}) failed: {e}. Removing subscriber.")
                self._subscribers.pop(handle, None)
        return delivered

    async def collect_list(self, correlator: ActionCorrelator, fields: Mapping[str, object],
                           item_event: str, complete_event: str,
                           timeout_s: Optional[float] = None) -> List[AmiMessage]:
        """Send a listing action and gather its item events.

        Returns the items seen before ``complete_event``, or whatever arrived
        before the fallback timeout. A non-Success response gives an empty list.
        Correlator errors (NotConnected, ActionTimeout, ConnectionLost) propagate.
        """
        timeout_s = timeout_s if timeout_s is not None else self.list_timeout_s
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s
        collector = ListCollector(item_event, complete_event)
        handle = self.subscribe(collector)
        try:
            pending = correlator.submit(fields, timeout_s=timeout_s, on_response=collector.activate)
            collector.action_id = pending.action_id
            response = await pending
            if response.get("Response") != "Success":
                logger.warning(f"[FanOut] {fields.get('Action')} (ActionID: {pending.action_id}) rejected: {response.get('Message')}")
                return []

            try:
                await asyncio.wait_for(collector.done, timeout=max(deadline - loop.time(), 0))
            except asyncio.TimeoutError:
                logger.warning(f"[FanOut] {fields.get('Action')} (ActionID: {pending.action_id}) did not see {complete_event} "
                               f"within {timeout_s}s. Returning {len(collector.items)} partial item(s).")
            return list(collector.items)
        finally:
            self.unsubscribe(handle)
