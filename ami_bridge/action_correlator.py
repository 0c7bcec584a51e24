# ami_bridge/action_correlator.py

import asyncio
import time
from typing import Callable, Dict, List, Mapping, Optional, Protocol

from config.app_config import app_config
from common.logger_setup import setup_logger
from ami_bridge.ami_protocol import ACTION_ID_FIELD, AmiMessage, encode_action
from ami_bridge.exceptions import (
    PARSE_ANOMALY,
    ActionTimeout,
    AmiBridgeError,
    ConnectionLost,
    NotConnected,
)

logger = setup_logger(__name__, level_str=app_config.LOG_LEVEL)

ResponseCallback = Callable[[AmiMessage], None]


class ActionTransport(Protocol):
    def can_send(self, action_name: Optional[str]) -> bool: ...

    def write(self, data: bytes) -> None: ...


class PendingAction:
    def __init__(self, action_id: str, action_name: Optional[str], future: asyncio.Future, timeout_s: float):
        self.action_id = action_id
        self.action_name = action_name
        self.future = future
        self.timeout_s = timeout_s
        self.created_at = time.monotonic()
        self.on_response: List[ResponseCallback] = []
        self.timer: Optional[asyncio.TimerHandle] = None

    def __await__(self):
        return self.future.__await__()


class ActionCorrelator:
    """Tracks outbound actions by ActionID until their Response or timeout.

    Every resolution path starts by popping the action out of the registry,
    so a Response, a timer and a teardown sweep can never settle the same
    action twice.
    """

    def __init__(self, transport: ActionTransport, default_timeout_s: Optional[float] = None):
        self._transport = transport
        self.default_timeout_s = default_timeout_s if default_timeout_s is not None else app_config.AMI_ACTION_TIMEOUT_S
        self._next_id = 0
        self._pending: Dict[str, PendingAction] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, action_id: str) -> bool:
        return action_id in self._pending

    def submit(self, fields: Mapping[str, object], timeout_s: Optional[float] = None,
               on_response: Optional[ResponseCallback] = None) -> PendingAction:
        """Register and write an action. Await the returned PendingAction for its Response."""
        action_name = str(fields["Action"]) if "Action" in fields else None
        if not self._transport.can_send(action_name):
            raise NotConnected()

        loop = asyncio.get_running_loop()
        self._next_id += 1
        action_id = str(self._next_id)
        outbound = {key: value for key, value in fields.items() if key != ACTION_ID_FIELD}
        outbound[ACTION_ID_FIELD] = action_id

        # No Response can be read before this method returns, so writing first is safe
        try:
            self._transport.write(encode_action(outbound))
        except (OSError, RuntimeError) as e:
            raise ConnectionLost(f"Failed to write {action_name} to AMI socket: {e}") from e

        effective_timeout = timeout_s if timeout_s is not None else self.default_timeout_s
        pending = PendingAction(action_id, action_name, loop.create_future(), effective_timeout)
        if on_response is not None:
            pending.on_response.append(on_response)
        pending.timer = loop.call_later(effective_timeout, self._expire, action_id)
        self._pending[action_id] = pending
        logger.debug(f"[Correlator] Sent action {action_name} (ActionID: {action_id}, timeout {effective_timeout}s)")
        return pending

    async def send(self, fields: Mapping[str, object], timeout_s: Optional[float] = None) -> AmiMessage:
        return await self.submit(fields, timeout_s=timeout_s)

    def resolve(self, message: AmiMessage) -> bool:
        action_id = message.action_id
        pending = self._pending.pop(action_id, None) if action_id is not None else None
        if pending is None:
            logger.warning(f"[Correlator] {PARSE_ANOMALY}: dropping Response for unknown ActionID {action_id!r}: {message.fields}")
            return False
        if pending.timer:
            pending.timer.cancel()
        for callback in pending.on_response:
            try:
                callback(message)
            except Exception as e:
                logger.error(f"[Correlator] Response callback failed for ActionID {action_id}: {e}", exc_info=True)
        if not pending.future.done():
            pending.future.set_result(message)
        elapsed_ms = (time.monotonic() - pending.created_at) * 1000
        logger.debug(f"[Correlator] {pending.action_name} (ActionID: {action_id}) -> {message.get('Response')} in {elapsed_ms:.1f}ms")
        return True

    def _expire(self, action_id: str) -> None:
        pending = self._pending.get(action_id)
        if pending is None:
            return
        logger.warning(f"[Correlator] Timeout waiting for response to {pending.action_name} (ActionID: {action_id}) after {pending.timeout_s}s")
        self._settle_error(action_id, ActionTimeout(action_id, pending.action_name, pending.timeout_s))

    def _settle_error(self, action_id: str, error: AmiBridgeError) -> None:
        pending = self._pending.pop(action_id, None)
        if pending is None:
            return
        if pending.timer:
            pending.timer.cancel()
        if not pending.future.done():
            pending.future.set_exception(error)

    def fail_all(self, reason: str = "AMI connection lost") -> int:
        """Reject every pending action with ConnectionLost. Returns how many were rejected."""
        action_ids = list(self._pending)
        for action_id in action_ids:
            self._settle_error(action_id, ConnectionLost(reason))
        if action_ids:
            logger.warning(f"[Correlator] Rejected {len(action_ids)} pending action(s): {reason}")
        return len(action_ids)
