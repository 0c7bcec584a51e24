# ami_bridge/connection_manager.py

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from config.app_config import app_config
from common.logger_setup import setup_logger
from ami_bridge.ami_protocol import AmiFramer, AmiMessage, MessageKind
from ami_bridge.action_correlator import ActionCorrelator
from ami_bridge.event_fanout import EventFanOut
from ami_bridge.exceptions import PARSE_ANOMALY, AmiBridgeError, AuthenticationFailed, ConnectionLost

logger = setup_logger(__name__, level_str=app_config.LOG_LEVEL)

StateListener = Callable[[bool], None]


class ConnectionState(str, Enum):
    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    AWAITING_LOGIN = "AwaitingLoginResponse"
    CONNECTED = "Connected"


@dataclass
class AmiConnectionConfig:
    host: str
    port: int
    username: str
    secret: str = field(repr=False)


class AmiConnection:
    """One TCP session to the AMI host, with its own input buffer."""

    def __init__(self, config: AmiConnectionConfig):
        self.config = config
        self.framer = AmiFramer()
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self.read_task: Optional[asyncio.Task] = None


class AmiConnectionManager:
    """Owns the single AMI socket: connect, login, read loop, teardown.

    Decoded Responses go to the correlator and Events to the fan-out, in the
    order the host sent them. There is no automatic reconnection; state
    listeners are told about every teardown and can decide to retry.
    """

    def __init__(self, fanout: EventFanOut, action_timeout_s: Optional[float] = None,
                 connect_timeout_s: Optional[float] = None):
        self.fanout = fanout
        self.correlator = ActionCorrelator(self, default_timeout_s=action_timeout_s)
        self.connect_timeout_s = connect_timeout_s if connect_timeout_s is not None else app_config.AMI_CONNECT_TIMEOUT_S
        self._state = ConnectionState.DISCONNECTED
        self._connection: Optional[AmiConnection] = None
        self._state_listeners: List[StateListener] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def config(self) -> Optional[AmiConnectionConfig]:
        return self._connection.config if self._connection else None

    def add_state_listener(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def remove_state_listener(self, listener: StateListener) -> None:
        if listener in self._state_listeners:
            self._state_listeners.remove(listener)

    # --- transport used by the correlator ---

    def can_send(self, action_name: Optional[str]) -> bool:
        connection = self._connection
        if connection is None or connection.writer is None or connection.writer.is_closing():
            return False
        if self._state is ConnectionState.CONNECTED:
            return True
        return self._state is ConnectionState.AWAITING_LOGIN and action_name == "Login"

    def write(self, data: bytes) -> None:
        if self._connection is None or self._connection.writer is None:
            raise ConnectionLost("No AMI socket to write to")
        self._connection.writer.write(data)

    # --- lifecycle ---

    async def connect(self, config: AmiConnectionConfig) -> None:
        """Open the socket and log in. Raises AuthenticationFailed, ConnectionLost or ActionTimeout."""
        if self._connection is not None:
            logger.info(f"[AMI] Tearing down existing connection to {self._connection.config.host}:{self._connection.config.port} before reconnecting.")
            await self.disconnect()

        connection = AmiConnection(config)
        self._connection = connection
        self._set_state(ConnectionState.CONNECTING)
        logger.info(f"[AMI] Connecting to {config.host}:{config.port}...")

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(config.host, config.port), timeout=self.connect_timeout_s
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(f"[AMI] Connection to {config.host}:{config.port} failed: {e!r}")
            if self._connection is connection:
                self._connection = None
                self._set_state(ConnectionState.DISCONNECTED)
                self._notify_state(False)
            raise ConnectionLost(f"Unable to connect to AMI at {config.host}:{config.port}: {e or type(e).__name__}") from e

        if self._connection is not connection:
            # disconnect() or another connect() ran while the socket was opening
            writer.close()
            raise ConnectionLost("Connection attempt was superseded")

        connection.reader, connection.writer = reader, writer
        connection.read_task = asyncio.create_task(self._read_loop(connection), name="ami-read-loop")
        self._set_state(ConnectionState.AWAITING_LOGIN)
        logger.info(f"[AMI] Socket open to {config.host}:{config.port}. Sending Login for user '{config.username}'.")

        try:
            response = await self.correlator.send({
                "Action": "Login",
                "Username": config.username,
                "Secret": config.secret,
                "Events": "on",
            })
        except AmiBridgeError as e:
            logger.error(f"[AMI] Login did not complete: {e}")
            await self._close(connection, f"Login did not complete: {e}")
            raise

        if self._connection is not connection:
            raise ConnectionLost("Connection was closed during login")

        if response.get("Response") == "Success":
            self._set_state(ConnectionState.CONNECTED)
            logger.info(f"[AMI] Login successful. Message: {response.get('Message', 'Authentication accepted')}")
            self._notify_state(True)
            return

        logger.error(f"[AMI] Login rejected: Response='{response.get('Response')}', Message='{response.get('Message')}'")
        await self._close(connection, "Authentication failed")
        raise AuthenticationFailed(response.get("Message"))

    async def disconnect(self) -> None:
        connection = self._connection
        if connection is None:
            logger.debug("[AMI] disconnect() called while already disconnected.")
            return
        logger.info(f"[AMI] Disconnecting from {connection.config.host}:{connection.config.port}.")
        await self._close(connection, "Disconnected by request")

    async def _close(self, connection: AmiConnection, reason: str) -> None:
        self._teardown(connection, reason)
        task = connection.read_task
        if task and task is not asyncio.current_task() and not task.done():
            try:
                await task
            except asyncio.CancelledError:
                if asyncio.current_task().cancelling():
                    raise # our caller was cancelled, not just the read loop
        if connection.writer:
            try:
                await connection.writer.wait_closed()
            except (OSError, ConnectionError) as e:
                logger.debug(f"[AMI] Error while waiting for socket close: {e}")

    def _teardown(self, connection: AmiConnection, reason: str) -> None:
        if self._connection is not connection:
            return # already torn down
        self._connection = None
        self._set_state(ConnectionState.DISCONNECTED)
        connection.framer.reset()

        task = connection.read_task
        if task and task is not asyncio.current_task() and not task.done():
            task.cancel()
        if connection.writer and not connection.writer.is_closing():
            connection.writer.close()

        self.correlator.fail_all(reason)
        logger.warning(f"[AMI] Connection to {connection.config.host}:{connection.config.port} torn down: {reason}")
        self._notify_state(False)

    async def _read_loop(self, connection: AmiConnection) -> None:
        reason = "AMI connection closed by server"
        try:
            while True:
                data = await connection.reader.read(65536)
                if not data:
                    break
                for message in connection.framer.feed(data):
                    self._dispatch(message)
        except asyncio.CancelledError:
            raise
        except (OSError, ConnectionError) as e:
            reason = f"AMI socket error: {e!r}"
            logger.error(f"[AMI] {reason}")
        except Exception as e:
            reason = f"Unexpected error in AMI read loop: {e!r}"
            logger.critical(f"[AMI] {reason}", exc_info=True)
        self._teardown(connection, reason)

    def _dispatch(self, message: AmiMessage) -> None:
        kind = message.kind
        logger.debug(f"[AMI] Received {kind.value}: {message.get('Event') or message.get('Response') or 'Unknown'}")
        try:
            if kind is MessageKind.EVENT:
                self.fanout.publish(message)
            elif kind is MessageKind.RESPONSE:
                self.correlator.resolve(message)
            else:
                logger.warning(f"[AMI] {PARSE_ANOMALY}: unclassified message {message.fields}")
        except Exception as e:
            logger.error(f"[AMI] Error dispatching {kind.value} {message.fields}: {e}", exc_info=True)

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self._state:
            logger.debug(f"[AMI] State {self._state.value} -> {state.value}")
            self._state = state

    def _notify_state(self, connected: bool) -> None:
        for listener in list(self._state_listeners):
            try:
                listener(connected)
            except Exception as e:
                logger.error(f"[AMI] Connection-state listener {listener!r} failed: {e}", exc_info=True)
