# ami_bridge/bridge_facade.py

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from config.app_config import app_config
from common.logger_setup import setup_logger
from ami_bridge.ami_protocol import AmiMessage
from ami_bridge.connection_manager import AmiConnectionConfig, AmiConnectionManager, ConnectionState
from ami_bridge.event_fanout import AmiSubscriber, EventFanOut
from ami_bridge.exceptions import AmiBridgeError

logger = setup_logger(__name__, level_str=app_config.LOG_LEVEL)


class AmiBridge:
    """Boundary over the AMI core for callers that cannot hold the TCP socket.

    Every public call returns a plain result (dict, bool, list or None) and
    never raises bridge errors to its caller.
    """

    def __init__(self, action_timeout_s: Optional[float] = None, list_timeout_s: Optional[float] = None,
                 connect_timeout_s: Optional[float] = None):
        self.fanout = EventFanOut(list_timeout_s=list_timeout_s)
        self.connection_manager = AmiConnectionManager(
            self.fanout, action_timeout_s=action_timeout_s, connect_timeout_s=connect_timeout_s
        )
        self.correlator = self.connection_manager.correlator
        self.connection_manager.add_state_listener(self._on_connection_state)

    @property
    def is_connected(self) -> bool:
        return self.connection_manager.is_connected

    @property
    def state(self) -> ConnectionState:
        return self.connection_manager.state

    async def connect(self, config: AmiConnectionConfig) -> Dict[str, Any]:
        logger.info(f"[Bridge] Connecting to AMI: {config.host}:{config.port} with user {config.username}")
        try:
            await self.connection_manager.connect(config)
        except AmiBridgeError as e:
            logger.error(f"[Bridge] AMI connection failed ({e.kind}): {e}")
            return {"success": False, "error": str(e), "error_kind": e.kind}
        logger.info("[Bridge] AMI Bridge connected successfully")
        return {"success": True, "message": "Connected to AMI successfully"}

    async def disconnect(self) -> Dict[str, Any]:
        await self.connection_manager.disconnect()
        return {"success": True, "message": "Disconnected from AMI"}

    def status(self) -> Dict[str, Any]:
        return {
            "connected": self.is_connected,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def originate(self, channel: str, extension: str, context: Optional[str] = None,
                        caller_id: Optional[str] = None) -> bool:
        action = {
            "Action": "Originate",
            "Channel": channel,
            "Exten": extension,
            "Context": context or app_config.DEFAULT_ORIGINATE_CONTEXT,
            "Priority": "1",
            "Timeout": str(app_config.ORIGINATE_RING_TIMEOUT_MS),
            "CallerID": caller_id or f"{app_config.DEFAULT_CALLER_ID_NAME} <{extension}>",
            "Async": "true",
        }
        logger.info(f"[Bridge] Originating call: {channel} -> {extension} (context {action['Context']})")
        try:
            response = await self.correlator.send(action)
        except AmiBridgeError as e:
            logger.error(f"[Bridge] Originate {channel} -> {extension} failed ({e.kind}): {e}")
            return False
        logger.info(f"[Bridge] Originate response: {response.fields}")
        return response.get("Response") == "Success"

    async def active_channels(self) -> Optional[Dict[str, str]]:
        try:
            response = await self.correlator.send({"Action": "CoreShowChannels"})
        except AmiBridgeError as e:
            logger.error(f"[Bridge] CoreShowChannels failed ({e.kind}): {e}")
            return None
        return response.to_dict()

    async def pjsip_endpoints(self, numeric_only: bool = False) -> List[Dict[str, str]]:
        """PJSIP endpoints in the boundary shape.

        With ``numeric_only`` only all-digit extensions are kept, which drops
        trunks and other named endpoints from extension pickers.
        """
        logger.info("[Bridge] Fetching PJSIP endpoints...")
        try:
            items = await self.fanout.collect_list(
                self.correlator,
                {"Action": "PJSIPShowEndpoints"},
                item_event="EndpointList",
                complete_event="EndpointListComplete",
            )
        except AmiBridgeError as e:
            logger.error(f"[Bridge] PJSIPShowEndpoints failed ({e.kind}): {e}")
            return []

        endpoints = []
        for item in items:
            endpoint = endpoint_from_event(item)
            if not endpoint:
                continue
            if numeric_only and not (endpoint["endpoint"].isascii() and endpoint["endpoint"].isdigit()):
                logger.debug(f"[Bridge] Skipping non-numeric endpoint {endpoint['objectName']}")
                continue
            endpoints.append(endpoint)
        logger.info(f"[Bridge] PJSIP endpoint query completed: {len(endpoints)} endpoints found")
        return endpoints

    def attach_subscriber(self, subscriber: AmiSubscriber) -> Optional[int]:
        """Register a subscriber after handing it the current connection status."""
        try:
            subscriber.deliver_status(self.is_connected)
        except Exception as e:
            logger.warning(f"[Bridge] Initial status delivery to {subscriber.name} failed: {e}. Not subscribing.")
            return None
        return self.fanout.subscribe(subscriber)

    def detach_subscriber(self, handle: int) -> None:
        self.fanout.unsubscribe(handle)

    def _on_connection_state(self, connected: bool) -> None:
        logger.info(f"[Bridge] AMI connection is now {'online' if connected else 'offline'}. Notifying {self.fanout.subscriber_count} subscriber(s).")
        self.fanout.notify_status(connected)


def endpoint_from_event(item: AmiMessage) -> Optional[Dict[str, str]]:
    """Map an EndpointList event to the boundary shape; ``1000/1000`` becomes ``1000``."""
    object_name = item.get("ObjectName") or item.get("Endpoint")
    if not object_name or object_name == "Unknown":
        return None
    return {
        "objectName": object_name,
        "endpoint": object_name.split("/", 1)[0],
        "status": item.get("DeviceState") or item.get("State") or "Available",
        "contact": item.get("Contacts") or "Not Available",
    }
