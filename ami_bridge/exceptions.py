# ami_bridge/exceptions.py
"""Error taxonomy for the AMI bridge.

- AmiBridgeError: base class, carries a ``kind`` string for boundary payloads
- AuthenticationFailed: the AMI host rejected the Login action
- NotConnected: an action was attempted with no live connection
- ActionTimeout: no Response arrived within the action's timeout
- ConnectionLost: the socket closed or errored while the action was in flight

Parse anomalies (lines without a colon, unclassified messages, responses for
unknown ActionIDs) are logged with the PARSE_ANOMALY tag and never raised.
"""

PARSE_ANOMALY = "ParseAnomaly"


class AmiBridgeError(Exception):
    """Base exception for bridge errors."""

    kind = "AmiBridgeError"


class AuthenticationFailed(AmiBridgeError):
    """Raised when the AMI host answers Login with anything but Success.

    Attributes:
        server_message: the ``Message`` field sent by the server, if any.
    """

    kind = "AuthenticationFailed"

    def __init__(self, server_message: str | None = None):
        self.server_message = server_message
        super().__init__(f"AMI Login failed: {server_message or 'no message from server'}")


class NotConnected(AmiBridgeError):
    kind = "NotConnected"

    def __init__(self, message: str = "Not connected to AMI"):
        super().__init__(message)


class ActionTimeout(AmiBridgeError):
    kind = "ActionTimeout"

    def __init__(self, action_id: str, action_name: str | None, timeout_s: float):
        self.action_id = action_id
        self.action_name = action_name
        self.timeout_s = timeout_s
        super().__init__(f"Action timeout: {action_name or 'action'} (ActionID {action_id}) got no response within {timeout_s}s")


class ConnectionLost(AmiBridgeError):
    kind = "ConnectionLost"

    def __init__(self, message: str = "AMI connection lost"):
        super().__init__(message)
