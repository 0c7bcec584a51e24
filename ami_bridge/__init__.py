# ami_bridge/__init__.py

# Asterisk Manager Interface bridge: framing, connection lifecycle,
# action/response correlation and event fan-out behind the AmiBridge facade.

from .bridge_facade import AmiBridge
from .connection_manager import AmiConnectionConfig, ConnectionState

__all__ = [
    "AmiBridge",
    "AmiConnectionConfig",
    "ConnectionState",
]
