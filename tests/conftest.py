"""
conftest.py — Shared pytest configuration and fixtures

Provides MockAmiServer, an in-process TCP server that speaks enough AMI for
the bridge to log in, send actions and receive events.
"""

import asyncio
import os
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
import pytest_asyncio

# Keep test runs from writing rotating log files into the project
os.environ.setdefault("LOG_TO_FILE", "false")

project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from ami_bridge import AmiBridge, AmiConnectionConfig
from ami_bridge.ami_protocol import AmiFramer, encode_action

Fields = Dict[str, str]
Responder = Callable[[Fields], Optional[List[Fields]]]

BANNER = b"Asterisk Call Manager/5.0.1\r\n"


def make_responder(login_ok: bool = True, handlers: Optional[Dict[str, Responder]] = None) -> Responder:
    """Build a responder: Login per login_ok, actions via handlers, anything else gets Success.

    A handler returning None means the server never answers that action.
    """
    handlers = handlers or {}

    def respond(fields: Fields) -> Optional[List[Fields]]:
        action = fields.get("Action")
        action_id = fields.get("ActionID", "")
        if action == "Login":
            if login_ok:
                return [{"Response": "Success", "ActionID": action_id, "Message": "Authentication accepted"}]
            return [{"Response": "Error", "ActionID": action_id, "Message": "Authentication failed"}]
        if action in handlers:
            return handlers[action](fields)
        return [{"Response": "Success", "ActionID": action_id}]

    return respond


class MockAmiServer:
    def __init__(self, responder: Optional[Responder] = None):
        self.responder = responder or make_responder()
        self.received: List[Fields] = []
        self.writers: List[asyncio.StreamWriter] = []
        self.server: Optional[asyncio.AbstractServer] = None
        self.port: Optional[int] = None

    async def start(self) -> "MockAmiServer":
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]
        return self

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.writers.append(writer)
        writer.write(BANNER)
        framer = AmiFramer()
        try:
            while True:
                data = await reader.read(4096)
                if not data:
                    break
                for message in framer.feed(data):
                    fields = message.to_dict()
                    self.received.append(fields)
                    for reply in self.responder(fields) or []:
                        writer.write(encode_action(reply))
                await writer.drain()
        except (ConnectionError, OSError):
            pass
        finally:
            if not writer.is_closing():
                writer.close()

    def actions(self, name: str) -> List[Fields]:
        return [fields for fields in self.received if fields.get("Action") == name]

    async def push(self, *messages: Fields) -> None:
        """Send unsolicited messages (events) to every connected client."""
        for writer in self.writers:
            if not writer.is_closing():
                for fields in messages:
                    writer.write(encode_action(fields))
                await writer.drain()

    async def drop_clients(self) -> None:
        for writer in self.writers:
            if not writer.is_closing():
                writer.close()
        self.writers.clear()

    async def stop(self) -> None:
        await self.drop_clients()
        if self.server:
            self.server.close()
            try:
                await asyncio.wait_for(self.server.wait_closed(), timeout=1.0)
            except asyncio.TimeoutError:
                pass


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: tests that talk to the in-process mock AMI server"
    )


@pytest_asyncio.fixture
async def ami_server():
    server = await MockAmiServer().start()
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def bridge():
    ami_bridge = AmiBridge(action_timeout_s=0.5, list_timeout_s=0.5, connect_timeout_s=2.0)
    yield ami_bridge
    await ami_bridge.disconnect()


@pytest.fixture
def connection_config():
    def build(server: MockAmiServer, username: str = "admin", secret: str = "amp111") -> AmiConnectionConfig:
        return AmiConnectionConfig(host="127.0.0.1", port=server.port, username=username, secret=secret)
    return build
