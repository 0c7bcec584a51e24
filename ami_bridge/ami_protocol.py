# ami_bridge/ami_protocol.py
"""AMI wire format: blocks of ``Key: Value`` lines separated by a blank line.

encode_action() serializes an outbound action; AmiFramer turns an arbitrarily
chunked byte stream back into AmiMessage objects.
"""

from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional

from config.app_config import app_config
from common.logger_setup import setup_logger
from ami_bridge.exceptions import PARSE_ANOMALY

logger = setup_logger(__name__, level_str=app_config.LOG_LEVEL)

LINE_END = b"\r\n"
MESSAGE_END = b"\r\n\r\n"
ACTION_ID_FIELD = "ActionID"


class MessageKind(str, Enum):
    RESPONSE = "Response"
    EVENT = "Event"
    UNCLASSIFIED = "Unclassified"


class AmiMessage:
    """A decoded AMI message. Field order is kept as received."""

    def __init__(self, fields: Optional[Dict[str, str]] = None):
        self.fields: Dict[str, str] = dict(fields or {})

    @property
    def kind(self) -> MessageKind:
        # An Event is never treated as a Response, even when it carries an ActionID
        if "Event" in self.fields:
            return MessageKind.EVENT
        if "Response" in self.fields and ACTION_ID_FIELD in self.fields:
            return MessageKind.RESPONSE
        return MessageKind.UNCLASSIFIED

    @property
    def action_id(self) -> Optional[str]:
        return self.fields.get(ACTION_ID_FIELD)

    @property
    def event_name(self) -> Optional[str]:
        return self.fields.get("Event")

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.fields.get(key, default)

    def __getitem__(self, key: str) -> str:
        return self.fields[key]

    def __contains__(self, key: object) -> bool:
        return key in self.fields

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, AmiMessage):
            return self.fields == other.fields
        return NotImplemented

    def to_dict(self) -> Dict[str, str]:
        return dict(self.fields)

    def __repr__(self) -> str:
        return f"AmiMessage({self.kind.value}, {self.fields!r})"


def encode_action(fields: Mapping[str, object]) -> bytes:
    """Serialize fields as ``Key: Value\\r\\n`` lines plus the terminating blank line.

    Values are not escaped; a value must not contain CRLF.
    """
    lines = "".join(f"{key}: {value}\r\n" for key, value in fields.items())
    return (lines + "\r\n").encode("utf-8")


def parse_block(block: str) -> AmiMessage:
    fields: Dict[str, str] = {}
    for line in block.split("\r\n"):
        key, sep, value = line.partition(":")
        if not sep:
            if line.strip():
                logger.debug(f"[AmiFramer] {PARSE_ANOMALY}: ignoring line without ':' -> {line!r}")
            continue
        fields[key.strip()] = value.strip()
    return AmiMessage(fields)


class AmiFramer:
    """Accumulates bytes and yields every complete message block."""

    def __init__(self):
        self._buffer = bytearray()

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()

    def feed(self, data: bytes) -> List[AmiMessage]:
        self._buffer.extend(data)
        messages: List[AmiMessage] = []
        while True:
            end = self._buffer.find(MESSAGE_END)
            if end == -1:
                break
            raw_block = bytes(self._buffer[:end])
            del self._buffer[:end + len(MESSAGE_END)]
            message = parse_block(raw_block.decode("utf-8", errors="replace"))
            if not message.fields:
                logger.warning(f"[AmiFramer] {PARSE_ANOMALY}: empty message block ({len(raw_block)} bytes)")
            messages.append(message)
        return messages
