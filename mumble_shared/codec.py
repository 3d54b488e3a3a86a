"""
Frame codec for the control channel.

Every frame is a 6-byte big-endian header followed by the body:

    +----------------+------------------------+-----------------+
    | type (uint16)  | body length (uint32)   | body            |
    +----------------+------------------------+-----------------+

The body is the protobuf encoding of the message (``Mumble.proto``).
``FrameDecoder`` reassembles frames from an arbitrary byte stream, so the
transport may deliver partial frames or several frames per read.
"""

from __future__ import annotations

import struct
from typing import Any, List, Union

from google.protobuf.message import DecodeError, EncodeError

from mumble_shared.errors import BadFrameError, UnknownMessageTypeError
from mumble_shared.log import get_logger
from mumble_shared.messages import MESSAGE_REGISTRY, InboundMessage, MessageType, UnknownMessage
from mumble_shared.mumble_pb import PROTO_CLASSES

logger = get_logger(__name__)

HEADER = struct.Struct(">HI")
HEADER_SIZE = HEADER.size
MAX_FRAME_SIZE = 8 * 1024 * 1024


def encode(message: Any) -> bytes:
    """Encode a typed message into one wire frame."""
    msg_type = getattr(message, "TYPE", None)
    if msg_type is None or MESSAGE_REGISTRY.get(msg_type) is not type(message):
        raise UnknownMessageTypeError(f"Cannot encode {type(message).__name__}")
    try:
        body = message.to_proto().SerializeToString()
    except (EncodeError, TypeError, ValueError) as e:
        raise BadFrameError(f"Cannot encode {msg_type.name}: {e}")
    if len(body) > MAX_FRAME_SIZE:
        raise BadFrameError(f"{msg_type.name} body exceeds {MAX_FRAME_SIZE} bytes")
    return HEADER.pack(int(msg_type), len(body)) + body


def decode(frame: bytes) -> InboundMessage:
    """Decode exactly one complete frame."""
    if len(frame) < HEADER_SIZE:
        raise BadFrameError(f"Frame shorter than header: {len(frame)} bytes")
    type_id, length = HEADER.unpack_from(frame)
    if len(frame) != HEADER_SIZE + length:
        raise BadFrameError(f"Frame length mismatch: header says {length}, got {len(frame) - HEADER_SIZE}")
    return decode_body(type_id, frame[HEADER_SIZE:])


def decode_body(type_id: int, body: Union[bytes, bytearray, memoryview]) -> InboundMessage:
    if not MessageType.is_valid(type_id) or MessageType(type_id) not in MESSAGE_REGISTRY:
        logger.debug("Passing through unmodelled message type %d (%d bytes)", type_id, len(body))
        return UnknownMessage(type_id=type_id, body=bytes(body))

    msg_type = MessageType(type_id)
    proto = PROTO_CLASSES[msg_type.name]()
    try:
        proto.ParseFromString(bytes(body))
    except DecodeError as e:
        raise BadFrameError(f"Invalid {msg_type.name} body: {e}")
    return MESSAGE_REGISTRY[msg_type].from_proto(proto)


class FrameDecoder:
    """
    Reassemble frames from a byte stream.

    Bytes are buffered until a full frame is available; each call to
    ``feed`` returns every message completed by the new data, in order.
    A header announcing a body larger than ``max_frame_size`` is a protocol
    violation and raises ``BadFrameError``.
    """

    def __init__(self, max_frame_size: int = MAX_FRAME_SIZE) -> None:
        self.buffer = bytearray()
        self.max_frame_size = max_frame_size

    def feed(self, data: bytes) -> List[InboundMessage]:
        self.buffer.extend(data)
        messages: List[InboundMessage] = []
        while len(self.buffer) >= HEADER_SIZE:
            type_id, length = HEADER.unpack_from(self.buffer)
            if length > self.max_frame_size:
                self.buffer.clear()
                raise BadFrameError(f"Frame of {length} bytes exceeds limit of {self.max_frame_size}")
            end = HEADER_SIZE + length
            if len(self.buffer) < end:
                break
            body = bytes(self.buffer[HEADER_SIZE:end])
            del self.buffer[:end]
            messages.append(decode_body(type_id, body))
        return messages

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet forming a complete frame."""
        return len(self.buffer)
