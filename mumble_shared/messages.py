"""
Typed Mumble control messages.

Every wire message is a frozen dataclass tagged with its ``MessageType``
and converted to and from its protobuf class in ``mumble_pb``. Optional
fields left as ``None`` are "not present" on the wire, so state messages
only carry the attributes that changed.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import IntEnum
from typing import Any, ClassVar, Dict, Optional, Tuple, Type, Union

from google.protobuf.message import Message

from mumble_shared.mumble_pb import PROTO_CLASSES


class MessageType(IntEnum):
    """Control channel message type ids (header field of every frame)."""

    Version = 0
    UDPTunnel = 1
    Authenticate = 2
    Ping = 3
    Reject = 4
    ServerSync = 5
    ChannelRemove = 6
    ChannelState = 7
    UserRemove = 8
    UserState = 9
    BanList = 10
    TextMessage = 11
    PermissionDenied = 12
    ACL = 13
    QueryUsers = 14
    CryptSetup = 15
    ContextActionModify = 16
    ContextAction = 17
    UserList = 18
    VoiceTarget = 19
    PermissionQuery = 20
    CodecVersion = 21
    UserStats = 22
    RequestBlob = 23
    ServerConfig = 24
    SuggestConfig = 25

    @classmethod
    def is_valid(cls, value: int) -> bool:
        """Check if an integer is a known message type id."""
        try:
            cls(value)
            return True
        except ValueError:
            return False


class DenyType(IntEnum):
    """Reason codes carried by PermissionDenied."""

    Text = 0
    Permission = 1
    SuperUser = 2
    ChannelName = 3
    TextTooLong = 4
    H9K = 5
    TemporaryChannel = 6
    MissingCertificate = 7
    UserName = 8
    ChannelFull = 9
    NestingLimit = 10
    ChannelCountLimit = 11
    ChannelListenerLimit = 12
    UserListenerLimit = 13


class RejectType(IntEnum):
    """Reason codes carried by Reject."""

    None_ = 0
    WrongVersion = 1
    InvalidUsername = 2
    WrongUserPW = 3
    WrongServerPW = 4
    UsernameInUse = 5
    ServerFull = 6
    NoCertificate = 7
    AuthenticatorFail = 8
    NoNewConnections = 9


def deny_type_name(code: Optional[int]) -> str:
    """Stringify a denial code the way the protocol's JSON mapping does."""
    if code is None:
        return "UNRECOGNIZED"
    try:
        return DenyType(code).name
    except ValueError:
        return "UNRECOGNIZED"


def encode_version(major: int, minor: int, patch: int) -> int:
    """Pack a (major, minor, patch) triple into the legacy 32-bit version field."""
    return ((major & 0xFFFF) << 16) | ((minor & 0xFF) << 8) | (patch & 0xFF)


def decode_version(version: int) -> Tuple[int, int, int]:
    return (version >> 16) & 0xFFFF, (version >> 8) & 0xFF, version & 0xFF


def encode_version_v2(major: int, minor: int, patch: int) -> int:
    """Pack a triple into the 64-bit version field introduced with Mumble 1.5."""
    return ((major & 0xFFFF) << 48) | ((minor & 0xFFFF) << 32) | ((patch & 0xFFFF) << 16)


def decode_version_v2(version: int) -> Tuple[int, int, int]:
    return (version >> 48) & 0xFFFF, (version >> 32) & 0xFFFF, (version >> 16) & 0xFFFF


class _Message:
    TYPE: ClassVar[MessageType]
    # dataclass field -> protobuf field, where the names differ
    WIRE_NAMES: ClassVar[Dict[str, str]] = {}

    def to_proto(self) -> Message:
        """Protobuf message carrying every field that is set."""
        proto = PROTO_CLASSES[self.TYPE.name]()
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if value is None:
                continue
            wire = self.WIRE_NAMES.get(f.name, f.name)
            if isinstance(value, tuple):
                getattr(proto, wire).extend(value)
            else:
                setattr(proto, wire, value)
        return proto

    @classmethod
    def from_proto(cls, proto: Message):
        """Typed message from a parsed protobuf; fields the server left out stay None."""
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):  # type: ignore[arg-type]
            wire = cls.WIRE_NAMES.get(f.name, f.name)
            if isinstance(f.default, tuple):
                kwargs[f.name] = tuple(getattr(proto, wire))
            elif proto.HasField(wire):
                kwargs[f.name] = getattr(proto, wire)
        return cls(**kwargs)


@dataclass(frozen=True)
class Version(_Message):
    TYPE: ClassVar[MessageType] = MessageType.Version
    WIRE_NAMES: ClassVar[Dict[str, str]] = {"version": "version_v1"}

    version: Optional[int] = None
    release: Optional[str] = None
    os: Optional[str] = None
    os_version: Optional[str] = None
    version_v2: Optional[int] = None

    @property
    def triple(self) -> Optional[Tuple[int, int, int]]:
        if self.version_v2 is not None:
            return decode_version_v2(self.version_v2)
        if self.version is not None:
            return decode_version(self.version)
        return None


@dataclass(frozen=True)
class Authenticate(_Message):
    TYPE: ClassVar[MessageType] = MessageType.Authenticate

    username: Optional[str] = None
    password: Optional[str] = None
    tokens: Tuple[str, ...] = ()
    opus: Optional[bool] = None


@dataclass(frozen=True)
class Ping(_Message):
    TYPE: ClassVar[MessageType] = MessageType.Ping

    timestamp: Optional[int] = None
    good: Optional[int] = None
    late: Optional[int] = None
    lost: Optional[int] = None


@dataclass(frozen=True)
class Reject(_Message):
    TYPE: ClassVar[MessageType] = MessageType.Reject

    type: Optional[int] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class ServerSync(_Message):
    TYPE: ClassVar[MessageType] = MessageType.ServerSync

    session: Optional[int] = None
    max_bandwidth: Optional[int] = None
    welcome_text: Optional[str] = None
    permissions: Optional[int] = None


@dataclass(frozen=True)
class ChannelRemove(_Message):
    TYPE: ClassVar[MessageType] = MessageType.ChannelRemove

    channel_id: int = 0


@dataclass(frozen=True)
class ChannelState(_Message):
    TYPE: ClassVar[MessageType] = MessageType.ChannelState

    channel_id: Optional[int] = None
    parent: Optional[int] = None
    name: Optional[str] = None
    description: Optional[str] = None
    temporary: Optional[bool] = None
    position: Optional[int] = None
    max_users: Optional[int] = None
    links: Tuple[int, ...] = ()
    links_add: Tuple[int, ...] = ()
    links_remove: Tuple[int, ...] = ()


@dataclass(frozen=True)
class UserRemove(_Message):
    TYPE: ClassVar[MessageType] = MessageType.UserRemove

    session: int = 0
    actor: Optional[int] = None
    reason: Optional[str] = None
    ban: Optional[bool] = None


@dataclass(frozen=True)
class UserState(_Message):
    TYPE: ClassVar[MessageType] = MessageType.UserState

    session: Optional[int] = None
    actor: Optional[int] = None
    name: Optional[str] = None
    user_id: Optional[int] = None
    channel_id: Optional[int] = None
    mute: Optional[bool] = None
    deaf: Optional[bool] = None
    suppress: Optional[bool] = None
    self_mute: Optional[bool] = None
    self_deaf: Optional[bool] = None
    comment: Optional[str] = None
    hash: Optional[str] = None


@dataclass(frozen=True)
class TextMessage(_Message):
    TYPE: ClassVar[MessageType] = MessageType.TextMessage

    actor: Optional[int] = None
    session: Tuple[int, ...] = ()
    channel_id: Tuple[int, ...] = ()
    tree_id: Tuple[int, ...] = ()
    message: str = ""


@dataclass(frozen=True)
class PermissionDenied(_Message):
    TYPE: ClassVar[MessageType] = MessageType.PermissionDenied

    permission: Optional[int] = None
    channel_id: Optional[int] = None
    session: Optional[int] = None
    reason: Optional[str] = None
    type: Optional[int] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class ServerConfig(_Message):
    TYPE: ClassVar[MessageType] = MessageType.ServerConfig

    max_bandwidth: Optional[int] = None
    welcome_text: Optional[str] = None
    allow_html: Optional[bool] = None
    message_length: Optional[int] = None
    image_message_length: Optional[int] = None
    max_users: Optional[int] = None


@dataclass(frozen=True)
class UnknownMessage:
    """A frame whose type the engine does not model, kept so the stream never stalls."""

    type_id: int
    body: bytes = b""


InboundMessage = Union[
    Version,
    Authenticate,
    Ping,
    Reject,
    ServerSync,
    ChannelRemove,
    ChannelState,
    UserRemove,
    UserState,
    TextMessage,
    PermissionDenied,
    ServerConfig,
    UnknownMessage,
]

# Message classes indexed by wire type id
MESSAGE_REGISTRY: Dict[MessageType, Type[_Message]] = {
    cls.TYPE: cls
    for cls in (
        Version,
        Authenticate,
        Ping,
        Reject,
        ServerSync,
        ChannelRemove,
        ChannelState,
        UserRemove,
        UserState,
        TextMessage,
        PermissionDenied,
        ServerConfig,
    )
}
