"""
Protobuf classes for the Mumble control channel.

The message definitions mirror ``Mumble.proto`` (proto2, package
``MumbleProto``) for the messages this client models. The file descriptor
is assembled here and registered in a private pool, so the classes are
ordinary generated protobuf messages without a protoc build step.
"""

from __future__ import annotations

from typing import Dict, List, Tuple, Type

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import Message

PACKAGE = "MumbleProto"

_F = descriptor_pb2.FieldDescriptorProto

OPTIONAL = _F.LABEL_OPTIONAL
REQUIRED = _F.LABEL_REQUIRED
REPEATED = _F.LABEL_REPEATED

UINT32 = _F.TYPE_UINT32
UINT64 = _F.TYPE_UINT64
INT32 = _F.TYPE_INT32
BOOL = _F.TYPE_BOOL
STRING = _F.TYPE_STRING
BYTES = _F.TYPE_BYTES
FLOAT = _F.TYPE_FLOAT
ENUM = _F.TYPE_ENUM

# (name, number, type, label) or (name, number, ENUM, label, enum type name)
_SCHEMA: Dict[str, List[tuple]] = {
    "Version": [
        ("version_v1", 1, UINT32, OPTIONAL),
        ("release", 2, STRING, OPTIONAL),
        ("os", 3, STRING, OPTIONAL),
        ("os_version", 4, STRING, OPTIONAL),
        ("version_v2", 5, UINT64, OPTIONAL),
    ],
    "Authenticate": [
        ("username", 1, STRING, OPTIONAL),
        ("password", 2, STRING, OPTIONAL),
        ("tokens", 3, STRING, REPEATED),
        ("celt_versions", 4, INT32, REPEATED),
        ("opus", 5, BOOL, OPTIONAL),
        ("client_type", 6, INT32, OPTIONAL),
    ],
    "Ping": [
        ("timestamp", 1, UINT64, OPTIONAL),
        ("good", 2, UINT32, OPTIONAL),
        ("late", 3, UINT32, OPTIONAL),
        ("lost", 4, UINT32, OPTIONAL),
        ("resync", 5, UINT32, OPTIONAL),
        ("udp_packets", 6, UINT32, OPTIONAL),
        ("tcp_packets", 7, UINT32, OPTIONAL),
        ("udp_ping_avg", 8, FLOAT, OPTIONAL),
        ("udp_ping_var", 9, FLOAT, OPTIONAL),
        ("tcp_ping_avg", 10, FLOAT, OPTIONAL),
        ("tcp_ping_var", 11, FLOAT, OPTIONAL),
    ],
    "Reject": [
        ("type", 1, ENUM, OPTIONAL, "Reject.RejectType"),
        ("reason", 2, STRING, OPTIONAL),
    ],
    "ServerSync": [
        ("session", 1, UINT32, OPTIONAL),
        ("max_bandwidth", 2, UINT32, OPTIONAL),
        ("welcome_text", 3, STRING, OPTIONAL),
        ("permissions", 4, UINT64, OPTIONAL),
    ],
    "ChannelRemove": [
        ("channel_id", 1, UINT32, REQUIRED),
    ],
    "ChannelState": [
        ("channel_id", 1, UINT32, OPTIONAL),
        ("parent", 2, UINT32, OPTIONAL),
        ("name", 3, STRING, OPTIONAL),
        ("links", 4, UINT32, REPEATED),
        ("description", 5, STRING, OPTIONAL),
        ("links_add", 6, UINT32, REPEATED),
        ("links_remove", 7, UINT32, REPEATED),
        ("temporary", 8, BOOL, OPTIONAL),
        ("position", 9, INT32, OPTIONAL),
        ("description_hash", 10, BYTES, OPTIONAL),
        ("max_users", 11, UINT32, OPTIONAL),
        ("is_enter_restricted", 12, BOOL, OPTIONAL),
        ("can_enter", 13, BOOL, OPTIONAL),
    ],
    "UserRemove": [
        ("session", 1, UINT32, REQUIRED),
        ("actor", 2, UINT32, OPTIONAL),
        ("reason", 3, STRING, OPTIONAL),
        ("ban", 4, BOOL, OPTIONAL),
    ],
    "UserState": [
        ("session", 1, UINT32, OPTIONAL),
        ("actor", 2, UINT32, OPTIONAL),
        ("name", 3, STRING, OPTIONAL),
        ("user_id", 4, UINT32, OPTIONAL),
        ("channel_id", 5, UINT32, OPTIONAL),
        ("mute", 6, BOOL, OPTIONAL),
        ("deaf", 7, BOOL, OPTIONAL),
        ("suppress", 8, BOOL, OPTIONAL),
        ("self_mute", 9, BOOL, OPTIONAL),
        ("self_deaf", 10, BOOL, OPTIONAL),
        ("texture", 11, BYTES, OPTIONAL),
        ("plugin_context", 12, BYTES, OPTIONAL),
        ("plugin_identity", 13, STRING, OPTIONAL),
        ("comment", 14, STRING, OPTIONAL),
        ("hash", 15, STRING, OPTIONAL),
        ("comment_hash", 16, BYTES, OPTIONAL),
        ("texture_hash", 17, BYTES, OPTIONAL),
        ("priority_speaker", 18, BOOL, OPTIONAL),
        ("recording", 19, BOOL, OPTIONAL),
    ],
    "TextMessage": [
        ("actor", 1, UINT32, OPTIONAL),
        ("session", 2, UINT32, REPEATED),
        ("channel_id", 3, UINT32, REPEATED),
        ("tree_id", 4, UINT32, REPEATED),
        ("message", 5, STRING, REQUIRED),
    ],
    "PermissionDenied": [
        ("permission", 1, UINT32, OPTIONAL),
        ("channel_id", 2, UINT32, OPTIONAL),
        ("session", 3, UINT32, OPTIONAL),
        ("reason", 4, STRING, OPTIONAL),
        ("type", 5, ENUM, OPTIONAL, "PermissionDenied.DenyType"),
        ("name", 6, STRING, OPTIONAL),
    ],
    "ServerConfig": [
        ("max_bandwidth", 1, UINT32, OPTIONAL),
        ("welcome_text", 2, STRING, OPTIONAL),
        ("allow_html", 3, BOOL, OPTIONAL),
        ("message_length", 4, UINT32, OPTIONAL),
        ("image_message_length", 5, UINT32, OPTIONAL),
        ("max_users", 6, UINT32, OPTIONAL),
        ("recording_allowed", 7, BOOL, OPTIONAL),
    ],
}

_ENUMS: Dict[str, Dict[str, List[Tuple[str, int]]]] = {
    "Reject": {
        "RejectType": [
            ("None", 0),
            ("WrongVersion", 1),
            ("InvalidUsername", 2),
            ("WrongUserPW", 3),
            ("WrongServerPW", 4),
            ("UsernameInUse", 5),
            ("ServerFull", 6),
            ("NoCertificate", 7),
            ("AuthenticatorFail", 8),
            ("NoNewConnections", 9),
        ],
    },
    "PermissionDenied": {
        "DenyType": [
            ("Text", 0),
            ("Permission", 1),
            ("SuperUser", 2),
            ("ChannelName", 3),
            ("TextTooLong", 4),
            ("H9K", 5),
            ("TemporaryChannel", 6),
            ("MissingCertificate", 7),
            ("UserName", 8),
            ("ChannelFull", 9),
            ("NestingLimit", 10),
            ("ChannelCountLimit", 11),
            ("ChannelListenerLimit", 12),
            ("UserListenerLimit", 13),
        ],
    },
}


def _file_descriptor_proto() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto(name="Mumble.proto", package=PACKAGE, syntax="proto2")
    for message_name, schema in _SCHEMA.items():
        message = file_proto.message_type.add(name=message_name)
        for enum_name, values in _ENUMS.get(message_name, {}).items():
            enum = message.enum_type.add(name=enum_name)
            for value_name, number in values:
                enum.value.add(name=value_name, number=number)
        for name, number, field_type, label, *enum_type in schema:
            field = message.field.add(name=name, number=number, type=field_type, label=label)
            if enum_type:
                field.type_name = f".{PACKAGE}.{enum_type[0]}"
    return file_proto


_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(_file_descriptor_proto().SerializeToString())

# Protobuf message classes keyed by Mumble message name
PROTO_CLASSES: Dict[str, Type[Message]] = {
    name: message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"{PACKAGE}.{name}"))
    for name in _SCHEMA
}
