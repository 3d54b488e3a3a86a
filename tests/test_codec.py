import pytest

from mumble_shared.codec import HEADER, HEADER_SIZE, FrameDecoder, decode, encode
from mumble_shared.errors import BadFrameError, UnknownMessageTypeError
from mumble_shared.messages import (
    Authenticate,
    ChannelRemove,
    ChannelState,
    DenyType,
    MessageType,
    PermissionDenied,
    Ping,
    UnknownMessage,
    UserState,
    Version,
    decode_version,
    decode_version_v2,
    deny_type_name,
    encode_version,
    encode_version_v2,
)
from mumble_shared.mumble_pb import PROTO_CLASSES


def test_frame_header_and_protobuf_body():
    frame = encode(ChannelState(parent=0, name="General"))
    type_id, length = HEADER.unpack_from(frame)

    assert type_id == MessageType.ChannelState == 7
    assert length == len(frame) - HEADER_SIZE
    # parent (field 2) then name (field 3); unset fields are left off the wire
    assert frame[HEADER_SIZE:] == b"\x10\x00\x1a\x07General"


def test_decodes_server_version_frame():
    frame = bytes.fromhex("00000000000408808804")

    [message] = FrameDecoder().feed(frame)

    assert message == Version(version=0x010400)
    assert message.triple == (1, 4, 0)


def test_decode_restores_typed_message():
    message = ChannelState(channel_id=7, parent=0, name="General", links=(3, 4), temporary=True)
    decoded = decode(encode(message))

    assert decoded == message
    assert isinstance(decoded.links, tuple)


def test_decode_skips_fields_the_client_does_not_model():
    # session=4, name="carol", then field 20 which is not in the schema
    body = b"\x08\x04\x1a\x05carol\xa0\x01\x01"
    message = decode(HEADER.pack(MessageType.UserState, len(body)) + body)

    assert message == UserState(session=4, name="carol")


def test_zero_values_are_present():
    decoded = decode(encode(ChannelState(channel_id=0, name="Root", position=0)))

    assert decoded.channel_id == 0
    assert decoded.position == 0
    assert decoded.parent is None


def test_unmodelled_types_pass_through():
    body = b"\x0a\x03abc"
    crypt = decode(HEADER.pack(MessageType.CryptSetup, len(body)) + body)
    unknown = decode(HEADER.pack(999, 0))

    assert crypt == UnknownMessage(type_id=15, body=body)
    assert unknown == UnknownMessage(type_id=999)


def test_decoder_reassembles_partial_frames():
    frame = encode(Ping(timestamp=1234))
    decoder = FrameDecoder()

    results = [decoder.feed(frame[i:i + 1]) for i in range(len(frame))]

    assert all(r == [] for r in results[:-1])
    assert results[-1] == [Ping(timestamp=1234)]
    assert decoder.pending == 0


def test_decoder_splits_coalesced_frames_in_order():
    first = PermissionDenied(type=DenyType.SuperUser)
    second = ChannelRemove(channel_id=9)
    data = encode(first) + encode(second) + encode(Ping(timestamp=5))[:3]
    decoder = FrameDecoder()

    assert decoder.feed(data) == [first, second]
    assert decoder.pending == 3


def test_decoder_rejects_oversized_frame():
    decoder = FrameDecoder(max_frame_size=10)

    with pytest.raises(BadFrameError):
        decoder.feed(HEADER.pack(MessageType.TextMessage, 11))
    assert decoder.pending == 0


def test_invalid_frames_raise_bad_frame():
    with pytest.raises(BadFrameError):
        decode(HEADER.pack(MessageType.Ping, 1) + b"\x08")
    with pytest.raises(BadFrameError):
        decode(HEADER.pack(MessageType.Ping, 10))
    with pytest.raises(BadFrameError):
        decode(b"\x00\x03")


def test_encode_refuses_unmodelled_messages():
    with pytest.raises(UnknownMessageTypeError):
        encode(UnknownMessage(type_id=15))


def test_authenticate_body_is_mumble_protobuf():
    frame = encode(Authenticate(username="bot", tokens=("a", "b"), opus=True))
    proto = PROTO_CLASSES["Authenticate"]()
    proto.ParseFromString(frame[HEADER_SIZE:])

    assert proto.username == "bot"
    assert list(proto.tokens) == ["a", "b"]
    assert proto.opus is True
    assert not proto.HasField("password")


def test_version_packing():
    assert encode_version(1, 2, 16) == 0x010210
    assert decode_version(0x010400) == (1, 4, 0)
    assert encode_version_v2(1, 5, 735) == 0x0001000502DF0000
    assert decode_version_v2(0x0001000502DF0000) == (1, 5, 735)
    assert Version(version=0x010400, version_v2=encode_version_v2(1, 5, 0)).triple == (1, 5, 0)


def test_deny_type_names():
    assert deny_type_name(2) == "SuperUser"
    assert deny_type_name(DenyType.ChannelName) == "ChannelName"
    assert deny_type_name(99) == "UNRECOGNIZED"
    assert deny_type_name(None) == "UNRECOGNIZED"
