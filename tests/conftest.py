import asyncio
from typing import Any, Callable, Dict, List, Optional, Type

import pytest

from mumble_client.config import SessionOptions
from mumble_client.session import MumbleSession
from mumble_shared.codec import FrameDecoder, encode
from mumble_shared.errors import ConnectionError
from mumble_shared.messages import ChannelState, ServerSync, UserState, Version, encode_version

_END = object()

Responder = Callable[[Any], List[Any]]


class FakeStream:
    """
    In-memory stand-in for SecureStream.

    ``feed`` queues server messages for the read loop, ``end`` finishes the
    inbound sequence (optionally with an error) and ``respond`` scripts
    replies to outbound messages of a given type.
    """

    def __init__(self) -> None:
        self.sent: List[bytes] = []
        self.closed = False
        self.close_calls = 0
        self.responders: Dict[type, Responder] = {}
        self._queue: Optional[asyncio.Queue] = None
        self._decoder = FrameDecoder()

    @property
    def queue(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue()
        return self._queue

    @property
    def sent_messages(self) -> List[Any]:
        decoder = FrameDecoder()
        return [m for frame in self.sent for m in decoder.feed(frame)]

    def sent_of(self, cls: Type) -> List[Any]:
        return [m for m in self.sent_messages if isinstance(m, cls)]

    def respond(self, cls: type, responder: Responder) -> None:
        self.responders[cls] = responder

    def feed(self, *messages: Any) -> None:
        for message in messages:
            self.queue.put_nowait(encode(message))

    def feed_bytes(self, data: bytes) -> None:
        self.queue.put_nowait(data)

    def end(self, error: Optional[BaseException] = None) -> None:
        self.queue.put_nowait(error if error is not None else _END)

    async def send(self, data: bytes) -> None:
        if self.closed:
            raise ConnectionError("fake stream closed")
        self.sent.append(data)
        for message in self._decoder.feed(data):
            responder = self.responders.get(type(message))
            if responder is not None:
                self.feed(*responder(message))

    async def close(self) -> None:
        self.close_calls += 1
        if not self.closed:
            self.closed = True
            self.queue.put_nowait(_END)

    async def __aiter__(self):
        while True:
            item = await self.queue.get()
            if item is _END:
                return
            if isinstance(item, BaseException):
                raise item
            yield item


def server_hello(session: int = 1, username: str = "bot") -> List[Any]:
    return [
        Version(version=encode_version(1, 4, 0), release="1.4.0", os="Linux"),
        ChannelState(channel_id=0, name="Root", position=0),
        ChannelState(channel_id=3, parent=0, name="AFK", position=1),
        UserState(session=session, name=username, channel_id=0),
        UserState(session=2, name="alice", channel_id=3, user_id=5),
        ServerSync(session=session, max_bandwidth=72000, welcome_text="Welcome"),
    ]


def stream_factory_for(stream: FakeStream):
    calls = []

    async def factory(host, port, tls):
        calls.append((host, port, tls))
        return stream

    factory.calls = calls
    return factory


@pytest.fixture
def stream() -> FakeStream:
    return FakeStream()


@pytest.fixture
def make_options():
    def _make(**overrides: Any) -> SessionOptions:
        values = {"host": "127.0.0.1", "username": "bot", "ping_interval": 60.0}
        values.update(overrides)
        return SessionOptions(**values).validate()

    return _make


@pytest.fixture
def open_session(stream, make_options):
    """Factory for a session that completed its handshake over ``stream``."""

    async def _open(**overrides: Any) -> MumbleSession:
        stream.feed(*server_hello())
        session = MumbleSession(make_options(**overrides), stream_factory=stream_factory_for(stream))
        await asyncio.wait_for(session.connect(), 2.0)
        return session

    return _open


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)
