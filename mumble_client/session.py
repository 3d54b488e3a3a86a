#!/usr/bin/env python3
"""
Mumble client session.

Composes the transport, inbound dispatcher, entity directories, handshake,
request correlator and keepalive into one object:

    async with MumbleSession(load_options(host="voice.example.com", username="bot")) as session:
        lobby = await session.create_channel(0, "Lobby")
        await session.move_user_to_channel(session.user.session, lobby.channel_id)

Lifecycle: DISCONNECTED -> CONNECTING -> HANDSHAKING -> ESTABLISHED -> CLOSED.
Any transport failure is fatal: the session moves to CLOSED, every pending
request fails with ConnectionError and the keepalive stops. Reconnecting is
left to the embedding application.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from enum import Enum
from typing import Any, AsyncIterable, Awaitable, Callable, List, Optional, Protocol, Set

from mumble_client.config import SessionOptions, TLSOptions
from mumble_client.correlator import Correlator
from mumble_client.directory import Channel, ChannelDirectory, DirectoryUpdater, User, UserDirectory
from mumble_client.dispatcher import InboundDispatcher
from mumble_client.handshake import Handshake
from mumble_client.keepalive import Keepalive
from mumble_client.transport import open_secure_stream
from mumble_shared.codec import encode
from mumble_shared.errors import (
    ConnectionError,
    MumbleError,
    NoSuchChannelError,
    NoSuchUserError,
    NotConnectedError,
)
from mumble_shared.log import get_logger, log_protocol_message
from mumble_shared.messages import ChannelRemove, ChannelState, InboundMessage, UserState, Version

logger = get_logger(__name__)


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    ESTABLISHED = "established"
    CLOSED = "closed"


class Stream(Protocol):
    """What the session needs from a transport."""

    def __aiter__(self) -> AsyncIterable[bytes]: ...

    async def send(self, data: bytes) -> None: ...

    async def close(self) -> None: ...


StreamFactory = Callable[[str, int, Optional[TLSOptions]], Awaitable[Stream]]
ConnectedListener = Callable[["MumbleSession"], None]


class MumbleSession:

    def __init__(self, options: SessionOptions, *, stream_factory: StreamFactory = open_secure_stream) -> None:
        self.options = options
        self._stream_factory = stream_factory
        self.state = SessionState.DISCONNECTED
        self.stream: Optional[Stream] = None

        # Directories are written only by the dispatch path
        self.channels = ChannelDirectory()
        self.users = UserDirectory()
        self.user: Optional[User] = None

        self.dispatcher = InboundDispatcher()
        self.dispatcher.subscribe(DirectoryUpdater(self.channels, self.users))
        self.dispatcher.add_close_listener(self._on_stream_closed)

        self._correlator = Correlator(self.dispatcher, self._send)
        self._keepalive = Keepalive(self._send, options.ping_interval)
        self._handshake: Optional[Handshake] = None
        self._reader: Optional[asyncio.Task] = None
        self._connected_listeners: List[ConnectedListener] = []
        self._background_tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # read access
    # ------------------------------------------------------------------

    @property
    def server_version(self) -> Optional[Version]:
        return self._handshake.server_version if self._handshake is not None else None

    @property
    def session_id(self) -> Optional[int]:
        return self._handshake.session_id if self._handshake is not None else None

    @property
    def pending_requests(self) -> int:
        return self._correlator.pending_count

    @property
    def keepalive(self) -> Keepalive:
        return self._keepalive

    def on_connected(self, callback: ConnectedListener) -> Callable[[], None]:
        """Register a listener for ESTABLISHED transitions; returns an unsubscribe function."""
        self._connected_listeners.append(callback)

        def unsubscribe() -> None:
            with suppress(ValueError):
                self._connected_listeners.remove(callback)

        return unsubscribe

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> "MumbleSession":
        """Open the transport, run the handshake and return once ServerSync arrives."""
        if self.state is not SessionState.DISCONNECTED:
            raise MumbleError(f"cannot connect: session is {self.state.value}")

        self._set_state(SessionState.CONNECTING)
        try:
            stream = await self._stream_factory(self.options.host, self.options.port, self.options.tls)
        except BaseException:
            self._set_state(SessionState.CLOSED)
            raise
        self.stream = stream
        self._set_state(SessionState.HANDSHAKING)

        # watchers first, then the reader, so no message can be missed
        handshake = Handshake(self.options, self.dispatcher, self.users, self._send)
        self._handshake = handshake
        handshake.start()
        self._reader = asyncio.create_task(self.dispatcher.run(stream), name="mumble-reader")

        try:
            await handshake.run(self.options.handshake_timeout)
        except BaseException:
            await self.close()
            raise
        if self.state is not SessionState.HANDSHAKING:
            # closed concurrently after ServerSync was observed
            raise ConnectionError("connection closed during handshake")

        self.user = handshake.user
        self._set_state(SessionState.ESTABLISHED)
        self._keepalive.start()
        self._notify_connected()
        return self

    async def close(self) -> None:
        """Close the session; pending requests fail with ConnectionError."""
        self._mark_closed(ConnectionError("session closed"))
        await self._keepalive.stop()
        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with suppress(asyncio.CancelledError):
                await reader
        if self.stream is not None:
            await self.stream.close()
        for task in list(self._background_tasks):
            with suppress(asyncio.CancelledError):
                await task

    async def __aenter__(self) -> "MumbleSession":
        return await self.connect()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _set_state(self, state: SessionState) -> None:
        logger.debug("Session state %s -> %s", self.state.value, state.value)
        self.state = state

    def _on_stream_closed(self, error: Optional[BaseException]) -> None:
        if self.state is SessionState.CLOSED:
            return
        if error is None:
            logger.warning("Connection to %s:%s closed by peer", self.options.host, self.options.port)
            closed = ConnectionError("connection closed by server")
        elif isinstance(error, ConnectionError):
            closed = error
        else:
            closed = ConnectionError(f"connection lost: {error}", cause=error)
        self._mark_closed(closed)
        if self.stream is not None:
            self._track_background_task(asyncio.ensure_future(self.stream.close()))

    def _mark_closed(self, error: ConnectionError) -> None:
        """Synchronous part of closing: state, pending requests, keepalive, dispatch."""
        if self.state is SessionState.CLOSED:
            return
        self._set_state(SessionState.CLOSED)
        if self._handshake is not None:
            self._handshake.fail(error)
        self._correlator.fail_all(error)
        self._keepalive.cancel()
        self.dispatcher.close(error)

    def _track_background_task(self, task: asyncio.Future) -> None:
        """Keep a strong reference to background tasks until completion."""
        self._background_tasks.add(task)  # type: ignore[arg-type]
        task.add_done_callback(self._background_tasks.discard)  # type: ignore[arg-type]

    def _notify_connected(self) -> None:
        for listener in list(self._connected_listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Connected listener %r failed", listener)

    # ------------------------------------------------------------------
    # outbound
    # ------------------------------------------------------------------

    def _require_transport(self, operation: str) -> None:
        if self.stream is None or self.state in (SessionState.DISCONNECTED, SessionState.CONNECTING, SessionState.CLOSED):
            raise NotConnectedError(operation)

    async def _send(self, message: Any) -> None:
        stream = self.stream
        if stream is None or self.state is SessionState.CLOSED:
            raise NotConnectedError(f"send {type(message).__name__}")
        log_protocol_message(logger, "debug", "Sending", message=message)
        try:
            await stream.send(encode(message))
        except ConnectionError as e:
            self._mark_closed(e)
            raise

    def _timeout(self, timeout: Optional[float]) -> Optional[float]:
        return timeout if timeout is not None else self.options.command_timeout

    # ------------------------------------------------------------------
    # commands
    # ------------------------------------------------------------------

    async def create_channel(
        self,
        parent: int,
        name: str,
        *,
        temporary: bool = False,
        timeout: Optional[float] = None,
    ) -> Channel:
        """Create ``name`` under ``parent``; resolves with the channel the server created."""
        self._require_transport("create channel")

        def matches(message: InboundMessage) -> bool:
            return isinstance(message, ChannelState) and message.parent == parent and message.name == name

        def result(message: InboundMessage) -> Channel:
            channel_id = message.channel_id  # type: ignore[union-attr]
            channel = self.channels.by_id(channel_id)
            if channel is None:
                raise NoSuchChannelError(channel_id)
            return channel

        channel = await self._correlator.request(
            ChannelState(parent=parent, name=name, temporary=temporary or None),
            operation="create channel",
            matches=matches,
            result=result,
            timeout=self._timeout(timeout),
        )
        logger.info("Created channel %r", name, extra={"channel_id": channel.channel_id})
        return channel

    async def remove_channel(self, channel_id: int, *, timeout: Optional[float] = None) -> None:
        """Remove a channel; resolves once the server broadcasts ChannelRemove for it."""
        self._require_transport("remove channel")
        if channel_id not in self.channels:
            raise NoSuchChannelError(channel_id)

        def matches(message: InboundMessage) -> bool:
            return isinstance(message, ChannelRemove) and message.channel_id == channel_id

        await self._correlator.request(
            ChannelRemove(channel_id=channel_id),
            operation="remove channel",
            matches=matches,
            result=lambda message: None,
            timeout=self._timeout(timeout),
        )
        logger.info("Removed channel", extra={"channel_id": channel_id})

    async def move_user_to_channel(self, session: int, channel_id: int, *, timeout: Optional[float] = None) -> User:
        """
        Move a user; resolves with the updated user.

        A user already in the destination is returned immediately and nothing
        is sent.
        """
        self._require_transport("move user")
        user = self.users.by_session(session)
        if user is None:
            raise NoSuchUserError(session)
        if user.channel_id == channel_id:
            return user
        if channel_id not in self.channels:
            raise NoSuchChannelError(channel_id)

        def matches(message: InboundMessage) -> bool:
            return isinstance(message, UserState) and message.session == session and message.channel_id == channel_id

        def result(message: InboundMessage) -> User:
            moved = self.users.by_session(session)
            if moved is None:
                raise NoSuchUserError(session)
            return moved

        moved = await self._correlator.request(
            UserState(session=session, channel_id=channel_id),
            operation="move user",
            matches=matches,
            result=result,
            timeout=self._timeout(timeout),
        )
        logger.info("Moved user %s", moved.name, extra={"session": session, "channel_id": channel_id})
        return moved
