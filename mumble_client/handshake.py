from __future__ import annotations

import asyncio
import platform
from typing import Any, Awaitable, Callable, Optional

from mumble_client.config import SessionOptions
from mumble_client.directory import User, UserDirectory
from mumble_client.dispatcher import InboundDispatcher, Subscription
from mumble_shared.errors import CommandTimedOutError, ConnectionRejectedError, MumbleError
from mumble_shared.log import get_logger
from mumble_shared.messages import (
    Authenticate,
    InboundMessage,
    Reject,
    ServerSync,
    Version,
    encode_version,
    encode_version_v2,
)

logger = get_logger(__name__)


class Handshake:
    """
    Drives the startup exchange.

    Two independent watchers are subscribed before anything is sent: one
    records the server's Version (not required for completion), the other
    waits for ServerSync (completion) or Reject (failure). Completion is only
    ever signalled by ServerSync.
    """

    def __init__(
        self,
        options: SessionOptions,
        dispatcher: InboundDispatcher,
        users: UserDirectory,
        send: Callable[[Any], Awaitable[None]],
    ) -> None:
        self.options = options
        self.dispatcher = dispatcher
        self.users = users
        self._send = send
        self.server_version: Optional[Version] = None
        self.sync: Optional[ServerSync] = None
        self.user: Optional[User] = None
        self._done: asyncio.Future = asyncio.get_running_loop().create_future()
        self._version_watch: Optional[Subscription] = None
        self._sync_watch: Optional[Subscription] = None

    @property
    def session_id(self) -> Optional[int]:
        return self.sync.session if self.sync is not None else None

    def start(self) -> None:
        self._version_watch = self.dispatcher.subscribe(self._on_version)
        self._sync_watch = self.dispatcher.subscribe(self._on_sync_or_reject)

    def _on_version(self, message: InboundMessage) -> None:
        if not isinstance(message, Version) or self.server_version is not None:
            return
        self.server_version = message
        logger.info("Server version %s (%s)", message.triple, message.release or "unknown release")
        if self._version_watch is not None:
            self._version_watch.unsubscribe()

    def _on_sync_or_reject(self, message: InboundMessage) -> None:
        if self._done.done():
            return
        if isinstance(message, ServerSync):
            self.sync = message
            if message.session is not None:
                self.user = self.users.by_session(message.session)
            if self.user is None:
                logger.warning("ServerSync names session %s but no UserState was seen for it", message.session)
            logger.info("Session synchronised", extra={"session": message.session})
            self._done.set_result(self)
        elif isinstance(message, Reject):
            reason = message.reason or ""
            logger.error("Server rejected the connection: %s", reason or message.type)
            self._done.set_exception(ConnectionRejectedError(message.type or 0, reason))

    def fail(self, error: BaseException) -> bool:
        """Fail the handshake if it has not completed yet."""
        if self._done.done():
            return False
        self._done.set_exception(error)
        return True

    async def send_hello(self) -> None:
        await self._send(
            Authenticate(
                username=self.options.username,
                password=self.options.password,
                tokens=tuple(self.options.tokens),
                opus=True,
            )
        )
        await self._send(
            Version(
                version=encode_version(*self.options.client_version),
                version_v2=encode_version_v2(*self.options.client_version),
                release=self.options.release,
                os=platform.system() or None,
                os_version=platform.release() or None,
            )
        )

    async def run(self, timeout: Optional[float] = None) -> "Handshake":
        """Send Authenticate + Version and wait for ServerSync."""
        if self._sync_watch is None:
            self.start()
        try:
            await self.send_hello()
        except MumbleError as e:
            self.fail(e)
        try:
            if timeout is None:
                return await self._done
            try:
                return await asyncio.wait_for(self._done, timeout)
            except asyncio.TimeoutError:
                raise CommandTimedOutError("handshake", timeout) from None
        finally:
            if self._sync_watch is not None:
                self._sync_watch.unsubscribe()
