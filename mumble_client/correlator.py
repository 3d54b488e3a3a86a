"""
Request/response correlation for mutating commands.

The protocol has no request ids: a command is confirmed when the server
broadcasts the resulting state message, and refused by a PermissionDenied
that does not say which request it refers to. Each command therefore
becomes a ``PendingRequest`` that watches the live inbound sequence for the
first message matching either its success predicate or the (global) denial
predicate.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, Set

from mumble_client.dispatcher import InboundDispatcher
from mumble_shared.errors import CommandTimedOutError, MumbleError, PermissionDeniedError
from mumble_shared.log import get_logger
from mumble_shared.messages import InboundMessage, PermissionDenied, deny_type_name

logger = get_logger(__name__)

Predicate = Callable[[InboundMessage], bool]
ResultFactory = Callable[[InboundMessage], Any]
Sender = Callable[[Any], Awaitable[None]]


def is_permission_denied(message: InboundMessage) -> bool:
    return isinstance(message, PermissionDenied)


def denial_error(message: PermissionDenied, operation: Optional[str] = None) -> PermissionDeniedError:
    """Server reason text when present, otherwise the stringified denial type."""
    reason = message.reason if message.reason else deny_type_name(message.type)
    return PermissionDeniedError(
        reason,
        deny_type=message.type,
        operation=operation,
        session=message.session,
        channel_id=message.channel_id,
        permission=message.permission,
    )


class PendingRequest:
    """
    One in-flight command with a one-shot completion cell.

    The first call to ``resolve``/``reject`` settles the request; every later
    call (a second matching message, a close after success...) is a no-op
    and returns False.
    """

    def __init__(
        self,
        operation: str,
        matches: Predicate,
        result: ResultFactory,
        denied: Predicate = is_permission_denied,
    ) -> None:
        self.operation = operation
        self.matches = matches
        self.result = result
        self.denied = denied
        self.future: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def done(self) -> bool:
        return self.future.done()

    def resolve(self, value: Any) -> bool:
        if self.future.done():
            return False
        self.future.set_result(value)
        return True

    def reject(self, error: BaseException) -> bool:
        if self.future.done():
            return False
        self.future.set_exception(error)
        return True

    def offer(self, message: InboundMessage) -> None:
        """Dispatcher callback: success is checked before denial."""
        if self.future.done():
            return
        if self.matches(message):
            try:
                value = self.result(message)
            except Exception as e:
                logger.error("%s: could not build result from %s: %s", self.operation, type(message).__name__, e)
                self.reject(e)
                return
            self.resolve(value)
        elif self.denied(message):
            error = denial_error(message, self.operation)  # type: ignore[arg-type]
            logger.warning("%s denied: %s", self.operation, error.reason)
            self.reject(error)


class Correlator:
    """Issues commands and tracks every outstanding PendingRequest."""

    def __init__(self, dispatcher: InboundDispatcher, send: Sender) -> None:
        self.dispatcher = dispatcher
        self._send = send
        self._pending: Set[PendingRequest] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def request(
        self,
        message: Any,
        *,
        operation: str,
        matches: Predicate,
        result: ResultFactory,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Send ``message`` and wait for its confirmation or denial.

        The watcher is subscribed before the send so the confirmation cannot
        slip past. ``timeout=None`` waits indefinitely.
        """
        pending = PendingRequest(operation, matches, result)
        subscription = self.dispatcher.subscribe(pending.offer)
        self._pending.add(pending)
        try:
            try:
                await self._send(message)
            except MumbleError as e:
                pending.reject(e)
            if timeout is None:
                return await pending.future
            try:
                return await asyncio.wait_for(pending.future, timeout)
            except asyncio.TimeoutError:
                logger.warning("%s timed out after %.2fs", operation, timeout)
                raise CommandTimedOutError(operation, timeout) from None
        finally:
            subscription.unsubscribe()
            self._pending.discard(pending)

    def fail_all(self, error: BaseException) -> int:
        """Reject every outstanding request once; returns how many were failed."""
        failed = 0
        for pending in list(self._pending):
            if pending.reject(error):
                failed += 1
        if failed:
            logger.info("Failed %d pending request(s): %s", failed, error)
        return failed
