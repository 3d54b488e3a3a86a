from __future__ import annotations

import builtins
from typing import Optional


class MumbleError(Exception):
    """Base class for every error raised by the session engine."""


class ConnectionError(MumbleError, builtins.ConnectionError):
    """Transport never opened, or dropped while the session was live."""

    def __init__(self, message: str = "connection closed", *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ConnectionRejectedError(ConnectionError):
    """Server answered the handshake with a Reject message."""

    def __init__(self, reject_type: int, reason: str):
        super().__init__(f"connection rejected ({reason or reject_type})")
        self.reject_type = reject_type
        self.reason = reason


class NotConnectedError(MumbleError):
    """Mutating call issued while no transport is open."""

    def __init__(self, operation: str):
        super().__init__(f"cannot {operation}: not connected")
        self.operation = operation


class PermissionDeniedError(MumbleError):
    """
    Server denied a request.

    ``str(err)`` is the server-supplied reason, or the name of the denial
    type when the server sent no text.
    """

    def __init__(
        self,
        reason: str,
        *,
        deny_type: Optional[int] = None,
        operation: Optional[str] = None,
        session: Optional[int] = None,
        channel_id: Optional[int] = None,
        permission: Optional[int] = None,
    ):
        super().__init__(reason)
        self.reason = reason
        self.deny_type = deny_type
        self.operation = operation
        self.session = session
        self.channel_id = channel_id
        self.permission = permission


class NoSuchEntityError(MumbleError, LookupError):
    """An operation referenced an id with no directory entry."""


class NoSuchUserError(NoSuchEntityError):
    def __init__(self, session: int):
        super().__init__(f"no such user (session={session})")
        self.session = session


class NoSuchChannelError(NoSuchEntityError):
    def __init__(self, channel_id: int):
        super().__init__(f"no such channel (channel_id={channel_id})")
        self.channel_id = channel_id


class CommandTimedOutError(MumbleError, TimeoutError):
    """A bounded wait elapsed before the server confirmed or denied."""

    def __init__(self, operation: str, timeout: float):
        super().__init__(f"{operation} timed out after {timeout:g}s")
        self.operation = operation
        self.timeout = timeout


class ProtocolError(MumbleError):
    """Wire data could not be encoded or decoded."""


class BadFrameError(ProtocolError):
    """Malformed frame header or body."""


class UnknownMessageTypeError(ProtocolError):
    """Attempt to encode a message the codec does not model."""
