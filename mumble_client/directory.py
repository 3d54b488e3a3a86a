"""
Local mirror of server-authoritative entities.

Directories are written only by ``DirectoryUpdater``, which the session
subscribes to the inbound dispatcher before anything else. Everything else
(correlators, the CLI, embedding applications) only reads.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from mumble_shared.log import get_logger
from mumble_shared.messages import (
    ChannelRemove,
    ChannelState,
    InboundMessage,
    MessageType,
    UserRemove,
    UserState,
)

logger = get_logger(__name__)


@dataclass
class Channel:
    channel_id: int
    parent: Optional[int] = None
    name: str = ""
    description: str = ""
    position: int = 0
    temporary: bool = False
    max_users: int = 0
    links: Tuple[int, ...] = ()


@dataclass
class User:
    session: int
    name: str = ""
    channel_id: int = 0
    user_id: Optional[int] = None
    mute: bool = False
    deaf: bool = False
    suppress: bool = False
    self_mute: bool = False
    self_deaf: bool = False
    comment: str = ""
    hash: str = ""

    @property
    def is_registered(self) -> bool:
        return self.user_id is not None and self.user_id >= 0


def _merge(entity, message, skip: Tuple[str, ...]) -> None:
    """Copy every field the message carries onto the entity."""
    for f in fields(entity):
        if f.name in skip:
            continue
        value = getattr(message, f.name, None)
        if value is not None:
            setattr(entity, f.name, value)


class ChannelDirectory:
    def __init__(self) -> None:
        self._channels: Dict[int, Channel] = {}

    def __len__(self) -> int:
        return len(self._channels)

    def __iter__(self) -> Iterator[Channel]:
        return iter(list(self._channels.values()))

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._channels

    def by_id(self, channel_id: int) -> Optional[Channel]:
        return self._channels.get(channel_id)

    def all(self) -> List[Channel]:
        return list(self._channels.values())

    def children(self, parent: int) -> List[Channel]:
        return sorted(
            (c for c in self._channels.values() if c.parent == parent),
            key=lambda c: (c.position, c.name),
        )

    @property
    def root(self) -> Optional[Channel]:
        return self._channels.get(0)

    def apply(self, state: ChannelState) -> Optional[Channel]:
        """Insert or update from a ChannelState; only fields present are changed."""
        if state.channel_id is None:
            logger.warning("Ignoring ChannelState without channel_id")
            return None
        channel = self._channels.get(state.channel_id)
        if channel is None:
            channel = Channel(channel_id=state.channel_id)
            self._channels[state.channel_id] = channel
            logger.debug("Channel %d added", state.channel_id, extra={"channel_id": state.channel_id})
        _merge(channel, state, skip=("channel_id", "links"))

        links = set(state.links) if state.links else set(channel.links)
        links |= set(state.links_add)
        links -= set(state.links_remove)
        channel.links = tuple(sorted(links))
        return channel

    def remove(self, message: ChannelRemove) -> Optional[Channel]:
        channel = self._channels.pop(message.channel_id, None)
        if channel is not None:
            logger.debug("Channel %d removed", message.channel_id)
        return channel


class UserDirectory:
    def __init__(self) -> None:
        self._users: Dict[int, User] = {}

    def __len__(self) -> int:
        return len(self._users)

    def __iter__(self) -> Iterator[User]:
        return iter(list(self._users.values()))

    def __contains__(self, session: object) -> bool:
        return session in self._users

    def by_session(self, session: int) -> Optional[User]:
        return self._users.get(session)

    def in_channel(self, channel_id: int) -> List[User]:
        return sorted((u for u in self._users.values() if u.channel_id == channel_id), key=lambda u: u.name)

    def apply(self, state: UserState) -> Optional[User]:
        """Insert or update from a UserState; only fields present are changed."""
        if state.session is None:
            logger.warning("Ignoring UserState without session")
            return None
        user = self._users.get(state.session)
        if user is None:
            user = User(session=state.session)
            self._users[state.session] = user
            logger.debug("User %d added", state.session, extra={"session": state.session})
        _merge(user, state, skip=("session",))
        return user

    def remove(self, message: UserRemove) -> Optional[User]:
        user = self._users.pop(message.session, None)
        if user is not None:
            logger.debug("User %d (%s) removed: %s", user.session, user.name, message.reason or "no reason")
        return user


class DirectoryUpdater:
    """Dispatcher subscriber that applies state messages to both directories."""

    def __init__(self, channels: ChannelDirectory, users: UserDirectory) -> None:
        self.channels = channels
        self.users = users
        self._handlers: Dict[MessageType, Callable[[InboundMessage], object]] = {
            MessageType.ChannelState: self.channels.apply,  # type: ignore[dict-item]
            MessageType.ChannelRemove: self.channels.remove,  # type: ignore[dict-item]
            MessageType.UserState: self.users.apply,  # type: ignore[dict-item]
            MessageType.UserRemove: self.users.remove,  # type: ignore[dict-item]
        }

    def __call__(self, message: InboundMessage) -> None:
        handler = self._handlers.get(getattr(message, "TYPE", None))  # type: ignore[arg-type]
        if handler is not None:
            handler(message)

