from __future__ import annotations

import asyncio
import itertools
from typing import AsyncIterable, Callable, Dict, List, Optional

from mumble_shared.codec import FrameDecoder
from mumble_shared.log import get_logger, log_protocol_message
from mumble_shared.messages import InboundMessage

logger = get_logger(__name__)

# Subscribers run synchronously inside the read loop and must never send
Subscriber = Callable[[InboundMessage], None]
CloseListener = Callable[[Optional[BaseException]], None]


class Subscription:
    """Handle returned by ``InboundDispatcher.subscribe``."""

    def __init__(self, dispatcher: "InboundDispatcher", key: int, callback: Subscriber) -> None:
        self._dispatcher = dispatcher
        self._key = key
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._dispatcher._subscribers.pop(self._key, None)


class InboundDispatcher:
    """
    Multicast of the decoded inbound message sequence.

    Every subscriber sees every message that arrives after it subscribed, in
    transport arrival order. Subscribers are called in subscription order, so
    state updaters registered first are visible to later subscribers within
    the same delivery pass. Nothing is buffered or replayed.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[int, Subscription] = {}
        self._close_listeners: List[CloseListener] = []
        self._ids = itertools.count()
        self._closed = False
        self.dispatched = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Subscriber) -> Subscription:
        key = next(self._ids)
        subscription = Subscription(self, key, callback)
        self._subscribers[key] = subscription
        return subscription

    def add_close_listener(self, callback: CloseListener) -> None:
        self._close_listeners.append(callback)

    def dispatch(self, message: InboundMessage) -> None:
        """Deliver one message to the subscribers registered right now."""
        self.dispatched += 1
        log_protocol_message(logger, "debug", "Dispatching inbound message", message=message)
        for subscription in tuple(self._subscribers.values()):
            # unsubscribed earlier in this pass
            if not subscription.active:
                continue
            try:
                subscription.callback(message)
            except Exception:
                logger.exception("Subscriber %r failed on %s", subscription.callback, type(message).__name__)

    async def run(self, stream: AsyncIterable[bytes]) -> None:
        """Read loop: decode frames from the stream and dispatch them until it ends."""
        decoder = FrameDecoder()
        error: Optional[BaseException] = None
        try:
            async for chunk in stream:
                for message in decoder.feed(chunk):
                    self.dispatch(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Inbound stream failed: %s", e)
            error = e
        finally:
            self.close(error)

    def close(self, error: Optional[BaseException] = None) -> None:
        """Mark the sequence finished and notify close listeners once."""
        if self._closed:
            return
        self._closed = True
        self._subscribers.clear()
        for listener in self._close_listeners:
            try:
                listener(error)
            except Exception:
                logger.exception("Close listener %r failed", listener)
