import asyncio

import pytest

from mumble_client.correlator import Correlator, PendingRequest, denial_error
from mumble_client.dispatcher import InboundDispatcher
from mumble_shared.errors import (
    CommandTimedOutError,
    ConnectionError,
    NoSuchChannelError,
    NotConnectedError,
    PermissionDeniedError,
)
from mumble_shared.messages import ChannelState, DenyType, PermissionDenied, Ping


def is_general(message):
    return isinstance(message, ChannelState) and message.name == "General"


@pytest.mark.asyncio
async def test_pending_request_settles_once():
    pending = PendingRequest("create channel", is_general, lambda m: m.channel_id)

    pending.offer(ChannelState(channel_id=7, name="General"))
    pending.offer(ChannelState(channel_id=8, name="General"))

    assert pending.done
    assert pending.future.result() == 7
    assert pending.resolve(99) is False
    assert pending.reject(ConnectionError()) is False
    assert pending.future.result() == 7


@pytest.mark.asyncio
async def test_denial_before_success_settles_once():
    pending = PendingRequest("create channel", is_general, lambda m: m.channel_id)

    pending.offer(PermissionDenied(type=DenyType.Permission))
    pending.offer(ChannelState(channel_id=7, name="General"))

    error = pending.future.exception()
    assert isinstance(error, PermissionDeniedError)
    assert str(error) == "Permission"
    assert pending.resolve(7) is False
    assert pending.future.exception() is error


@pytest.mark.asyncio
async def test_success_is_checked_before_denial():
    pending = PendingRequest("anything", lambda m: True, lambda m: "ok")

    pending.offer(PermissionDenied(type=DenyType.Permission))

    assert pending.future.result() == "ok"


@pytest.mark.asyncio
async def test_unrelated_messages_are_ignored():
    pending = PendingRequest("create channel", is_general, lambda m: m)

    pending.offer(Ping(timestamp=1))
    pending.offer(ChannelState(channel_id=3, name="Other"))

    assert not pending.done


@pytest.mark.asyncio
async def test_denial_uses_type_name_when_reason_is_empty():
    pending = PendingRequest("remove channel", lambda m: False, lambda m: None)

    pending.offer(PermissionDenied(type=DenyType.SuperUser, reason=""))

    error = pending.future.exception()
    assert isinstance(error, PermissionDeniedError)
    assert str(error) == "SuperUser"
    assert error.deny_type == DenyType.SuperUser
    assert error.operation == "remove channel"


def test_denial_prefers_server_text():
    error = denial_error(PermissionDenied(type=DenyType.ChannelName, reason="Invalid channel name", channel_id=4))

    assert str(error) == "Invalid channel name"
    assert error.channel_id == 4


@pytest.mark.asyncio
async def test_result_factory_errors_reject_the_request():
    def missing(message):
        raise NoSuchChannelError(message.channel_id)

    pending = PendingRequest("create channel", is_general, missing)
    pending.offer(ChannelState(channel_id=7, name="General"))

    assert isinstance(pending.future.exception(), NoSuchChannelError)


@pytest.mark.asyncio
async def test_unexpected_result_errors_reject_the_request():
    def broken(message):
        raise KeyError("channel_id")

    pending = PendingRequest("create channel", is_general, broken)
    pending.offer(ChannelState(channel_id=7, name="General"))

    assert isinstance(pending.future.exception(), KeyError)


@pytest.mark.asyncio
async def test_request_subscribes_before_sending():
    dispatcher = InboundDispatcher()
    sent = []

    async def send(message):
        sent.append(message)
        # server answers before the send call even returns
        dispatcher.dispatch(ChannelState(channel_id=7, parent=0, name="General"))

    correlator = Correlator(dispatcher, send)
    result = await correlator.request(
        ChannelState(parent=0, name="General"),
        operation="create channel",
        matches=is_general,
        result=lambda m: m.channel_id,
    )

    assert result == 7
    assert sent == [ChannelState(parent=0, name="General")]
    assert correlator.pending_count == 0
    assert dispatcher.subscriber_count == 0


@pytest.mark.asyncio
async def test_request_timeout_cleans_up():
    dispatcher = InboundDispatcher()

    async def send(message):
        pass

    correlator = Correlator(dispatcher, send)
    with pytest.raises(CommandTimedOutError) as excinfo:
        await correlator.request(Ping(), operation="create channel", matches=is_general, result=lambda m: m, timeout=0.05)

    assert excinfo.value.operation == "create channel"
    assert correlator.pending_count == 0
    assert dispatcher.subscriber_count == 0


@pytest.mark.asyncio
async def test_send_failure_fails_the_request():
    dispatcher = InboundDispatcher()

    async def send(message):
        raise NotConnectedError("create channel")

    correlator = Correlator(dispatcher, send)
    with pytest.raises(NotConnectedError):
        await correlator.request(Ping(), operation="create channel", matches=is_general, result=lambda m: m)
    assert correlator.pending_count == 0


@pytest.mark.asyncio
async def test_fail_all_rejects_every_outstanding_request_once():
    dispatcher = InboundDispatcher()

    async def send(message):
        pass

    correlator = Correlator(dispatcher, send)
    first = asyncio.create_task(
        correlator.request(Ping(), operation="create a", matches=lambda m: False, result=lambda m: m)
    )
    second = asyncio.create_task(
        correlator.request(Ping(), operation="create b", matches=lambda m: False, result=lambda m: m)
    )
    await asyncio.sleep(0.01)
    assert correlator.pending_count == 2

    error = ConnectionError("connection closed by server")
    assert correlator.fail_all(error) == 2
    assert correlator.fail_all(error) == 0

    results = await asyncio.gather(first, second, return_exceptions=True)
    assert results == [error, error]
    assert correlator.pending_count == 0
