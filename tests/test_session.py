"""Tests for chat session lifecycle, snapshot guards and chat switching."""

import asyncio

import pytest

from chat_sync.chat.session import ChatSession
from chat_sync.core.context import SessionContext, static_token
from chat_sync.core.errors import AuthenticationRequired, InvalidOperationError, TransientApiError
from chat_sync.core.session import SessionManager
from chat_sync.events import ChatEvent, EventBus
from tests.factories import CHAT_ID, USER_ID, EventRecorder, make_chat, make_message, settle


async def test_open_loads_chat_and_messages(session, api):
    assert session.display_name == "Team"
    assert session.is_admin
    assert [m.id for m in session.messages] == ["m1", "m2"]
    assert session.poller.active
    assert api.called("get_chat") == [(CHAT_ID,)]


async def test_open_is_idempotent(session, api):
    await session.open()
    assert len(api.called("list_messages")) == 1


async def test_fetch_is_single_flight(session, api):
    gate = asyncio.Event()
    api.gates["list_messages"] = gate
    first = asyncio.create_task(session.refresh_messages())
    await settle()

    assert not await session.refresh_messages()
    assert len(api.called("list_messages")) == 2

    gate.set()
    assert await first


async def test_fetch_error_is_tolerated(session, api):
    api.failures["list_messages"] = TransientApiError("unavailable", status=503)

    assert not await session.refresh_messages()

    assert not session.closed
    assert [m.id for m in session.messages] == ["m1", "m2"]
    del api.failures["list_messages"]
    assert await session.refresh_messages()


async def test_snapshot_after_close_is_discarded(session, api):
    gate = asyncio.Event()
    api.gates["list_messages"] = gate
    task = asyncio.create_task(session.refresh_messages())
    await settle()

    api.messages[CHAT_ID] = []
    await session.close()
    gate.set()

    assert not await task
    assert [m.id for m in session.messages] == ["m1", "m2"]


async def test_snapshot_for_other_chat_is_discarded(session):
    assert not session.apply_snapshot([make_message("x1", chat_id="chat-2")])
    assert "x1" not in session.store


async def test_auth_failure_during_poll_is_fatal(session, api, recorder):
    api.failures["list_messages"] = AuthenticationRequired("token expired")

    assert not await session.refresh_messages()

    assert session.closed
    assert not session.poller.active
    assert recorder.of(ChatEvent.AUTH_REQUIRED) == ["token expired"]


async def test_missing_token_stops_before_any_request(api, scheduler):
    ctx = SessionContext(user_id=USER_ID, token_provider=static_token(None))
    events = EventBus()
    recorder = EventRecorder(events)
    session = ChatSession(CHAT_ID, ctx=ctx, api=api, scheduler=scheduler, events=events)

    await session.open()

    assert session.closed
    assert api.calls == []
    assert recorder.of(ChatEvent.AUTH_REQUIRED)


async def test_operations_after_close_are_rejected(session):
    await session.close()
    with pytest.raises(InvalidOperationError):
        await session.send("Hello")
    with pytest.raises(InvalidOperationError):
        await session.pin("m1")


async def test_no_change_events_after_close(session, recorder):
    await session.close()
    session.changed()
    assert recorder.of(ChatEvent.MESSAGES_CHANGED) == []


async def test_typing_indicator(session, api):
    await session.notify_typing(True)
    assert api.called("send_typing") == [(CHAT_ID, True)]


async def test_typing_failure_is_ignored(session, api):
    api.failures["send_typing"] = TransientApiError("unavailable", status=503)
    await session.notify_typing(False)
    assert not session.closed


class TestSessionManager:
    @pytest.fixture
    def manager(self, ctx, api, scheduler, sync_config):
        api.chats["chat-2"] = make_chat("chat-2", name="Other")
        api.messages["chat-2"] = [make_message("x1", chat_id="chat-2")]
        return SessionManager(ctx, api, scheduler, sync_config)

    async def test_switching_closes_previous(self, manager):
        first = await manager.open(CHAT_ID)
        second = await manager.open("chat-2")

        assert first.closed
        assert not first.poller.active
        assert manager.active is second
        assert [m.id for m in second.messages] == ["x1"]
        await manager.close()

    async def test_reopening_active_chat_returns_same_session(self, manager):
        first = await manager.open(CHAT_ID)
        assert await manager.open(CHAT_ID) is first
        await manager.close()
        assert manager.active is None

    async def test_late_snapshot_of_previous_chat_is_dropped(self, manager, api):
        first = await manager.open(CHAT_ID)
        gate = asyncio.Event()
        api.gates["list_messages"] = gate
        late = asyncio.create_task(first.refresh_messages())
        await settle()

        opening = asyncio.create_task(manager.open("chat-2"))
        await settle()
        gate.set()
        second = await opening

        assert not await late
        assert "m1" not in second.store
        assert "x1" not in first.store
        await manager.close()
