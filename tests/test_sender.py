"""Tests for the optimistic send pipeline."""

import asyncio

import pytest

from chat_sync.api.http import HttpChatApi
from chat_sync.chat.session import ChatSession
from chat_sync.config import ApiConfig, SyncConfig
from chat_sync.core.errors import (
    AuthenticationRequired,
    InvalidMessageError,
    InvalidOperationError,
    TransientApiError,
)
from chat_sync.core.types import AttachmentKind, MessageStatus, MessageType
from chat_sync.events import ChatEvent
from tests.factories import CHAT_ID, USER_ID, EventRecorder, settle


async def test_placeholder_then_confirmed_record(session, api, recorder):
    gate = asyncio.Event()
    api.gates["send_message"] = gate
    before = len(session.messages)

    task = asyncio.create_task(session.send("Hello"))
    await settle()

    placeholder = session.messages[-1]
    assert session.store.is_temporary(placeholder.id)
    assert placeholder.status == MessageStatus.SENDING
    assert placeholder.content == "Hello"
    assert placeholder.sender_id == USER_ID
    assert placeholder.sender.fullname == "Alice"

    gate.set()
    confirmed = await task

    assert confirmed.status == MessageStatus.SENT
    assert not session.store.is_temporary(confirmed.id)
    assert session.messages[-1].id == confirmed.id
    assert placeholder.id not in session.store
    assert len(session.messages) == before + 1
    assert recorder.of(ChatEvent.SCROLL_TO_LATEST) == [confirmed.id]


async def test_failed_send_then_resend(session, api):
    api.failures["send_message"] = TransientApiError("unavailable", status=503)

    failed = await session.send("Hello")

    assert failed.status == MessageStatus.FAILED
    assert session.store.is_temporary(failed.id)
    assert session.messages[-1].id == failed.id

    del api.failures["send_message"]
    confirmed = await session.resend(failed.id)

    assert confirmed.status == MessageStatus.SENT
    assert failed.id not in session.store
    assert [m.content for m in session.messages].count("Hello") == 1
    assert len(api.called("send_message")) == 2


async def test_resend_failing_again_keeps_one_failed_entry(session, api):
    api.failures["send_message"] = TransientApiError("unavailable", status=503)
    first = await session.send("Hello")
    second = await session.resend(first.id)

    assert second.status == MessageStatus.FAILED
    assert first.id not in session.store
    assert [m.id for m in session.messages if m.status == MessageStatus.FAILED] == [second.id]


async def test_resend_requires_failed_status(session):
    with pytest.raises(InvalidOperationError):
        await session.resend("m1")


async def test_empty_text_rejected_without_network_call(session, api):
    before = len(session.messages)
    with pytest.raises(InvalidMessageError):
        await session.send("   ")
    assert api.called("send_message") == []
    assert len(session.messages) == before


async def test_call_messages_cannot_be_sent(session, api):
    with pytest.raises(InvalidMessageError):
        await session.send("call", MessageType.CALL)
    assert api.called("send_message") == []


async def test_media_placeholder_carries_attachment(session, api):
    gate = asyncio.Event()
    api.gates["send_message"] = gate

    task = asyncio.create_task(session.send("/tmp/photo.png", MessageType.IMAGE))
    await settle()

    placeholder = session.messages[-1]
    assert placeholder.type == MessageType.IMAGE
    assert placeholder.content is None
    assert placeholder.attachments[0].kind == AttachmentKind.IMAGE
    assert placeholder.attachments[0].url == "/tmp/photo.png"

    gate.set()
    confirmed = await task
    assert confirmed.attachments[0].url.startswith("https://cdn.example.com/")


async def test_reply_target_is_sent_and_cleared(session, api):
    session.sender.reply_to("m1")
    await session.send("answer")

    (_, draft), = api.called("send_message")
    assert draft.parent_id == "m1"
    assert session.sender.reply_target is None


async def test_cancelled_reply_is_not_sent(session, api):
    session.reply_to("m1")
    session.cancel_reply()
    await session.send("standalone")

    (_, draft), = api.called("send_message")
    assert draft.parent_id is None


async def test_poll_during_send_keeps_placeholder(session, api):
    gate = asyncio.Event()
    api.gates["send_message"] = gate
    task = asyncio.create_task(session.send("Hello"))
    await settle()
    temp_id = session.messages[-1].id

    assert await session.refresh_messages()
    assert session.messages[-1].id == temp_id

    gate.set()
    await task


async def test_stale_poll_does_not_drop_confirmed_message(session, api):
    poll_gate = asyncio.Event()
    api.gates["list_messages"] = poll_gate
    poll = asyncio.create_task(session.refresh_messages())
    await settle()

    confirmed = await session.send("Hello")
    poll_gate.set()
    assert await poll

    assert confirmed.id in session.store
    del api.gates["list_messages"]
    await session.refresh_messages()
    assert [m.id for m in session.messages].count(confirmed.id) == 1


async def test_response_after_close_is_discarded(session, api):
    gate = asyncio.Event()
    api.gates["send_message"] = gate
    task = asyncio.create_task(session.send("Hello"))
    await settle()

    await session.close()
    gate.set()
    confirmed = await task

    assert confirmed.id not in session.store


async def test_authentication_failure_is_fatal(session, api, recorder):
    api.failures["send_message"] = AuthenticationRequired("token expired")

    with pytest.raises(AuthenticationRequired):
        await session.send("Hello")

    assert session.closed
    assert not session.poller.active
    assert recorder.of(ChatEvent.AUTH_REQUIRED) == ["token expired"]


async def test_send_targets_session_chat(session, api):
    await session.send("Hello")
    (chat_id, _), = api.called("send_message")
    assert chat_id == CHAT_ID


async def test_failed_send_scrolls_to_failed_placeholder(session, api, recorder):
    api.failures["send_message"] = TransientApiError("unavailable", status=503)

    failed = await session.send("Hello")

    assert session.store.is_temporary(failed.id)
    assert recorder.of(ChatEvent.SCROLL_TO_LATEST) == [failed.id]


async def test_concurrent_sends_with_poll_appear_once(session, api):
    gate = asyncio.Event()
    api.gates["send_message"] = gate
    tasks = [asyncio.create_task(session.send(f"message {n}")) for n in range(3)]
    await settle()
    assert len([m for m in session.messages if session.store.is_temporary(m.id)]) == 3

    assert await session.refresh_messages()
    gate.set()
    confirmed = await asyncio.gather(*tasks)
    assert await session.refresh_messages()

    ids = [m.id for m in session.messages]
    assert len(ids) == len(set(ids)) == 5
    assert [m.status for m in confirmed] == [MessageStatus.SENT] * 3
    assert {m.id for m in confirmed} <= set(ids)
    assert not any(session.store.is_temporary(message_id) for message_id in ids)
    assert sorted(m.content for m in session.messages[2:]) == ["message 0", "message 1", "message 2"]


async def test_malformed_upload_fails_placeholder(ctx, scheduler):
    api = HttpChatApi(ApiConfig(base_url="http://127.0.0.1:1", timeout=2))
    session = ChatSession(CHAT_ID, ctx=ctx, api=api, scheduler=scheduler, sync=SyncConfig(mark_read=False))
    recorder = EventRecorder(session.events)
    try:
        failed = await session.send("data:image/png;base64,not*base64", MessageType.IMAGE)
    finally:
        await session.close()
        await api.stop()

    assert failed.status == MessageStatus.FAILED
    assert session.messages[-1].id == failed.id
    assert session.messages[-1].status == MessageStatus.FAILED
    assert recorder.of(ChatEvent.SCROLL_TO_LATEST) == [failed.id]
