"""Shared fixtures: an in-memory chat backend and an open session on it."""

from __future__ import annotations

import pytest

from chat_sync.chat.session import ChatSession
from chat_sync.config import SyncConfig
from chat_sync.core.context import SessionContext, static_token
from chat_sync.services.scheduler import SchedulerService
from tests.factories import (
    CHAT_ID,
    OTHER_ID,
    USER_ID,
    EventRecorder,
    FakeChatApi,
    make_chat,
    make_message,
)


@pytest.fixture
def ctx() -> SessionContext:
    return SessionContext(user_id=USER_ID, token_provider=static_token("secret-token"), fullname="Alice")


@pytest.fixture
def api() -> FakeChatApi:
    fake = FakeChatApi()
    fake.chats[CHAT_ID] = make_chat()
    fake.messages[CHAT_ID] = [
        make_message("m1", sender_id=OTHER_ID, content="hello", minutes=0),
        make_message("m2", sender_id=USER_ID, content="hi there", minutes=1),
    ]
    return fake


@pytest.fixture
async def scheduler():
    service = SchedulerService()
    await service.start()
    yield service
    await service.stop()


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(poll_interval=60, mark_read=False)


@pytest.fixture
async def session(ctx, api, scheduler, sync_config):
    chat_session = ChatSession(CHAT_ID, ctx=ctx, api=api, scheduler=scheduler, sync=sync_config)
    await chat_session.open()
    yield chat_session
    await chat_session.close()
    await chat_session.wait_idle()


@pytest.fixture
def recorder(session) -> EventRecorder:
    return EventRecorder(session.events)
