"""Tests for the application orchestrator."""

import pytest

from chat_sync.app import ChatSyncApp
from chat_sync.config import AppConfig
from chat_sync.core.errors import AuthenticationRequired, InvalidOperationError
from chat_sync.events import ChatEvent
from tests.factories import CHAT_ID, OTHER_ID, THIRD_ID, USER_ID, EventRecorder


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(
        api={"base_url": "http://chat.local", "token": "secret-token"},
        user={"id": USER_ID, "fullname": "Alice"},
        sync={"poll_interval": 60, "mark_read": False},
    )


@pytest.fixture
async def app(config, api):
    chat_app = ChatSyncApp(config, api=api)
    await chat_app.start()
    yield chat_app
    await chat_app.stop()


async def test_open_chat(app):
    session = await app.open_chat(CHAT_ID)
    assert session.display_name == "Team"
    assert app.sessions.active is session


async def test_stop_closes_open_chat(config, api):
    chat_app = ChatSyncApp(config, api=api)
    await chat_app.start()
    session = await chat_app.open_chat(CHAT_ID)

    await chat_app.stop()

    assert session.closed
    assert not chat_app.scheduler.running


async def test_list_chats(app):
    chats = await app.list_chats()
    assert [c.id for c in chats] == [CHAT_ID]


async def test_create_direct_chat(app, api):
    chat = await app.create_chat([OTHER_ID, USER_ID])
    assert not chat.is_group
    assert api.called("create_chat") == [((OTHER_ID,), False, None)]


async def test_direct_chat_needs_exactly_one_other_user(app, api):
    with pytest.raises(InvalidOperationError):
        await app.create_chat([OTHER_ID, THIRD_ID])
    with pytest.raises(InvalidOperationError):
        await app.create_chat([USER_ID])
    assert api.called("create_chat") == []


async def test_create_group_chat(app):
    chat = await app.create_chat([OTHER_ID, THIRD_ID], is_group=True, name="Project")
    assert chat.is_admin(USER_ID)
    assert chat.display_name(USER_ID) == "Project"


async def test_auth_failure_is_reported(app, api):
    recorder = EventRecorder(app.events)
    api.failures["list_chats"] = AuthenticationRequired("token expired")

    with pytest.raises(AuthenticationRequired):
        await app.list_chats()
    assert recorder.of(ChatEvent.AUTH_REQUIRED) == ["token expired"]


async def test_get_chat(app, api):
    chat = await app.get_chat(CHAT_ID)
    assert chat.participant_ids() == [USER_ID, OTHER_ID, THIRD_ID]
    assert api.called("get_chat") == [(CHAT_ID,)]
