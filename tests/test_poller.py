"""Tests for the periodic synchronization poller and scheduler service."""

import asyncio

from chat_sync.chat.session import ChatSession
from chat_sync.config import SyncConfig
from tests.factories import CHAT_ID, make_message, settle


async def test_start_fetches_immediately_and_schedules(session, api, scheduler):
    assert len(api.called("list_messages")) == 1
    assert session.poller.ticks == 1
    (job,) = scheduler.list_jobs()
    assert job["id"].startswith(f"poll-{CHAT_ID}-")


async def test_stop_removes_job(session, scheduler):
    await session.close()
    assert not session.poller.active
    assert scheduler.list_jobs() == []


async def test_tick_after_close_does_nothing(session, api):
    await session.close()
    assert not await session.poller.poll_once()
    assert len(api.called("list_messages")) == 1


async def test_tick_during_outstanding_fetch_is_skipped(session, api):
    gate = asyncio.Event()
    api.gates["list_messages"] = gate
    first = asyncio.create_task(session.poller.poll_once())
    await settle()

    assert not await session.poller.poll_once()
    assert len(api.called("list_messages")) == 2

    gate.set()
    assert await first


async def test_poll_picks_up_new_messages(session, api):
    api.messages[CHAT_ID].append(make_message("m3", minutes=5, content="new"))
    assert await session.poller.poll_once()
    assert [m.id for m in session.messages] == ["m1", "m2", "m3"]


async def test_interval_ticks_until_closed(ctx, api, scheduler):
    session = ChatSession(
        CHAT_ID, ctx=ctx, api=api, scheduler=scheduler, sync=SyncConfig(poll_interval=0.05, mark_read=False)
    )
    await session.open()
    await asyncio.sleep(0.4)
    await session.close()

    fetched = len(api.called("list_messages"))
    assert fetched >= 3

    await asyncio.sleep(0.15)
    assert len(api.called("list_messages")) == fetched


async def test_scheduler_remove_unknown_job(scheduler):
    assert not scheduler.remove_job("missing")
    assert scheduler.running


async def test_scheduler_stop_takes_effect_and_repeats_safely(scheduler):
    await scheduler.stop()
    assert not scheduler.running
    await scheduler.stop()
    assert not scheduler.running
