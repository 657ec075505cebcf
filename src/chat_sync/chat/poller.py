"""Periodic message re-fetch for the open chat."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Optional

from chat_sync.log import get_logger
from chat_sync.services.scheduler import SchedulerService

if TYPE_CHECKING:
    from chat_sync.chat.session import ChatSession

logger = get_logger(__name__)


class MessagePoller:
    """Keeps a session's store eventually consistent without a push channel.

    Fetches once on start, then on every interval tick until stopped. Ticks
    that land while a fetch is outstanding are skipped by the session's
    single-flight guard and by the scheduler's one-instance limit.
    """

    def __init__(self, session: ChatSession, scheduler: SchedulerService, interval: float = 5.0):
        self._session = session
        self._scheduler = scheduler
        self._interval = interval
        self._job_id: Optional[str] = None
        self.ticks = 0

    @property
    def active(self) -> bool:
        return self._job_id is not None

    async def start(self) -> None:
        if self._job_id is not None:
            return
        await self.poll_once()
        if self._session.closed:
            return
        self._job_id = self._scheduler.add_interval_job(
            self._interval,
            self.poll_once,
            job_id=f"poll-{self._session.chat_id}-{uuid.uuid4().hex[:8]}",
        )
        logger.info("polling_started", chat_id=self._session.chat_id, interval=self._interval)

    def stop(self) -> None:
        if self._job_id is None:
            return
        self._scheduler.remove_job(self._job_id)
        self._job_id = None
        logger.info("polling_stopped", chat_id=self._session.chat_id)

    async def poll_once(self) -> bool:
        """Run one synchronization pass. Failures are logged by the session and retried next tick."""
        if self._session.closed:
            self.stop()
            return False
        self.ticks += 1
        return await self._session.refresh_messages()
