"""Session manager tracking the single chat that is currently open."""

from __future__ import annotations

from typing import Optional

from chat_sync.api.base import ChatApi
from chat_sync.chat.session import ChatSession
from chat_sync.config import SyncConfig
from chat_sync.core.context import SessionContext
from chat_sync.events import EventBus
from chat_sync.log import get_logger
from chat_sync.services.scheduler import SchedulerService

logger = get_logger(__name__)


class SessionManager:
    """Opens chat sessions for one user; switching chats closes the previous one.

    Stores of different chats never overlap, and late responses for the
    previous chat are dropped because its session is closed.
    """

    def __init__(
        self,
        ctx: SessionContext,
        api: ChatApi,
        scheduler: SchedulerService,
        sync: SyncConfig,
        events: Optional[EventBus] = None,
    ):
        self._ctx = ctx
        self._api = api
        self._scheduler = scheduler
        self._sync = sync
        self.events = events or EventBus()
        self._active: Optional[ChatSession] = None

    @property
    def active(self) -> Optional[ChatSession]:
        if self._active is not None and self._active.closed:
            self._active = None
        return self._active

    async def open(self, chat_id: str) -> ChatSession:
        """Open ``chat_id``, or return it if it is already the active chat."""
        current = self.active
        if current is not None:
            if current.chat_id == chat_id:
                return current
            await current.close()
            logger.info("chat_switched", from_chat_id=current.chat_id, to_chat_id=chat_id)

        session = ChatSession(
            chat_id,
            ctx=self._ctx,
            api=self._api,
            scheduler=self._scheduler,
            sync=self._sync,
            events=self.events,
        )
        self._active = session
        await session.open()
        return session

    async def close(self) -> None:
        if self._active is not None:
            await self._active.close()
            self._active = None
