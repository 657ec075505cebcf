"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

from typing import Awaitable, Optional, TypeVar

from chat_sync.api.base import ChatApi
from chat_sync.api.http import HttpChatApi
from chat_sync.chat.session import ChatSession
from chat_sync.config import AppConfig
from chat_sync.core.context import SessionContext, TokenProvider, static_token
from chat_sync.core.errors import AuthenticationRequired, InvalidOperationError
from chat_sync.core.models import Chat
from chat_sync.core.session import SessionManager
from chat_sync.events import ChatEvent, EventBus
from chat_sync.log import get_logger
from chat_sync.services.scheduler import SchedulerService

logger = get_logger(__name__)

T = TypeVar("T")


class ChatSyncApp:
    """Top-level client: one user, one REST collaborator, one open chat at a time."""

    def __init__(
        self,
        config: AppConfig,
        token_provider: Optional[TokenProvider] = None,
        api: Optional[ChatApi] = None,
    ):
        self.config = config
        self.ctx = SessionContext(
            user_id=config.user.id,
            token_provider=token_provider or static_token(config.api.token),
            fullname=config.user.fullname,
        )
        self.api = api or HttpChatApi(config.api)
        self.scheduler = SchedulerService()
        self.events = EventBus()
        self.sessions = SessionManager(self.ctx, self.api, self.scheduler, config.sync, self.events)

    async def start(self) -> None:
        """Initialize transport and timers."""
        await self.api.start()
        await self.scheduler.start()
        logger.info("chat_sync_started", user_id=self.ctx.user_id)

    async def stop(self) -> None:
        """Close the open chat and release resources."""
        await self.sessions.close()
        await self.scheduler.stop()
        await self.api.stop()
        logger.info("chat_sync_stopped")

    async def open_chat(self, chat_id: str) -> ChatSession:
        return await self.sessions.open(chat_id)

    async def _directory_call(self, call: Awaitable[T]) -> T:
        try:
            return await call
        except AuthenticationRequired as e:
            self.events.emit(ChatEvent.AUTH_REQUIRED, str(e))
            raise

    async def list_chats(self) -> list[Chat]:
        return await self._directory_call(self.api.list_chats(self.ctx))

    async def get_chat(self, chat_id: str) -> Chat:
        return await self._directory_call(self.api.get_chat(self.ctx, chat_id))

    async def create_chat(
        self, user_ids: list[str], is_group: bool = False, name: Optional[str] = None
    ) -> Chat:
        """Create a chat with ``user_ids`` (the current user joins implicitly)."""
        members = [uid for uid in dict.fromkeys(user_ids) if uid != self.ctx.user_id]
        if not is_group and len(members) != 1:
            raise InvalidOperationError("A direct chat needs exactly one other participant")
        if is_group and not members:
            raise InvalidOperationError("A group chat needs at least one other participant")
        chat = await self._directory_call(
            self.api.create_chat(self.ctx, members, is_group=is_group, name=name)
        )
        logger.info("chat_created", chat_id=chat.id, is_group=chat.is_group, members=len(members))
        return chat
