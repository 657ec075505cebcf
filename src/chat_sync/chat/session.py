"""One open chat: store, pipelines, poller and roster wired together."""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine, Iterable, Optional

from chat_sync.api.base import ChatApi
from chat_sync.chat.actions import MessageActions
from chat_sync.chat.poller import MessagePoller
from chat_sync.chat.roster import RosterManager
from chat_sync.chat.sender import SendPipeline
from chat_sync.chat.store import MessageStore
from chat_sync.config import SyncConfig
from chat_sync.core.context import SessionContext
from chat_sync.core.errors import AuthenticationRequired, ChatError, InvalidOperationError
from chat_sync.core.models import Chat, Message
from chat_sync.core.types import MessageType, ReactionType
from chat_sync.events import ChatEvent, EventBus
from chat_sync.log import get_logger
from chat_sync.services.scheduler import SchedulerService

logger = get_logger(__name__)


class ChatSession:
    """State and operations of the chat currently shown to the user.

    Responses are only applied while the session is open and only when they
    belong to this session's chat; anything arriving after a close or for a
    different chat id is discarded.
    """

    def __init__(
        self,
        chat_id: str,
        ctx: SessionContext,
        api: ChatApi,
        scheduler: SchedulerService,
        sync: Optional[SyncConfig] = None,
        events: Optional[EventBus] = None,
    ):
        self.chat_id = chat_id
        self.ctx = ctx
        self.api = api
        self.events = events or EventBus()
        self._sync = sync or SyncConfig()
        self.store = MessageStore(chat_id, self._sync.temp_id_prefix)
        self.chat: Optional[Chat] = None
        self.sender = SendPipeline(self)
        self.actions = MessageActions(self)
        self.roster = RosterManager(self, self._sync.placeholder_name)
        self.poller = MessagePoller(self, scheduler, self._sync.poll_interval)
        self._opened = False
        self._closed = False
        self._fetching = False
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def messages(self) -> list[Message]:
        return self.store.messages

    @property
    def display_name(self) -> str:
        return self.chat.display_name(self.ctx.user_id) if self.chat else "Chat"

    @property
    def is_admin(self) -> bool:
        return self.chat is not None and self.chat.is_admin(self.ctx.user_id)

    def accepts(self, chat_id: str) -> bool:
        """Whether a response for ``chat_id`` may still be applied."""
        return not self._closed and chat_id == self.chat_id

    def changed(self) -> None:
        if self._closed:
            return
        self.events.emit(ChatEvent.MESSAGES_CHANGED, self.store.messages)

    def ensure_open(self) -> None:
        if self._closed:
            raise InvalidOperationError(f"Chat session {self.chat_id} is closed")

    def handle_fatal(self, error: AuthenticationRequired) -> None:
        """Stop everything and ask the host application to re-authenticate."""
        logger.error("authentication_required", chat_id=self.chat_id, error=str(error))
        self._shutdown()
        self.events.emit(ChatEvent.AUTH_REQUIRED, str(error))

    # Lifecycle

    async def open(self) -> None:
        self.ensure_open()
        if self._opened:
            return
        self._opened = True
        await self.refresh_chat()
        if not self._closed:
            await self.poller.start()
        logger.info("chat_opened", chat_id=self.chat_id, messages=len(self.store))

    async def close(self) -> None:
        if self._closed:
            return
        self._shutdown()
        logger.info("chat_closed", chat_id=self.chat_id)

    def _shutdown(self) -> None:
        self._closed = True
        self.poller.stop()

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Run fire-and-forget work, keeping a reference until it finishes."""
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_idle(self) -> None:
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # Synchronization

    async def refresh_messages(self) -> bool:
        """Fetch all messages and merge them. Single-flight; never raises on network errors."""
        if self._closed:
            return False
        if self._fetching:
            logger.debug("message_fetch_skipped", chat_id=self.chat_id)
            return False

        self._fetching = True
        try:
            messages = await self.api.list_messages(self.ctx, self.chat_id)
        except AuthenticationRequired as e:
            self.handle_fatal(e)
            return False
        except ChatError as e:
            logger.warning("message_fetch_failed", chat_id=self.chat_id, error=str(e))
            return False
        finally:
            self._fetching = False

        return self.apply_snapshot(messages)

    def apply_snapshot(self, messages: list[Message]) -> bool:
        """Merge an authoritative message list, whatever transport delivered it."""
        if self._closed:
            logger.info("snapshot_discarded", chat_id=self.chat_id, reason="closed")
            return False
        foreign = {m.chat_id for m in messages if m.chat_id != self.chat_id}
        if foreign:
            logger.warning("snapshot_discarded", chat_id=self.chat_id, foreign_chat_ids=sorted(foreign))
            return False

        self.store.replace_all(messages)
        self.actions.settle_receipts(messages)
        self.changed()

        if self._sync.mark_read:
            unread = self.store.unread_for(self.ctx.user_id)
            if unread:
                self.spawn(self.actions.mark_read([m.id for m in unread]))
        return True

    async def refresh_chat(self) -> Optional[Chat]:
        try:
            chat = await self.api.get_chat(self.ctx, self.chat_id)
        except AuthenticationRequired as e:
            self.handle_fatal(e)
            return None
        except ChatError as e:
            logger.warning("chat_fetch_failed", chat_id=self.chat_id, error=str(e))
            return None

        if not self.accepts(chat.id):
            logger.info("chat_response_discarded", chat_id=self.chat_id, response_chat_id=chat.id)
            return None
        self.chat = chat
        self.events.emit(ChatEvent.ROSTER_CHANGED, chat)
        return chat

    # Operations

    async def send(
        self,
        content: Optional[str],
        message_type: MessageType | str = MessageType.TEXT,
        reply_to: Optional[str] = None,
    ) -> Message:
        self.ensure_open()
        return await self.sender.send(content, message_type, reply_to)

    async def resend(self, message_id: str) -> Message:
        self.ensure_open()
        return await self.sender.resend(message_id)

    def reply_to(self, message_id: str) -> Message:
        return self.sender.reply_to(message_id)

    def cancel_reply(self) -> None:
        self.sender.cancel_reply()

    async def react(self, message_id: str, reaction_type: ReactionType | str) -> Message:
        self.ensure_open()
        return await self.actions.react(message_id, reaction_type)

    async def remove_reaction(self, reaction_id: str) -> bool:
        self.ensure_open()
        return await self.actions.remove_reaction(reaction_id)

    async def mark_read(self, message_ids: Iterable[str]) -> int:
        return await self.actions.mark_read(message_ids)

    async def pin(self, message_id: str, is_pinned: bool = True) -> bool:
        self.ensure_open()
        return await self.actions.pin(message_id, is_pinned)

    async def edit(self, message_id: str, new_content: str) -> bool:
        self.ensure_open()
        return await self.actions.edit(message_id, new_content)

    async def delete(self, message_id: str, for_everyone: bool = False) -> bool:
        self.ensure_open()
        return await self.actions.delete(message_id, for_everyone)

    async def add_participants(self, user_ids: list[str]) -> bool:
        self.ensure_open()
        return await self.roster.add_participants(user_ids)

    async def remove_participant(self, user_id: str) -> bool:
        self.ensure_open()
        return await self.roster.remove_participant(user_id)

    async def delete_chat(self) -> bool:
        self.ensure_open()
        return await self.roster.delete_chat()

    def notify_typing(self, is_typing: bool) -> asyncio.Task[Any]:
        return self.spawn(self._send_typing(is_typing))

    async def _send_typing(self, is_typing: bool) -> None:
        try:
            await self.api.send_typing(self.ctx, self.chat_id, is_typing)
        except ChatError as e:
            logger.debug("typing_status_failed", chat_id=self.chat_id, error=str(e))
