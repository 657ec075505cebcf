"""Group membership management with admin gating."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from chat_sync.core.errors import (
    AuthenticationRequired,
    ChatError,
    InvalidOperationError,
    PermissionDeniedError,
)
from chat_sync.core.models import Chat, ChatParticipant, UserSnapshot
from chat_sync.events import ChatEvent
from chat_sync.log import get_logger

if TYPE_CHECKING:
    from chat_sync.chat.session import ChatSession

logger = get_logger(__name__)

MIN_GROUP_SIZE = 2


class RosterManager:
    """Adds and removes participants of the session's chat.

    Only the group admin may change membership. Changes show up immediately;
    the chat is re-fetched afterwards to replace placeholders with real user
    data, or to undo the change when the server rejected it.
    """

    def __init__(self, session: ChatSession, placeholder_name: str = "Loading..."):
        self._session = session
        self._placeholder_name = placeholder_name

    def _require_admin(self) -> Chat:
        chat = self._session.chat
        if chat is None:
            raise InvalidOperationError("Chat details are not loaded")
        if not chat.is_group:
            raise PermissionDeniedError("Participants can only be managed in group chats")
        if not chat.is_admin(self._session.ctx.user_id):
            raise PermissionDeniedError("Only the group admin can manage participants")
        return chat

    def _set_roster(self, chat: Chat) -> None:
        self._session.chat = chat
        self._session.events.emit(ChatEvent.ROSTER_CHANGED, chat)

    async def add_participants(self, user_ids: list[str]) -> bool:
        session = self._session
        chat = self._require_admin()
        present = set(chat.participant_ids())
        new_ids = [uid for uid in dict.fromkeys(user_ids) if uid not in present]
        if not new_ids:
            raise InvalidOperationError("No new participants to add")

        now = datetime.now(timezone.utc)
        placeholders = tuple(
            ChatParticipant(
                user_id=uid,
                chat_id=chat.id,
                joined_at=now,
                user=UserSnapshot(id=uid, fullname=self._placeholder_name),
                pending=True,
            )
            for uid in new_ids
        )
        self._set_roster(replace(chat, users=chat.users + placeholders))

        try:
            await session.api.add_participants(session.ctx, chat.id, new_ids)
        except ChatError as e:
            if isinstance(e, AuthenticationRequired):
                session.handle_fatal(e)
                raise
            logger.warning("participants_add_failed", chat_id=chat.id, error=str(e))
            session.events.notify("Error", "Failed to add participants", level="error")
            await session.refresh_chat()
            return False

        logger.info("participants_added", chat_id=chat.id, count=len(new_ids))
        session.events.notify(
            "Participants added", f"{len(new_ids)} new participant(s) added to the chat"
        )
        await session.refresh_chat()
        return True

    async def remove_participant(self, user_id: str) -> bool:
        session = self._session
        chat = self._require_admin()
        if user_id == session.ctx.user_id:
            raise InvalidOperationError("The admin cannot remove themself")
        if user_id not in chat.participant_ids():
            raise InvalidOperationError(f"User {user_id} is not a participant")
        if len(chat.users) - 1 < MIN_GROUP_SIZE:
            raise InvalidOperationError("A group chat needs at least two participants")

        self._set_roster(replace(chat, users=tuple(p for p in chat.users if p.user_id != user_id)))

        try:
            await session.api.remove_participant(session.ctx, chat.id, user_id)
        except ChatError as e:
            if isinstance(e, AuthenticationRequired):
                session.handle_fatal(e)
                raise
            logger.warning("participant_remove_failed", chat_id=chat.id, user_id=user_id, error=str(e))
            session.events.notify("Error", "Failed to remove participant", level="error")
            await session.refresh_chat()
            return False

        logger.info("participant_removed", chat_id=chat.id, user_id=user_id)
        session.events.notify("Participant removed", "Participant has been removed from the chat")
        return True

    async def delete_chat(self) -> bool:
        session = self._session
        try:
            await session.api.delete_chat(session.ctx, session.chat_id)
        except ChatError as e:
            if isinstance(e, AuthenticationRequired):
                session.handle_fatal(e)
                raise
            logger.warning("chat_delete_failed", chat_id=session.chat_id, error=str(e))
            session.events.notify("Error", "Failed to delete chat", level="error")
            return False

        logger.info("chat_deleted", chat_id=session.chat_id)
        await session.close()
        session.events.notify("Chat deleted", "The conversation has been deleted")
        session.events.emit(ChatEvent.CHAT_DELETED, session.chat_id)
        return True
