"""Optimistic send pipeline: placeholder first, server record or FAILED after."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from chat_sync.core.errors import AuthenticationRequired, ChatError, InvalidOperationError
from chat_sync.core.models import (
    Attachment,
    Draft,
    MediaDraft,
    Message,
    TextDraft,
    UserSnapshot,
    make_draft,
)
from chat_sync.core.types import MEDIA_TYPES, MessageStatus, MessageType
from chat_sync.events import ChatEvent
from chat_sync.log import get_logger

if TYPE_CHECKING:
    from chat_sync.chat.session import ChatSession

logger = get_logger(__name__)


class SendPipeline:
    """Sends messages for one chat session.

    The placeholder is visible immediately with status SENDING. The drafts of
    unconfirmed placeholders are kept so a FAILED message can be resent with
    its original content or upload reference.
    """

    def __init__(self, session: ChatSession):
        self._session = session
        self._drafts: dict[str, Draft] = {}
        self.reply_target: Optional[Message] = None

    def reply_to(self, message_id: str) -> Message:
        self.reply_target = self._session.store.require(message_id)
        return self.reply_target

    def cancel_reply(self) -> None:
        self.reply_target = None

    def forget(self, message_id: str) -> None:
        """Drop the draft of a placeholder that was discarded locally."""
        self._drafts.pop(message_id, None)

    async def send(
        self,
        content: Optional[str],
        message_type: MessageType | str = MessageType.TEXT,
        reply_to: Optional[str] = None,
    ) -> Message:
        """Send a new message; returns the confirmed record or the FAILED placeholder.

        Raises InvalidMessageError before any network call for empty text or a
        media message without a file reference.
        """
        parent_id = reply_to or (self.reply_target.id if self.reply_target else None)
        draft = make_draft(content, message_type, parent_id)
        self.reply_target = None
        return await self._dispatch(draft)

    async def resend(self, message_id: str) -> Message:
        store = self._session.store
        failed = store.require(message_id)
        if failed.status != MessageStatus.FAILED:
            raise InvalidOperationError(f"Only failed messages can be resent (status {failed.status})")

        draft = self._drafts.pop(message_id, None) or self._draft_from(failed)
        store.remove(message_id)
        logger.info("message_resend", chat_id=self._session.chat_id, failed_id=message_id)
        return await self._dispatch(draft)

    @staticmethod
    def _draft_from(message: Message) -> Draft:
        if message.type == MessageType.TEXT and message.content:
            return TextDraft(text=message.content, parent_id=message.parent_id)
        if message.type in MEDIA_TYPES and message.attachments:
            return MediaDraft(type=message.type, source=message.attachments[0].url, parent_id=message.parent_id)
        raise InvalidOperationError(f"Message {message.id} has nothing to resend")

    def _placeholder(self, temp_id: str, draft: Draft) -> Message:
        ctx = self._session.ctx
        now = datetime.now(timezone.utc)
        attachments: tuple[Attachment, ...] = ()
        content = None
        match draft:
            case TextDraft():
                content = draft.text
            case MediaDraft():
                attachments = (
                    Attachment(
                        id=f"{temp_id}-attachment",
                        url=draft.source,
                        kind=draft.kind,
                        message_id=temp_id,
                    ),
                )
        return Message(
            id=temp_id,
            chat_id=self._session.chat_id,
            sender_id=ctx.user_id,
            type=draft.type,
            status=MessageStatus.SENDING,
            created_at=now,
            updated_at=now,
            content=content,
            parent_id=draft.parent_id,
            attachments=attachments,
            sender=UserSnapshot(id=ctx.user_id, fullname=ctx.fullname),
        )

    async def _dispatch(self, draft: Draft) -> Message:
        session = self._session
        store = session.store
        temp_id = store.new_temporary_id()
        placeholder = self._placeholder(temp_id, draft)
        store.append_temporary(placeholder)
        self._drafts[temp_id] = draft
        session.changed()
        logger.debug("message_sending", chat_id=session.chat_id, temp_id=temp_id, type=str(draft.type))

        try:
            confirmed = await session.api.send_message(session.ctx, session.chat_id, draft)
        except AuthenticationRequired as e:
            self._fail(temp_id, placeholder)
            session.handle_fatal(e)
            raise
        except ChatError as e:
            logger.warning("message_send_failed", chat_id=session.chat_id, temp_id=temp_id, error=str(e))
            return self._fail(temp_id, placeholder)

        if session.closed:
            logger.info("send_response_discarded", chat_id=session.chat_id, message_id=confirmed.id)
            return confirmed
        if not session.accepts(confirmed.chat_id):
            logger.warning(
                "send_response_chat_mismatch",
                chat_id=session.chat_id,
                response_chat_id=confirmed.chat_id,
            )
            return self._fail(temp_id, placeholder)

        confirmed = replace(confirmed, status=MessageStatus.SENT)
        self._drafts.pop(temp_id, None)
        store.confirm(temp_id, confirmed)
        session.changed()
        session.events.emit(ChatEvent.SCROLL_TO_LATEST, confirmed.id)
        logger.info("message_sent", chat_id=session.chat_id, message_id=confirmed.id, temp_id=temp_id)
        return confirmed

    def _fail(self, temp_id: str, placeholder: Message) -> Message:
        session = self._session
        if temp_id in session.store:
            failed = session.store.update(temp_id, status=MessageStatus.FAILED)
        else:
            failed = replace(placeholder, status=MessageStatus.FAILED)
        session.changed()
        session.events.emit(ChatEvent.SCROLL_TO_LATEST, temp_id)
        return failed
