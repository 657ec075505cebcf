"""Per-message mutations: reactions, read receipts, pin, edit and delete.

Every operation changes the store first and then talks to the server.
Reactions recover through the next re-fetch; pins are reverted explicitly;
edits and deletes re-fetch the chat's messages on failure.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import TYPE_CHECKING, Iterable

from chat_sync.core.errors import (
    AuthenticationRequired,
    ChatError,
    InvalidMessageError,
    InvalidOperationError,
)
from chat_sync.core.models import Message, Reaction, UserSnapshot
from chat_sync.core.types import MessageStatus, ReactionType
from chat_sync.log import get_logger

if TYPE_CHECKING:
    from chat_sync.chat.session import ChatSession

logger = get_logger(__name__)


def toggle_reaction(
    message: Message,
    user: UserSnapshot,
    reaction_type: ReactionType,
    placeholder_id: str,
) -> Message:
    """Apply the one-reaction-per-user rule.

    Same type removes the user's reaction, a different type replaces it,
    no reaction adds a placeholder one.
    """
    existing = message.reaction_by(user.id)
    if existing is not None and existing.type == reaction_type:
        reactions = tuple(r for r in message.reactions if r.user_id != user.id)
    elif existing is not None:
        reactions = tuple(
            replace(r, type=reaction_type) if r.user_id == user.id else r for r in message.reactions
        )
    else:
        reactions = message.reactions + (
            Reaction(
                id=placeholder_id,
                type=reaction_type,
                user_id=user.id,
                message_id=message.id,
                user=user,
            ),
        )
    return replace(message, reactions=reactions)


class MessageActions:
    """Optimistic message mutations for one chat session."""

    def __init__(self, session: ChatSession):
        self._session = session
        # Read confirmations accepted by the server but not yet visible in a snapshot.
        self._acknowledged: set[str] = set()

    def _server_message(self, message_id: str) -> Message:
        store = self._session.store
        message = store.require(message_id)
        if store.is_temporary(message_id):
            raise InvalidOperationError(f"Message {message_id} is not confirmed yet")
        return message

    def _is_fatal(self, error: ChatError) -> bool:
        if isinstance(error, AuthenticationRequired):
            self._session.handle_fatal(error)
            return True
        return False

    async def react(self, message_id: str, reaction_type: ReactionType | str) -> Message:
        session = self._session
        store = session.store
        reaction_type = ReactionType(reaction_type)
        message = self._server_message(message_id)

        user = UserSnapshot(id=session.ctx.user_id, fullname=session.ctx.fullname)
        updated = toggle_reaction(message, user, reaction_type, store.new_temporary_id())
        store.update(message_id, reactions=updated.reactions)
        session.changed()

        try:
            reaction = await session.api.react(session.ctx, message_id, reaction_type)
        except ChatError as e:
            if self._is_fatal(e):
                raise
            logger.warning("reaction_failed", message_id=message_id, error=str(e))
            await session.refresh_messages()
            return store.get(message_id) or updated

        current = store.get(message_id)
        if reaction is not None and current is not None and not session.closed:
            mine = current.reaction_by(session.ctx.user_id)
            if mine is not None and mine.type == reaction.type:
                store.update(
                    message_id,
                    reactions=tuple(reaction if r.user_id == mine.user_id else r for r in current.reactions),
                )
                session.changed()
        return store.get(message_id) or updated

    async def remove_reaction(self, reaction_id: str) -> bool:
        session = self._session
        store = session.store
        found = False
        for message in store:
            if any(r.id == reaction_id for r in message.reactions):
                store.update(message.id, reactions=tuple(r for r in message.reactions if r.id != reaction_id))
                found = True
        if found:
            session.changed()

        if store.is_temporary(reaction_id):
            # Never stored under this id; the next snapshot settles it.
            return found

        try:
            await session.api.remove_reaction(session.ctx, reaction_id)
        except ChatError as e:
            if self._is_fatal(e):
                raise
            logger.warning("reaction_remove_failed", reaction_id=reaction_id, error=str(e))
        return found

    async def mark_read(self, message_ids: Iterable[str]) -> int:
        """Confirm reading of others' messages; best effort, returns the number confirmed."""
        session = self._session
        store = session.store
        user_id = session.ctx.user_id

        targets: list[str] = []
        for message_id in message_ids:
            message = store.get(message_id)
            if (
                message is None
                or store.is_temporary(message_id)
                or message.sender_id == user_id
                or message.is_read_by(user_id)
                or message_id in self._acknowledged
            ):
                continue
            targets.append(message_id)
        if not targets:
            return 0

        self._acknowledged.update(targets)
        results = await asyncio.gather(
            *(session.api.mark_read(session.ctx, message_id) for message_id in targets),
            return_exceptions=True,
        )
        confirmed = 0
        for message_id, result in zip(targets, results):
            if isinstance(result, BaseException):
                self._acknowledged.discard(message_id)
                logger.debug("mark_read_failed", message_id=message_id, error=str(result))
            else:
                confirmed += 1
        return confirmed

    def settle_receipts(self, messages: Iterable[Message]) -> None:
        """Forget confirmations that a snapshot shows as read, or no longer lists."""
        if not self._acknowledged:
            return
        user_id = self._session.ctx.user_id
        listed = {m.id: m for m in messages}
        self._acknowledged = {
            message_id
            for message_id in self._acknowledged
            if message_id in listed and not listed[message_id].is_read_by(user_id)
        }

    async def pin(self, message_id: str, is_pinned: bool) -> bool:
        session = self._session
        store = session.store
        previous = self._server_message(message_id).is_pinned

        store.set_overlay(message_id, is_pinned=is_pinned)
        session.changed()
        try:
            await session.api.pin_message(session.ctx, message_id, is_pinned)
        except ChatError as e:
            store.clear_overlay(message_id, "is_pinned")
            if message_id in store:
                store.update(message_id, is_pinned=previous)
            session.changed()
            if self._is_fatal(e):
                raise
            logger.warning("pin_failed", message_id=message_id, is_pinned=is_pinned, error=str(e))
            session.events.notify(
                "Error", f"Failed to {'pin' if is_pinned else 'unpin'} message", level="error"
            )
            return False

        store.clear_overlay(message_id, "is_pinned")
        return True

    async def edit(self, message_id: str, new_content: str) -> bool:
        session = self._session
        store = session.store
        if not new_content or not new_content.strip():
            raise InvalidMessageError("Edited content must not be empty")
        message = self._server_message(message_id)
        if message.deleted_for_everyone:
            raise InvalidOperationError(f"Message {message_id} was deleted")

        store.set_overlay(message_id, content=new_content, status=MessageStatus.EDITED)
        session.changed()
        try:
            updated = await session.api.edit_message(session.ctx, message_id, new_content)
        except ChatError as e:
            store.clear_overlay(message_id, "content", "status")
            if self._is_fatal(e):
                raise
            logger.warning("edit_failed", message_id=message_id, error=str(e))
            session.events.notify("Error", "Failed to edit message", level="error")
            await session.refresh_messages()
            return False

        store.clear_overlay(message_id, "content", "status")
        if updated is not None and not session.closed and session.accepts(updated.chat_id):
            store.upsert(replace(updated, status=MessageStatus.EDITED))
            session.changed()
        return True

    async def delete(self, message_id: str, for_everyone: bool = False) -> bool:
        session = self._session
        store = session.store
        store.require(message_id)

        if store.is_temporary(message_id):
            if for_everyone:
                raise InvalidOperationError(f"Message {message_id} is not confirmed yet")
            store.remove(message_id)
            session.sender.forget(message_id)
            session.changed()
            return True

        if for_everyone:
            store.set_overlay(message_id, deleted_for_everyone=True, content=None, attachments=())
        else:
            store.hide(message_id)
        session.changed()

        try:
            await session.api.delete_message(session.ctx, message_id, for_everyone)
        except ChatError as e:
            if for_everyone:
                store.clear_overlay(message_id)
            else:
                store.unhide(message_id)
            if self._is_fatal(e):
                raise
            logger.warning("delete_failed", message_id=message_id, for_everyone=for_everyone, error=str(e))
            session.events.notify("Error", "Failed to delete message", level="error")
            await session.refresh_messages()
            return False

        if for_everyone:
            store.clear_overlay(message_id, "deleted_for_everyone", "content", "attachments")
        logger.info("message_deleted", message_id=message_id, for_everyone=for_everyone)
        return True
