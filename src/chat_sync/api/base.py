"""Abstract REST collaborator interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from chat_sync.core.context import SessionContext
from chat_sync.core.models import Chat, Draft, Message, Reaction
from chat_sync.core.types import ReactionType


class ChatApi(ABC):
    """Logical endpoints the chat core consumes.

    Every call receives the caller's :class:`SessionContext` explicitly.
    Implementations raise :mod:`chat_sync.core.errors` exceptions on failure.
    """

    async def start(self) -> None:
        """Open transport resources."""

    async def stop(self) -> None:
        """Release transport resources."""

    # Chats

    @abstractmethod
    async def list_chats(self, ctx: SessionContext) -> list[Chat]:
        ...

    @abstractmethod
    async def get_chat(self, ctx: SessionContext, chat_id: str) -> Chat:
        ...

    @abstractmethod
    async def create_chat(
        self,
        ctx: SessionContext,
        user_ids: list[str],
        is_group: bool = False,
        name: Optional[str] = None,
    ) -> Chat:
        ...

    @abstractmethod
    async def delete_chat(self, ctx: SessionContext, chat_id: str) -> None:
        ...

    @abstractmethod
    async def add_participants(self, ctx: SessionContext, chat_id: str, user_ids: list[str]) -> None:
        ...

    @abstractmethod
    async def remove_participant(self, ctx: SessionContext, chat_id: str, user_id: str) -> None:
        ...

    # Messages

    @abstractmethod
    async def list_messages(self, ctx: SessionContext, chat_id: str) -> list[Message]:
        ...

    @abstractmethod
    async def send_message(self, ctx: SessionContext, chat_id: str, draft: Draft) -> Message:
        """Create a message: JSON body for text, multipart upload for media."""
        ...

    @abstractmethod
    async def edit_message(self, ctx: SessionContext, message_id: str, content: str) -> Optional[Message]:
        ...

    @abstractmethod
    async def delete_message(self, ctx: SessionContext, message_id: str, for_everyone: bool) -> None:
        ...

    @abstractmethod
    async def mark_read(self, ctx: SessionContext, message_id: str) -> None:
        ...

    @abstractmethod
    async def pin_message(self, ctx: SessionContext, message_id: str, is_pinned: bool) -> None:
        ...

    @abstractmethod
    async def send_typing(self, ctx: SessionContext, chat_id: str, is_typing: bool) -> None:
        ...

    # Reactions

    @abstractmethod
    async def react(self, ctx: SessionContext, message_id: str, reaction_type: ReactionType) -> Optional[Reaction]:
        """Toggle a reaction; returns the stored reaction, or None if it was removed."""
        ...

    @abstractmethod
    async def remove_reaction(self, ctx: SessionContext, reaction_id: str) -> None:
        ...
