"""In-memory message store for one open chat, with snapshot reconciliation."""

from __future__ import annotations

import uuid
from dataclasses import replace
from typing import Any, Iterator

from chat_sync.core.errors import MessageNotFoundError
from chat_sync.core.models import Message
from chat_sync.core.types import MessageType, later_status
from chat_sync.log import get_logger

logger = get_logger(__name__)


class MessageStore:
    """Time-ordered messages of a single chat.

    Besides the visible list the store tracks local state that a server
    snapshot must not clobber:

    - overlays: fields set optimistically by in-flight mutations, keyed by
      message id and re-applied on top of every snapshot until cleared;
    - unsynced ids: messages confirmed by a direct response that no snapshot
      has contained yet;
    - hidden ids: messages deleted "for me" in this session.

    Temporary (unconfirmed) messages always sit after confirmed ones.
    """

    def __init__(self, chat_id: str, temp_id_prefix: str = "temp-"):
        self.chat_id = chat_id
        self._temp_prefix = temp_id_prefix
        self._messages: list[Message] = []
        self._overlays: dict[str, dict[str, Any]] = {}
        self._unsynced: set[str] = set()
        self._hidden: set[str] = set()

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __contains__(self, message_id: object) -> bool:
        return any(m.id == message_id for m in self._messages)

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def new_temporary_id(self) -> str:
        return f"{self._temp_prefix}{uuid.uuid4().hex[:12]}"

    def is_temporary(self, message_id: str) -> bool:
        return message_id.startswith(self._temp_prefix)

    def get(self, message_id: str) -> Message | None:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    def require(self, message_id: str) -> Message:
        message = self.get(message_id)
        if message is None:
            raise MessageNotFoundError(message_id)
        return message

    def _index(self, message_id: str) -> int:
        for i, message in enumerate(self._messages):
            if message.id == message_id:
                return i
        return -1

    def _with_overlay(self, message: Message) -> Message:
        overlay = self._overlays.get(message.id)
        return replace(message, **overlay) if overlay else message

    # Reconciliation

    def replace_all(self, server_messages: list[Message]) -> None:
        """Merge a full server snapshot into the store.

        The snapshot is sorted by creation time. Known messages keep pending
        optimistic fields and never step back in delivery status. Confirmed
        messages missing from a stale snapshot and temporary messages are kept.
        """
        current = {m.id: m for m in self._messages}
        # ids gone from the server no longer need hiding
        self._hidden &= {m.id for m in server_messages}
        snapshot = sorted(
            (m for m in server_messages if m.id not in self._hidden),
            key=lambda m: m.created_at,
        )
        server_ids = {m.id for m in snapshot}

        merged: list[Message] = []
        for message in snapshot:
            known = current.get(message.id)
            if known is not None:
                message = replace(message, status=later_status(known.status, message.status))
            merged.append(self._with_overlay(message))

        self._unsynced -= server_ids
        retained = [m for m in self._messages if m.id in self._unsynced]
        if retained:
            merged = sorted(merged + retained, key=lambda m: m.created_at)

        temporary = [
            m for m in self._messages if self.is_temporary(m.id) and m.id not in server_ids
        ]
        self._messages = merged + temporary
        logger.debug(
            "store_replaced",
            chat_id=self.chat_id,
            server=len(snapshot),
            retained=len(retained),
            temporary=len(temporary),
        )

    def upsert(self, message: Message) -> None:
        """Insert or replace a single message from a direct mutation response."""
        if message.id in self._hidden:
            return
        index = self._index(message.id)
        if index >= 0:
            known = self._messages[index]
            message = replace(message, status=later_status(known.status, message.status))
            self._messages[index] = self._with_overlay(message)
            return

        position = len(self._messages)
        for i, existing in enumerate(self._messages):
            if self.is_temporary(existing.id) or existing.created_at > message.created_at:
                position = i
                break
        self._messages.insert(position, self._with_overlay(message))
        if not self.is_temporary(message.id):
            self._unsynced.add(message.id)

    # Optimistic placeholders

    def append_temporary(self, message: Message) -> None:
        self._messages.append(message)

    def confirm(self, temporary_id: str, message: Message) -> bool:
        """Swap a temporary message for its server-confirmed record.

        Returns False when the placeholder is gone (removed locally meanwhile).
        """
        self._overlays.pop(temporary_id, None)
        index = self._index(temporary_id)
        if index < 0:
            return False
        if message.id in self:
            # A snapshot already delivered the confirmed record.
            del self._messages[index]
            self.upsert(message)
            return True
        self._messages[index] = self._with_overlay(message)
        self._unsynced.add(message.id)
        return True

    def update(self, message_id: str, **changes: Any) -> Message:
        index = self._index(message_id)
        if index < 0:
            raise MessageNotFoundError(message_id)
        updated = replace(self._messages[index], **changes)
        self._messages[index] = updated
        return updated

    def remove(self, message_id: str) -> Message | None:
        index = self._index(message_id)
        if index < 0:
            return None
        self._overlays.pop(message_id, None)
        self._unsynced.discard(message_id)
        return self._messages.pop(index)

    def hide(self, message_id: str) -> Message | None:
        """Remove a message and keep it out of later snapshots."""
        self._hidden.add(message_id)
        return self.remove(message_id)

    def unhide(self, message_id: str) -> None:
        self._hidden.discard(message_id)

    # Overlays

    def set_overlay(self, message_id: str, **fields: Any) -> Message:
        """Apply optimistic fields now and keep them over snapshots until cleared."""
        updated = self.update(message_id, **fields)
        self._overlays.setdefault(message_id, {}).update(fields)
        return updated

    def clear_overlay(self, message_id: str, *fields: str) -> None:
        overlay = self._overlays.get(message_id)
        if overlay is None:
            return
        for name in fields or tuple(overlay):
            overlay.pop(name, None)
        if not overlay:
            del self._overlays[message_id]

    def has_overlay(self, message_id: str) -> bool:
        return message_id in self._overlays

    # Queries

    def pinned(self) -> list[Message]:
        return [m for m in self._messages if m.is_pinned]

    def by_type(self, message_type: MessageType | str) -> list[Message]:
        message_type = MessageType(message_type)
        return [m for m in self._messages if m.type == message_type]

    def search(self, query: str) -> list[Message]:
        """Case-insensitive match on content or sender name."""
        needle = query.strip().lower()
        if not needle:
            return []
        return [
            m
            for m in self._messages
            if (m.content and needle in m.content.lower())
            or (m.sender and needle in m.sender.fullname.lower())
        ]

    def unread_for(self, user_id: str) -> list[Message]:
        """Confirmed messages from others that the user has no read receipt for."""
        return [
            m
            for m in self._messages
            if m.sender_id != user_id and not self.is_temporary(m.id) and not m.is_read_by(user_id)
        ]
