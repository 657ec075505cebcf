"""Chat domain models shared by the store, the pipelines and the REST client."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from chat_sync.core.errors import InvalidMessageError
from chat_sync.core.types import (
    MEDIA_TYPES,
    AttachmentKind,
    MessageStatus,
    MessageType,
    ReactionType,
    attachment_kind_for,
)


@dataclass(frozen=True, slots=True)
class UserSnapshot:
    """Denormalized user data embedded in messages and participants."""

    id: str
    fullname: str
    photo: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Attachment:
    id: str
    url: str
    kind: AttachmentKind
    message_id: str
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None


@dataclass(frozen=True, slots=True)
class Reaction:
    id: str
    type: ReactionType
    user_id: str
    message_id: str
    user: Optional[UserSnapshot] = None


@dataclass(frozen=True, slots=True)
class ReadReceipt:
    user_id: str
    read_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class CallRecord:
    id: str
    is_video: bool = False
    duration: Optional[int] = None
    status: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    chat_id: str
    sender_id: str
    type: MessageType
    status: MessageStatus
    created_at: datetime
    updated_at: datetime
    content: Optional[str] = None
    parent_id: Optional[str] = None
    deleted_for_everyone: bool = False
    is_pinned: bool = False
    attachments: tuple[Attachment, ...] = ()
    reactions: tuple[Reaction, ...] = ()
    read_receipts: tuple[ReadReceipt, ...] = ()
    sender: Optional[UserSnapshot] = None
    call: Optional[CallRecord] = None

    def reaction_by(self, user_id: str) -> Reaction | None:
        for reaction in self.reactions:
            if reaction.user_id == user_id:
                return reaction
        return None

    def is_read_by(self, user_id: str) -> bool:
        return any(r.user_id == user_id and r.read_at for r in self.read_receipts)

    def deleted(self) -> Message:
        """Return the deleted-for-everyone tombstone of this message."""
        return replace(self, deleted_for_everyone=True, content=None, attachments=())


@dataclass(frozen=True, slots=True)
class ChatParticipant:
    user_id: str
    chat_id: str
    joined_at: datetime
    user: UserSnapshot
    pending: bool = False  # optimistic placeholder awaiting the chat re-fetch


@dataclass(frozen=True, slots=True)
class Chat:
    id: str
    is_group: bool
    name: Optional[str] = None
    admin_id: Optional[str] = None
    users: tuple[ChatParticipant, ...] = ()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_admin(self, user_id: str) -> bool:
        return self.is_group and self.admin_id is not None and self.admin_id == user_id

    def participant_ids(self) -> list[str]:
        return [p.user_id for p in self.users]

    def display_name(self, current_user_id: str) -> str:
        if self.is_group:
            return self.name or "Group Chat"
        for participant in self.users:
            if participant.user_id != current_user_id:
                return participant.user.fullname
        return "Chat"


@dataclass(frozen=True, slots=True)
class TextDraft:
    text: str
    parent_id: Optional[str] = None

    @property
    def type(self) -> MessageType:
        return MessageType.TEXT


@dataclass(frozen=True, slots=True)
class MediaDraft:
    """Media upload; ``source`` is a local path, a ``data:`` URI or a URL."""

    type: MessageType
    source: str
    parent_id: Optional[str] = None

    @property
    def kind(self) -> AttachmentKind:
        return attachment_kind_for(self.type)


Draft = TextDraft | MediaDraft


def make_draft(
    content: Optional[str],
    message_type: MessageType | str = MessageType.TEXT,
    parent_id: Optional[str] = None,
) -> Draft:
    """Validate user input and build the matching outgoing variant."""
    message_type = MessageType(message_type)
    if message_type == MessageType.TEXT:
        if not content or not content.strip():
            raise InvalidMessageError("Text message content must not be empty")
        return TextDraft(text=content, parent_id=parent_id)
    if message_type in MEDIA_TYPES:
        if not content:
            raise InvalidMessageError(f"{message_type} message requires a file or URL")
        return MediaDraft(type=message_type, source=content, parent_id=parent_id)
    raise InvalidMessageError(f"{message_type} messages cannot be sent directly")
