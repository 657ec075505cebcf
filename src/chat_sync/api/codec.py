"""Map the collaborator's camelCase JSON onto chat models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from chat_sync.core.errors import PayloadError
from chat_sync.core.models import (
    Attachment,
    CallRecord,
    Chat,
    ChatParticipant,
    Message,
    ReadReceipt,
    Reaction,
    UserSnapshot,
)
from chat_sync.core.types import AttachmentKind, MessageStatus, MessageType, ReactionType
from chat_sync.log import get_logger

logger = get_logger(__name__)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 timestamps, including the trailing ``Z`` form."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError as e:
            raise PayloadError(f"Invalid timestamp: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require(data: dict[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError as e:
        raise PayloadError(f"Missing field '{key}'") from e


def parse_user(data: Optional[dict[str, Any]]) -> Optional[UserSnapshot]:
    if not data:
        return None
    return UserSnapshot(
        id=str(data.get("id", "")),
        fullname=data.get("fullname") or "",
        photo=data.get("profile_photo") or data.get("photo"),
    )


def _parse_attachment_kind(value: Any) -> AttachmentKind:
    try:
        return AttachmentKind(value)
    except ValueError:
        return AttachmentKind.DOCUMENT


def parse_attachment(data: dict[str, Any], message_id: str) -> Attachment:
    return Attachment(
        id=str(data.get("id", "")),
        url=_require(data, "url"),
        kind=_parse_attachment_kind(data.get("type")),
        message_id=str(data.get("messageId") or message_id),
        file_name=data.get("fileName"),
        file_size=data.get("fileSize"),
        width=data.get("width"),
        height=data.get("height"),
        duration=data.get("duration"),
    )


def parse_reaction(data: dict[str, Any], message_id: str = "") -> Reaction:
    try:
        reaction_type = ReactionType(_require(data, "type"))
    except ValueError as e:
        raise PayloadError(f"Unknown reaction type: {data.get('type')!r}") from e
    return Reaction(
        id=str(_require(data, "id")),
        type=reaction_type,
        user_id=str(_require(data, "userId")),
        message_id=str(data.get("messageId") or message_id),
        user=parse_user(data.get("user")),
    )


def parse_reaction_response(data: Any, message_id: str) -> Optional[Reaction]:
    """Extract the reaction from a react response.

    The collaborator answers either ``{"reaction": {...}}``, the bare reaction,
    or an acknowledgement without one when the toggle removed it.
    """
    if not isinstance(data, dict):
        return None
    if "reaction" in data:
        inner = data["reaction"]
        return parse_reaction(inner, message_id) if inner else None
    if "id" in data and "type" in data and "userId" in data:
        return parse_reaction(data, message_id)
    return None


def _parse_call(data: Any) -> Optional[CallRecord]:
    # Calls arrive as a one-element list on CALL messages.
    if isinstance(data, list):
        data = data[0] if data else None
    if not data:
        return None
    return CallRecord(
        id=str(data.get("id", "")),
        is_video=bool(data.get("isVideo", False)),
        duration=data.get("duration"),
        status=data.get("status"),
    )


def parse_message(data: dict[str, Any]) -> Message:
    if not isinstance(data, dict):
        raise PayloadError(f"Expected message object, got {type(data).__name__}")

    message_id = str(_require(data, "id"))
    try:
        message_type = MessageType(data.get("type") or MessageType.TEXT)
        status = MessageStatus(data.get("status") or MessageStatus.SENT)
    except ValueError as e:
        raise PayloadError(f"Invalid message {message_id}: {e}") from e

    created_at = parse_datetime(_require(data, "createdAt"))
    if created_at is None:
        raise PayloadError(f"Message {message_id} has no creation time")
    updated_at = parse_datetime(data.get("updatedAt")) or created_at
    sender = parse_user(data.get("sender"))

    message = Message(
        id=message_id,
        chat_id=str(_require(data, "chatId")),
        sender_id=str(data.get("senderId") or (sender.id if sender else "")),
        type=message_type,
        status=status,
        created_at=created_at,
        updated_at=updated_at,
        content=data.get("content"),
        parent_id=data.get("parentId"),
        deleted_for_everyone=bool(data.get("deletedForEveryone", False)),
        is_pinned=bool(data.get("isPinned", False)),
        attachments=tuple(
            parse_attachment(a, message_id) for a in (data.get("attachment") or [])
        ),
        reactions=tuple(parse_reaction(r, message_id) for r in (data.get("reactions") or [])),
        read_receipts=tuple(
            ReadReceipt(user_id=str(r.get("userId", "")), read_at=parse_datetime(r.get("readAt")))
            for r in (data.get("readReceipts") or [])
        ),
        sender=sender,
        call=_parse_call(data.get("call")),
    )
    if message.deleted_for_everyone:
        return message.deleted()
    return message


def parse_messages(data: Any) -> list[Message]:
    if not isinstance(data, list):
        raise PayloadError(f"Expected message list, got {type(data).__name__}")
    return [parse_message(item) for item in data]


def parse_participant(data: dict[str, Any], chat_id: str) -> ChatParticipant:
    user_id = str(_require(data, "userId"))
    return ChatParticipant(
        user_id=user_id,
        chat_id=str(data.get("chatId") or chat_id),
        joined_at=parse_datetime(data.get("joinedAt")) or datetime.now(timezone.utc),
        user=parse_user(data.get("user")) or UserSnapshot(id=user_id, fullname=""),
    )


def parse_chat(data: dict[str, Any]) -> Chat:
    if not isinstance(data, dict):
        raise PayloadError(f"Expected chat object, got {type(data).__name__}")

    chat_id = str(_require(data, "id"))
    is_group = bool(data.get("isGroup", False))
    users = tuple(parse_participant(u, chat_id) for u in (data.get("users") or []))
    admin_id = data.get("adminId")

    if not is_group:
        if admin_id is not None:
            logger.warning("direct_chat_admin_ignored", chat_id=chat_id, admin_id=admin_id)
            admin_id = None
        if len(users) != 2:
            logger.warning("direct_chat_participant_count", chat_id=chat_id, count=len(users))

    return Chat(
        id=chat_id,
        is_group=is_group,
        name=data.get("name") if is_group else None,
        admin_id=admin_id,
        users=users,
        created_at=parse_datetime(data.get("createdAt")),
        updated_at=parse_datetime(data.get("updatedAt")),
    )


def parse_chats(data: Any) -> list[Chat]:
    if not isinstance(data, list):
        raise PayloadError(f"Expected chat list, got {type(data).__name__}")
    return [parse_chat(item) for item in data]
