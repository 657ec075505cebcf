"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class MessageType(StrEnum):
    TEXT = "TEXT"
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    AUDIO = "AUDIO"
    FILE = "FILE"
    CALL = "CALL"
    LINK = "LINK"


class MessageStatus(StrEnum):
    SENDING = "SENDING"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    SEEN = "SEEN"
    FAILED = "FAILED"
    EDITED = "EDITED"


class ReactionType(StrEnum):
    LIKE = "LIKE"
    LOVE = "LOVE"
    LAUGH = "LAUGH"
    SAD = "SAD"
    ANGRY = "ANGRY"


class AttachmentKind(StrEnum):
    IMAGE = "Image"
    VIDEO = "Video"
    AUDIO = "Audio"
    DOCUMENT = "Document"


MEDIA_TYPES = frozenset({MessageType.IMAGE, MessageType.VIDEO, MessageType.AUDIO, MessageType.FILE})

# Delivery progression; FAILED and EDITED sit outside it.
_DELIVERY_RANK = {
    MessageStatus.SENDING: 0,
    MessageStatus.SENT: 1,
    MessageStatus.DELIVERED: 2,
    MessageStatus.SEEN: 3,
}


def attachment_kind_for(message_type: MessageType) -> AttachmentKind:
    match message_type:
        case MessageType.IMAGE:
            return AttachmentKind.IMAGE
        case MessageType.VIDEO:
            return AttachmentKind.VIDEO
        case MessageType.AUDIO:
            return AttachmentKind.AUDIO
        case _:
            return AttachmentKind.DOCUMENT


def later_status(current: MessageStatus, incoming: MessageStatus) -> MessageStatus:
    """Pick the status to keep when a newer record arrives for the same message.

    SENT, DELIVERED and SEEN only move forward; any other incoming value wins.
    """
    if current in _DELIVERY_RANK and incoming in _DELIVERY_RANK:
        if _DELIVERY_RANK[incoming] < _DELIVERY_RANK[current]:
            return current
    return incoming
