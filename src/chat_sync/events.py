"""Signals the chat core raises for the presentation layer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Callable

from chat_sync.log import get_logger

logger = get_logger(__name__)

Listener = Callable[[Any], None]


class ChatEvent(StrEnum):
    MESSAGES_CHANGED = "messages_changed"
    SCROLL_TO_LATEST = "scroll_to_latest"
    ROSTER_CHANGED = "roster_changed"
    NOTICE = "notice"
    AUTH_REQUIRED = "auth_required"
    CHAT_DELETED = "chat_deleted"


@dataclass(frozen=True, slots=True)
class Notice:
    """A toast-style message for the user."""

    title: str
    description: str
    level: str = "info"  # "info" | "error"


class EventBus:
    """Synchronous fan-out of chat events to registered listeners."""

    def __init__(self) -> None:
        self._listeners: dict[ChatEvent, list[Listener]] = {}

    def on(self, event: ChatEvent, listener: Listener) -> None:
        self._listeners.setdefault(event, []).append(listener)

    def off(self, event: ChatEvent, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event: ChatEvent, payload: Any = None) -> None:
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(payload)
            except Exception as e:
                logger.error("event_listener_error", chat_event=str(event), error=str(e))

    def notify(self, title: str, description: str, level: str = "info") -> None:
        self.emit(ChatEvent.NOTICE, Notice(title=title, description=description, level=level))
