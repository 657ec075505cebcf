"""REST collaborator client using aiohttp."""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import mimetypes
import time
from pathlib import Path
from typing import Any, Optional
from urllib.parse import unquote_to_bytes

import aiohttp

from chat_sync.api import codec
from chat_sync.api.base import ChatApi
from chat_sync.config import ApiConfig
from chat_sync.core.context import SessionContext
from chat_sync.core.errors import (
    ApiError,
    AuthenticationRequired,
    InvalidMessageError,
    NotFoundError,
    PermissionDeniedError,
    TransientApiError,
)
from chat_sync.core.models import Chat, Draft, MediaDraft, Message, Reaction, TextDraft
from chat_sync.core.types import ReactionType
from chat_sync.log import get_logger

logger = get_logger(__name__)


def _error_for(status: int, method: str, path: str, body: str) -> Exception:
    detail = body[:200]
    try:
        payload = json.loads(body)
        if isinstance(payload, dict) and payload.get("message"):
            detail = str(payload["message"])
    except ValueError:
        pass

    text = f"{method} {path} failed ({status}): {detail}"
    if status == 401:
        return AuthenticationRequired(text)
    if status == 403:
        return PermissionDeniedError(text)
    if status == 404:
        return NotFoundError(text, status=status)
    if status >= 500:
        return TransientApiError(text, status=status)
    return ApiError(text, status=status)


async def _load_upload(draft: MediaDraft) -> tuple[Any, Optional[str], Optional[str]]:
    """Resolve a media source into (payload, filename, content type).

    Local files and ``data:`` URIs are uploaded as bytes. Anything else is
    treated as a remote reference and forwarded as a plain form value.
    """
    source = draft.source
    fallback_name = f"file-{int(time.time() * 1000)}.{draft.type.lower()}"

    if source.startswith("data:"):
        header, _, data = source.partition(",")
        media_type = header[5:].split(";")[0] or "application/octet-stream"
        if ";base64" in header:
            try:
                payload = base64.b64decode(data, validate=True)
            except binascii.Error as e:
                raise InvalidMessageError(f"Malformed data URI for {draft.type.lower()} upload") from e
        else:
            payload = unquote_to_bytes(data)
        return payload, fallback_name, media_type

    path = Path(source)
    if "://" not in source and path.is_file():
        try:
            payload = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise InvalidMessageError(f"Cannot read upload {path.name}: {e.strerror or e}") from e
        media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return payload, path.name, media_type

    return source, None, None


class HttpChatApi(ChatApi):
    """Chat REST collaborator over HTTP with bearer authentication."""

    def __init__(self, config: ApiConfig):
        self._base_url = config.base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=config.timeout)
        self._session: aiohttp.ClientSession | None = None

    async def start(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            logger.info("http_client_started", base_url=self._base_url)

    async def stop(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            logger.info("http_client_stopped")
        self._session = None

    async def _request(
        self,
        ctx: SessionContext,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        data: Any = None,
        params: Optional[dict[str, str]] = None,
    ) -> Any:
        token = await ctx.bearer_token()
        if self._session is None or self._session.closed:
            await self.start()

        headers = {"Authorization": f"Bearer {token}"}
        logger.debug("api_request", method=method, path=path)
        try:
            async with self._session.request(  # type: ignore[union-attr]
                method,
                f"{self._base_url}{path}",
                json=json_body,
                data=data,
                params=params,
                headers=headers,
            ) as response:
                body = await response.text()
                if response.status >= 400:
                    raise _error_for(response.status, method, path, body)
        except aiohttp.ClientError as e:
            raise TransientApiError(f"{method} {path} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransientApiError(f"{method} {path} timed out") from e

        logger.debug("api_response", method=method, path=path, status=response.status)
        if not body:
            return None
        try:
            return json.loads(body)
        except ValueError:
            return body

    # Chats

    async def list_chats(self, ctx: SessionContext) -> list[Chat]:
        return codec.parse_chats(await self._request(ctx, "GET", "/chats"))

    async def get_chat(self, ctx: SessionContext, chat_id: str) -> Chat:
        return codec.parse_chat(await self._request(ctx, "GET", f"/chats/{chat_id}"))

    async def create_chat(
        self,
        ctx: SessionContext,
        user_ids: list[str],
        is_group: bool = False,
        name: Optional[str] = None,
    ) -> Chat:
        data = await self._request(
            ctx, "POST", "/chats", json_body={"userIds": user_ids, "isGroup": is_group, "name": name}
        )
        return codec.parse_chat(data)

    async def delete_chat(self, ctx: SessionContext, chat_id: str) -> None:
        await self._request(ctx, "DELETE", f"/chats/{chat_id}")

    async def add_participants(self, ctx: SessionContext, chat_id: str, user_ids: list[str]) -> None:
        await self._request(ctx, "POST", f"/chats/{chat_id}/participants", json_body={"userIds": user_ids})

    async def remove_participant(self, ctx: SessionContext, chat_id: str, user_id: str) -> None:
        await self._request(ctx, "DELETE", f"/chats/{chat_id}/participants/{user_id}")

    # Messages

    async def list_messages(self, ctx: SessionContext, chat_id: str) -> list[Message]:
        return codec.parse_messages(await self._request(ctx, "GET", f"/messages/chat/{chat_id}"))

    async def send_message(self, ctx: SessionContext, chat_id: str, draft: Draft) -> Message:
        match draft:
            case TextDraft():
                data = await self._request(
                    ctx,
                    "POST",
                    "/messages",
                    json_body={
                        "chatId": chat_id,
                        "content": draft.text,
                        "type": str(draft.type),
                        "parentId": draft.parent_id,
                    },
                )
            case MediaDraft():
                form = aiohttp.FormData()
                form.add_field("chatId", chat_id)
                form.add_field("type", str(draft.type))
                if draft.parent_id:
                    form.add_field("parentId", draft.parent_id)
                payload, filename, content_type = await _load_upload(draft)
                if filename:
                    form.add_field("file", payload, filename=filename, content_type=content_type)
                else:
                    form.add_field("file", payload)
                data = await self._request(ctx, "POST", "/messages", data=form)
        return codec.parse_message(data)

    async def edit_message(self, ctx: SessionContext, message_id: str, content: str) -> Optional[Message]:
        data = await self._request(ctx, "PATCH", f"/messages/{message_id}", json_body={"content": content})
        return codec.parse_message(data) if isinstance(data, dict) and "id" in data else None

    async def delete_message(self, ctx: SessionContext, message_id: str, for_everyone: bool) -> None:
        await self._request(
            ctx,
            "DELETE",
            f"/messages/{message_id}",
            params={"forEveryone": "true" if for_everyone else "false"},
        )

    async def mark_read(self, ctx: SessionContext, message_id: str) -> None:
        await self._request(ctx, "POST", f"/messages/read/{message_id}")

    async def pin_message(self, ctx: SessionContext, message_id: str, is_pinned: bool) -> None:
        await self._request(ctx, "PATCH", f"/messages/{message_id}/pin", json_body={"isPinned": is_pinned})

    async def send_typing(self, ctx: SessionContext, chat_id: str, is_typing: bool) -> None:
        await self._request(
            ctx, "POST", "/messages/typing", json_body={"chatId": chat_id, "isTyping": is_typing}
        )

    # Reactions

    async def react(self, ctx: SessionContext, message_id: str, reaction_type: ReactionType) -> Optional[Reaction]:
        data = await self._request(
            ctx, "POST", f"/reactions/message/{message_id}", json_body={"type": str(reaction_type)}
        )
        return codec.parse_reaction_response(data, message_id)

    async def remove_reaction(self, ctx: SessionContext, reaction_id: str) -> None:
        await self._request(ctx, "DELETE", f"/reactions/{reaction_id}")
