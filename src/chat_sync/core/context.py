"""Explicit identity context passed to every REST call."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from chat_sync.core.errors import AuthenticationRequired

TokenProvider = Callable[[], Awaitable[Optional[str]]]


def static_token(token: Optional[str]) -> TokenProvider:
    """Wrap a fixed token (or None) as a token provider."""

    async def _provide() -> Optional[str]:
        return token

    return _provide


@dataclass(frozen=True, slots=True)
class SessionContext:
    """The current user and how to obtain their bearer token.

    Token retrieval and refresh belong to the identity provider; this only
    asks for the current value.
    """

    user_id: str
    token_provider: TokenProvider
    fullname: str = "You"

    async def bearer_token(self) -> str:
        token = await self.token_provider()
        if not token:
            raise AuthenticationRequired("Authentication required")
        return token
