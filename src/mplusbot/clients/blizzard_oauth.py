from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import aiohttp

from ..domain.errors import BlizzardAuthError, BlizzardNotConfigured

log = logging.getLogger(__name__)


@dataclass
class OAuthToken:
    access_token: str
    expires_at: float


class TokenState(str, Enum):
    UNCONFIGURED = "unconfigured"
    TOKEN_ABSENT = "token_absent"
    TOKEN_VALID = "token_valid"
    TOKEN_EXPIRING = "token_expiring"
    TOKEN_FAILED = "token_failed"


class BlizzardOAuthClient:
    """Client-credentials OAuth for Battle.net."""

    TOKEN_URL = "https://oauth.battle.net/token"

    def __init__(
        self,
        session: aiohttp.ClientSession,
        client_id: str | None,
        client_secret: str | None,
        *,
        refresh_buffer_s: float = 300,
        timeout_s: float = 15,
        clock: Callable[[], float] = time.time,
    ):
        self._session = session
        self._client_id = client_id or ""
        self._client_secret = client_secret or ""
        self._refresh_buffer = refresh_buffer_s
        self._timeout = timeout_s
        self._clock = clock
        self._token: OAuthToken | None = None
        self._failed = False

    @property
    def is_configured(self) -> bool:
        return bool(self._client_id and self._client_secret)

    @property
    def state(self) -> TokenState:
        if not self.is_configured:
            return TokenState.UNCONFIGURED
        if self._failed:
            return TokenState.TOKEN_FAILED
        if self._token is None:
            return TokenState.TOKEN_ABSENT
        if self._clock() >= self._token.expires_at - self._refresh_buffer:
            return TokenState.TOKEN_EXPIRING
        return TokenState.TOKEN_VALID

    async def get_access_token(self, *, force_refresh: bool = False) -> str:
        state = self.state
        if state is TokenState.UNCONFIGURED:
            raise BlizzardNotConfigured("Set BLIZZARD_CLIENT_ID and BLIZZARD_CLIENT_SECRET.")
        if state is TokenState.TOKEN_VALID and not force_refresh and self._token is not None:
            return self._token.access_token

        try:
            async with self._session.post(
                self.TOKEN_URL,
                data={"grant_type": "client_credentials"},
                auth=aiohttp.BasicAuth(self._client_id, self._client_secret),
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as resp:
                if resp.status != 200:
                    self._failed = True
                    raise BlizzardAuthError(f"OAuth error {resp.status}: {await resp.text()}", status=resp.status)
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._failed = True
            raise BlizzardAuthError(f"OAuth network error: {e}") from e

        try:
            access_token = str(data["access_token"])
            expires_in = float(data["expires_in"])
        except (KeyError, TypeError, ValueError) as e:
            self._failed = True
            raise BlizzardAuthError(f"OAuth response malformed: {e}") from e
        if expires_in <= 0:
            self._failed = True
            raise BlizzardAuthError(f"OAuth response malformed: expires_in={expires_in}")

        self._token = OAuthToken(access_token=access_token, expires_at=self._clock() + expires_in)
        self._failed = False
        log.debug("Blizzard OAuth token acquired (expires in %ss)", int(expires_in))
        return access_token
