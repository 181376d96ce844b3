"""HTTP client for the credential service."""

from __future__ import annotations

import json
import logging

import aiohttp

from callroom.core.session_runtime.api import CredentialPair
from callroom.errors import BrokerError

log = logging.getLogger("tokens")


class TokenBrokerClient:
    """Fetches a fresh messaging/media token pair for one join attempt."""

    def __init__(self, server_url: str, session: aiohttp.ClientSession | None = None):
        self.server_url = server_url.rstrip("/")
        self._session = session

    def _make_url(self, path: str) -> str:
        return f"{self.server_url}{path}"

    async def request_token(
        self, session: aiohttp.ClientSession, path: str, params: dict[str, str]
    ) -> str:
        url = self._make_url(path)
        try:
            async with session.get(url, params=params) as resp:
                body = await resp.read()
                if not 200 <= resp.status < 300:
                    detail = body.decode("utf-8", errors="replace").strip() or resp.reason or "request failed"
                    raise BrokerError(detail, status=resp.status, url=url)
        except aiohttp.ClientError as e:
            raise BrokerError(f"{path} request failed: {type(e).__name__}: {e}") from e

        try:
            data = json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise BrokerError(f"{path} returned a non-JSON body") from None

        token = data.get("token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise BrokerError(f"{path} response has no token field")
        return token

    async def _fetch(self, session: aiohttp.ClientSession, local_id: str, room_name: str) -> CredentialPair:
        messaging_token = await self.request_token(session, "/rtm-token", {"uid": local_id})
        media_token = await self.request_token(
            session, "/media-token", {"channelName": room_name, "uid": local_id}
        )
        return CredentialPair(messaging_token=messaging_token, media_token=media_token)

    async def fetch_credentials(self, local_id: str, room_name: str) -> CredentialPair:
        log.info(f"Getting tokens for {local_id} in {room_name}")
        if self._session is not None:
            pair = await self._fetch(self._session, local_id, room_name)
        else:
            async with aiohttp.ClientSession() as session:
                pair = await self._fetch(session, local_id, room_name)
        log.info("Tokens received")
        return pair
