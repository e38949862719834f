"""Discord delivery over the REST API using httpx."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from mdchunk.channels.delivery import ReplyDelivery
from mdchunk.channels.retry import send_with_retry
from mdchunk.config.schema import Config, DeliveryProfile, resolve_delivery_profile

DISCORD_API_BASE = "https://discord.com/api/v10"
DISCORD_TEXT_LIMIT = 2000


class DiscordSender:
    """Post chunks to one Discord channel as the bot."""

    name = "discord"

    def __init__(
        self,
        token: str,
        channel_id: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 15,
    ):
        self.token = token
        self.channel_id = channel_id
        self._client = client
        self._timeout = timeout

    @property
    def url(self) -> str:
        return f"{DISCORD_API_BASE}/channels/{self.channel_id}/messages"

    def _payload(self, chunk: str, reply_to: str | None) -> dict[str, Any]:
        payload: dict[str, Any] = {"content": chunk}
        if reply_to:
            payload["message_reference"] = {"message_id": reply_to, "fail_if_not_exists": False}
        return payload

    async def _post(self, client: httpx.AsyncClient, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {"Authorization": f"Bot {self.token}", "Content-Type": "application/json"}
        r = await client.post(self.url, headers=headers, json=payload)
        r.raise_for_status()
        return r.json()

    async def send(self, chunk: str, reply_to: str | None = None) -> dict[str, Any]:
        """Send one message and return the created message object."""
        payload = self._payload(chunk, reply_to)
        if self._client is not None:
            message = await send_with_retry(self._post, self._client, payload)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                message = await send_with_retry(self._post, client, payload)
        logger.debug(f"Discord message {message.get('id')} sent to {self.channel_id} ({len(chunk)} chars)")
        return message

    def delivery(
        self,
        config: Config | None = None,
        account_id: str | None = None,
        profile: DeliveryProfile | None = None,
    ) -> ReplyDelivery:
        """A :class:`ReplyDelivery` bound to this channel."""
        if profile is None:
            profile = resolve_delivery_profile(config, self.name, account_id, default_limit=DISCORD_TEXT_LIMIT)
        if profile.max_chars > DISCORD_TEXT_LIMIT:
            profile = profile.model_copy(update={"max_chars": DISCORD_TEXT_LIMIT})
        return ReplyDelivery(self.send, profile)
