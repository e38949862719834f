"""Telegram delivery using python-telegram-bot."""

from __future__ import annotations

from typing import Any

from loguru import logger
from telegram import Bot, ReplyParameters

from mdchunk.channels.delivery import ReplyDelivery
from mdchunk.channels.retry import send_with_retry
from mdchunk.config.schema import Config, DeliveryProfile, resolve_delivery_profile

TELEGRAM_TEXT_LIMIT = 4096


class TelegramSender:
    """Send chunks to one Telegram chat through ``bot.send_message``."""

    name = "telegram"

    def __init__(self, bot: Bot, chat_id: int | str, parse_mode: str | None = None, timeout: float = 30):
        self.bot = bot
        self.chat_id = chat_id
        self.parse_mode = parse_mode
        self.timeout = timeout

    async def send(self, chunk: str, reply_to: str | None = None) -> Any:
        kwargs: dict[str, Any] = {"read_timeout": self.timeout, "write_timeout": self.timeout}
        if self.parse_mode:
            kwargs["parse_mode"] = self.parse_mode
        if reply_to:
            kwargs["reply_parameters"] = ReplyParameters(message_id=int(reply_to), allow_sending_without_reply=True)
        message = await send_with_retry(self.bot.send_message, chat_id=self.chat_id, text=chunk, **kwargs)
        logger.debug(f"Telegram message sent to {self.chat_id} ({len(chunk)} chars)")
        return message

    def delivery(
        self,
        config: Config | None = None,
        account_id: str | None = None,
        profile: DeliveryProfile | None = None,
    ) -> ReplyDelivery:
        """A :class:`ReplyDelivery` bound to this chat."""
        if profile is None:
            profile = resolve_delivery_profile(config, self.name, account_id, default_limit=TELEGRAM_TEXT_LIMIT)
        if profile.max_chars > TELEGRAM_TEXT_LIMIT:
            profile = profile.model_copy(update={"max_chars": TELEGRAM_TEXT_LIMIT})
        return ReplyDelivery(self.send, profile)
