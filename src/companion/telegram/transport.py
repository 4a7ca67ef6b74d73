"""Outbound Telegram messaging."""

import logging
from pathlib import Path

from telegram import Bot
from telegram.error import TelegramError

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4096
MAX_CAPTION_LENGTH = 1024


def truncate_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """Truncate text to fit Telegram limits."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


class TelegramTransport:
    """Sends messages through one Telegram bot.

    Every method returns False instead of raising when Telegram rejects the
    request. Several bots mean several transports.
    """

    def __init__(self, token: str | None = None, bot: Bot | None = None) -> None:
        if bot is None:
            if not token:
                raise ValueError("A bot token or a Bot instance is required")
            bot = Bot(token)
        self.bot = bot

    async def send_message(self, chat_id: str, text: str) -> bool:
        try:
            await self.bot.send_message(chat_id=chat_id, text=truncate_message(text))
            return True
        except TelegramError as e:
            logger.error("Failed to send message to %s: %s", chat_id, e)
            return False

    async def send_photo(self, chat_id: str, photo: str, caption: str | None = None) -> bool:
        """Send a photo by URL, with an optional caption."""
        if caption:
            caption = truncate_message(caption, MAX_CAPTION_LENGTH)
        try:
            await self.bot.send_photo(chat_id=chat_id, photo=photo, caption=caption)
            return True
        except TelegramError as e:
            logger.error("Failed to send photo to %s: %s", chat_id, e)
            return False

    async def send_voice(self, chat_id: str, voice: str) -> bool:
        """Send a voice note from a local file path or URL."""
        path = Path(voice)
        try:
            if path.is_file():
                with open(path, "rb") as f:
                    await self.bot.send_voice(chat_id=chat_id, voice=f)
            else:
                await self.bot.send_voice(chat_id=chat_id, voice=voice)
            return True
        except (TelegramError, OSError) as e:
            logger.error("Failed to send voice note to %s: %s", chat_id, e)
            return False

    async def send_chat_action(self, chat_id: str, action: str) -> bool:
        try:
            await self.bot.send_chat_action(chat_id=chat_id, action=action)
            return True
        except TelegramError as e:
            logger.warning("Failed to send chat action to %s: %s", chat_id, e)
            return False
