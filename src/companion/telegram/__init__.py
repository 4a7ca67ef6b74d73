"""Telegram transport and bot."""

from .bot import TelegramBot
from .transport import TelegramTransport

__all__ = ["TelegramBot", "TelegramTransport"]
