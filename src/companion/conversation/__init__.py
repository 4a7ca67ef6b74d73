"""Conversation history and chat buffering."""

from .buffer import ChatBuffer
from .store import BOT_SENDER, USER_SENDER, Message, MessageStore, format_transcript

__all__ = [
    "BOT_SENDER",
    "USER_SENDER",
    "ChatBuffer",
    "Message",
    "MessageStore",
    "format_transcript",
]
