"""Per-conversation message buffering and concurrency control."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

ConversationKey = tuple[str, int]
FlushCallback = Callable[[str, int], Awaitable[None]]


@dataclass
class PendingTurn:
    """Inbound messages not yet answered."""

    chat_id: str
    persona_id: int
    texts: list[str] = field(default_factory=list)
    last_activity: float = field(default_factory=time.monotonic)

    def touch(self) -> None:
        self.last_activity = time.monotonic()


class ChatBuffer:
    """Collects bursts of messages and answers them once the user pauses.

    Each (chat, persona) conversation has its own buffer, debounce timer and
    lock, so at most one reply is being generated per conversation.
    """

    def __init__(self, debounce_seconds: float = 10.0) -> None:
        self.debounce_seconds = debounce_seconds
        self._pending: dict[ConversationKey, PendingTurn] = {}
        self._locks: dict[ConversationKey, asyncio.Lock] = {}
        self._timers: dict[ConversationKey, asyncio.Task] = {}

    def get_lock(self, chat_id: str, persona_id: int) -> asyncio.Lock:
        key = (chat_id, persona_id)
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def is_busy(self, chat_id: str, persona_id: int) -> bool:
        """Check if a reply is currently being generated."""
        lock = self._locks.get((chat_id, persona_id))
        return lock is not None and lock.locked()

    def append(self, chat_id: str, persona_id: int, text: str) -> None:
        """Buffer an inbound message."""
        key = (chat_id, persona_id)
        turn = self._pending.setdefault(key, PendingTurn(chat_id, persona_id))
        turn.texts.append(text)
        turn.touch()

    def pull(self, chat_id: str, persona_id: int) -> list[str]:
        """Take every buffered message, oldest first."""
        turn = self._pending.pop((chat_id, persona_id), None)
        return turn.texts if turn else []

    def pending(self, chat_id: str, persona_id: int) -> list[str]:
        turn = self._pending.get((chat_id, persona_id))
        return list(turn.texts) if turn else []

    async def acquire(self, chat_id: str, persona_id: int) -> None:
        """Wait until this conversation is free and claim it."""
        await self.get_lock(chat_id, persona_id).acquire()

    def release(self, chat_id: str, persona_id: int) -> None:
        lock = self._locks.get((chat_id, persona_id))
        if lock and lock.locked():
            lock.release()

    def schedule_flush(self, chat_id: str, persona_id: int, callback: FlushCallback) -> None:
        """(Re)start the debounce timer; the callback runs after a quiet period."""
        key = (chat_id, persona_id)
        timer = self._timers.get(key)
        if timer is not None and not timer.done():
            timer.cancel()
        self._timers[key] = asyncio.create_task(self._flush_later(key, callback))

    async def _flush_later(self, key: ConversationKey, callback: FlushCallback) -> None:
        await asyncio.sleep(self.debounce_seconds)
        # Past the quiet period; a newer message must not cancel the reply.
        if self._timers.get(key) is asyncio.current_task():
            del self._timers[key]
        chat_id, persona_id = key
        await self.acquire(chat_id, persona_id)
        try:
            if self.pending(chat_id, persona_id):
                await callback(chat_id, persona_id)
        except Exception:
            logger.exception("Reply for chat %s persona %s failed", chat_id, persona_id)
        finally:
            self.release(chat_id, persona_id)

    def clear(self, chat_id: str, persona_id: int) -> None:
        """Drop buffered messages and any pending flush."""
        key = (chat_id, persona_id)
        self._pending.pop(key, None)
        timer = self._timers.pop(key, None)
        if timer is not None and not timer.done():
            timer.cancel()

    def cancel_all(self) -> None:
        """Cancel every pending flush, e.g. on shutdown."""
        for timer in self._timers.values():
            if not timer.done():
                timer.cancel()
        self._timers.clear()
