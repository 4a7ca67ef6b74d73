"""Telegram bot integration for the companion."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, tzinfo

from telegram import Update
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from ..app import Companion, build_companion
from ..config import CompanionConfig
from ..conversation.store import USER_SENDER
from ..logging import get_logger
from ..storage import as_utc, utcnow
from .transport import TelegramTransport

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = "Hai {name}! 💕 I'm {persona}. Just talk to me like you would with a friend."
NO_PERSONA_MESSAGE = "No persona is set up for this chat yet."
FORGET_MESSAGE = "Okay, let's start over 💭"


def seconds_until(hour: int, now: datetime | None = None, tz: tzinfo | None = None) -> float:
    """Seconds from now until the next local HH:00."""
    local = as_utc(now or utcnow()).astimezone(tz)
    target = local.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= local:
        target += timedelta(days=1)
    return (target - local).total_seconds()


class TelegramBot:
    """Telegram front end of a companion.

    Inbound messages are stored and buffered; the reply is generated once
    the user pauses. Due events, daily plans and memory consolidation run
    as background tasks for as long as the application runs.
    """

    def __init__(
        self,
        config: CompanionConfig,
        companion: Companion | None = None,
    ) -> None:
        if not config.telegram_token:
            raise ValueError("TELEGRAM_TOKEN not set")
        self.config = config
        if companion is None:
            companion = build_companion(config, TelegramTransport(config.telegram_token))
        self.companion = companion
        self.json_logger = get_logger()
        self._app: Application | None = None
        self._tasks: set[asyncio.Task] = set()

    def _get_chat_id(self, update: Update) -> str:
        """Get chat_id as string from update."""
        assert update.effective_chat is not None
        return str(update.effective_chat.id)

    def _is_allowed(self, chat_id: str) -> bool:
        admin = self.config.admin_chat_id
        return admin is None or chat_id == admin

    def _spawn(self, coro: Awaitable[object]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _handle_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /start command."""
        assert update.message is not None
        chat_id = self._get_chat_id(update)
        if not self._is_allowed(chat_id):
            return

        name = update.effective_user.first_name if update.effective_user else ""
        user = self.companion.personas.get_or_create_user(chat_id, name or "")
        persona = self.companion.personas.active_for_user(user.id)  # type: ignore[arg-type]
        self.json_logger.log("telegram_start", chat_id=chat_id)

        if persona is None:
            await update.message.reply_text(NO_PERSONA_MESSAGE)
            return
        await update.message.reply_text(
            WELCOME_MESSAGE.format(name=user.name or "there", persona=persona.name)
        )

    async def _handle_forget(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /forget command: drop messages waiting for a reply."""
        assert update.message is not None
        chat_id = self._get_chat_id(update)
        if not self._is_allowed(chat_id):
            return

        user = self.companion.personas.get_user_by_chat(chat_id)
        persona = self.companion.personas.active_for_user(user.id) if user else None  # type: ignore[arg-type]
        if persona is not None:
            self.companion.buffer.clear(chat_id, persona.id)  # type: ignore[arg-type]
        self.json_logger.log("telegram_forget", chat_id=chat_id)
        await update.message.reply_text(FORGET_MESSAGE)

    async def _handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle incoming text messages."""
        assert update.message is not None
        assert update.message.text is not None

        chat_id = self._get_chat_id(update)
        if not self._is_allowed(chat_id):
            logger.warning("Ignoring message from unauthorized chat %s", chat_id)
            self.json_logger.log("telegram_unauthorized", chat_id=chat_id)
            return

        text = update.message.text
        name = update.effective_user.first_name if update.effective_user else ""
        companion = self.companion
        user = companion.personas.get_or_create_user(chat_id, name or "")
        persona = companion.personas.active_for_user(user.id)  # type: ignore[arg-type]
        if persona is None:
            await update.message.reply_text(NO_PERSONA_MESSAGE)
            return

        companion.messages.add(persona.id, USER_SENDER, text, user_id=user.id)  # type: ignore[arg-type]
        companion.activity.touch(user.id)  # type: ignore[arg-type]
        self.json_logger.log(
            "telegram_message", chat_id=chat_id, persona_id=persona.id, message_length=len(text)
        )

        companion.buffer.append(chat_id, persona.id, text)  # type: ignore[arg-type]
        companion.buffer.schedule_flush(chat_id, persona.id, self._reply)  # type: ignore[arg-type]

        count = companion.messages.count_for_user(user.id, persona.id)  # type: ignore[arg-type]
        if count % self.config.reconcile_every == 0:
            logger.info("Reconciling memory of %s after %d messages", persona.name, count)
            self._spawn(companion.memory_manager.reconcile_recent(persona, user))

    async def _reply(self, chat_id: str, persona_id: int) -> None:
        user = self.companion.personas.get_user_by_chat(chat_id)
        persona = self.companion.personas.get(persona_id)
        if user is None or persona is None:
            logger.warning("Dropping reply for unknown chat %s or persona %s", chat_id, persona_id)
            self.companion.buffer.pull(chat_id, persona_id)
            return
        await self.companion.responder.respond(user, persona)

    async def _sweep_loop(self) -> None:
        """Process due events forever."""
        while True:
            try:
                await self.companion.runner.sweep()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Event sweep failed")
            await asyncio.sleep(self.config.sweep_interval_seconds)

    async def _daily_loop(self, hour: int, job: Callable[[], Awaitable[object]], name: str) -> None:
        """Run a job every day at a local hour."""
        while True:
            await asyncio.sleep(seconds_until(hour, tz=self.config.tz))
            logger.info("Running daily %s", name)
            try:
                await job()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Daily %s failed", name)

    async def _post_init(self, application: Application) -> None:
        """Called after Application.initialize()."""
        recovered = self.companion.events.recover_interrupted()
        if recovered:
            logger.info("Recovered %d interrupted events", recovered)
        self._spawn(self._sweep_loop())
        self._spawn(
            self._daily_loop(self.config.plan_hour, self.companion.planner.plan_all, "planning")
        )
        self._spawn(
            self._daily_loop(
                self.config.consolidation_hour, self.companion.consolidate_all, "consolidation"
            )
        )

    async def _post_shutdown(self, application: Application) -> None:
        """Called after Application.shutdown()."""
        for task in list(self._tasks):
            task.cancel()
        self.companion.close()

    def build_app(self) -> Application:
        """Build the Telegram application."""
        self._app = (
            Application.builder()
            .token(self.config.telegram_token)
            .post_init(self._post_init)
            .post_shutdown(self._post_shutdown)
            .build()
        )

        self._app.add_handler(CommandHandler("start", self._handle_start))
        self._app.add_handler(CommandHandler("forget", self._handle_forget))
        self._app.add_handler(
            MessageHandler(filters.TEXT & ~filters.COMMAND, self._handle_message)
        )
        return self._app

    def run(self) -> None:
        """Run the bot (blocking)."""
        self.companion.sync_persona_files()
        app = self.build_app()
        logger.info("Starting Telegram bot...")
        app.run_polling()
