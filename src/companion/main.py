"""Companion entry point."""

import asyncio
import logging
import sys

from dotenv import find_dotenv, load_dotenv

from .config import CompanionConfig, config_from_env
from .logging import configure_logger

USAGE = """Usage: companion <command>

Commands:
  bot            Run the Telegram bot
  sync-personas  Load persona files into the database
  plan           Generate today's plan for every active persona
"""


def _run_plan(config: CompanionConfig) -> int:
    from .app import build_companion
    from .telegram import TelegramTransport

    companion = build_companion(config, TelegramTransport(config.telegram_token))
    try:
        plans = asyncio.run(companion.planner.plan_all())
    finally:
        companion.close()
    print(f"Planned {len(plans)} personas")
    return 0


def _run_sync(config: CompanionConfig) -> int:
    from .persona import PersonaStore, load_persona_dir, sync_personas
    from .storage import Database

    db = Database(config.db_path)
    db.init_db()
    try:
        synced = sync_personas(PersonaStore(db), load_persona_dir(config.persona_dir))
    finally:
        db.close()
    for persona in synced:
        print(f"  {persona.name} (id {persona.id})")
    print(f"Synced {len(synced)} personas from {config.persona_dir}")
    return 0


def main() -> None:
    """Main entry point."""
    load_dotenv(find_dotenv(usecwd=True))
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    command = sys.argv[1] if len(sys.argv) > 1 else "bot"
    config = config_from_env()
    configure_logger(config.log_dir)

    if command == "bot":
        from .telegram import TelegramBot

        TelegramBot(config).run()
        return
    if command == "sync-personas":
        sys.exit(_run_sync(config))
    if command == "plan":
        sys.exit(_run_plan(config))

    print(USAGE)
    sys.exit(2)


if __name__ == "__main__":
    main()
