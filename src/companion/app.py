"""Wiring of the companion's stores, engines and workers."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from groq import AsyncGroq

from .activity import ActivityTracker
from .brain import Brain
from .config import CompanionConfig
from .conversation.buffer import ChatBuffer
from .conversation.delivery import ChatTransport, ReplySender
from .conversation.responder import ChatResponder
from .conversation.store import MessageStore
from .events.executor import EventExecutor
from .events.runner import EventRunner
from .events.scheduler import AdaptiveScheduler
from .events.store import EventStore
from .llm import GroqLLMClient
from .media.image import KieAiImageGenerator
from .media.voice import VoiceGenerator
from .memory.consolidator import Consolidator
from .memory.extractor import FactExtractor
from .memory.manager import MemoryManager
from .memory.selector import RelevanceSelector
from .memory.store import MemoryStore
from .persona import PersonaStore, load_persona_dir, sync_personas
from .planning import DailyPlanner
from .storage import Database

logger = logging.getLogger(__name__)


@dataclass
class Companion:
    """Every long-lived component of a running companion."""

    config: CompanionConfig
    db: Database
    personas: PersonaStore
    memory: MemoryStore
    messages: MessageStore
    events: EventStore
    activity: ActivityTracker
    selector: RelevanceSelector
    memory_manager: MemoryManager
    brain: Brain
    buffer: ChatBuffer
    sender: ReplySender
    responder: ChatResponder
    scheduler: AdaptiveScheduler
    executor: EventExecutor
    runner: EventRunner
    planner: DailyPlanner

    async def consolidate_all(self) -> int:
        """Run a consolidation pass for every active persona.

        Returns:
            Number of personas consolidated.
        """
        done = 0
        for persona in self.personas.list_active():
            if await self.memory_manager.consolidate_persona_facts(persona) is not None:
                done += 1
        return done

    def sync_persona_files(self) -> int:
        """Load persona definitions from the persona directory into the database."""
        definitions = load_persona_dir(self.config.persona_dir)
        synced = sync_personas(self.personas, definitions)
        if synced:
            logger.info("Synced %d personas from %s", len(synced), self.config.persona_dir)
        return len(synced)

    def close(self) -> None:
        self.buffer.cancel_all()
        self.db.close()


def build_companion(
    config: CompanionConfig,
    transport: ChatTransport,
    llm: GroqLLMClient | None = None,
) -> Companion:
    """Create the database and every component on top of it."""
    db = Database(config.db_path)
    db.init_db()
    tz = config.tz

    personas = PersonaStore(db)
    memory = MemoryStore(db)
    messages = MessageStore(db)
    events = EventStore(db)
    activity = ActivityTracker(db, active_window=config.active_window)
    selector = RelevanceSelector(memory, recency_days=config.memory_recency_days, tz=tz)

    if llm is None:
        llm = GroqLLMClient(AsyncGroq(api_key=config.groq_api_key), model=config.model)
    memory_manager = MemoryManager(
        memory,
        extractor=FactExtractor(llm),
        consolidator=Consolidator(llm),
        messages=messages,
    )

    image_generator = KieAiImageGenerator(config.kie_api_key) if config.kie_api_key else None
    voice_generator = None
    if config.elevenlabs_api_key and config.elevenlabs_voice_id:
        voice_generator = VoiceGenerator(
            config.elevenlabs_api_key, config.elevenlabs_voice_id, config.media_dir
        )
    brain = Brain(llm, selector, image_generator, voice_generator, tz=tz)

    buffer = ChatBuffer(debounce_seconds=config.debounce_seconds)
    sender = ReplySender(transport, messages)
    responder = ChatResponder(buffer, messages, memory_manager, selector, events, brain, sender)

    scheduler = AdaptiveScheduler(
        events, personas, activity, reschedule_delay=config.reschedule_delay
    )
    executor = EventExecutor(personas, memory, messages, brain, sender)
    runner = EventRunner(
        events,
        scheduler,
        executor,
        on_give_up=executor.apologize,
        max_attempts=config.event_max_attempts,
    )
    planner = DailyPlanner(personas, events, memory_manager, selector, brain, tz=tz)

    return Companion(
        config=config,
        db=db,
        personas=personas,
        memory=memory,
        messages=messages,
        events=events,
        activity=activity,
        selector=selector,
        memory_manager=memory_manager,
        brain=brain,
        buffer=buffer,
        sender=sender,
        responder=responder,
        scheduler=scheduler,
        executor=executor,
        runner=runner,
        planner=planner,
    )
