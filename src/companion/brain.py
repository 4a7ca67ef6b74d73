"""Prompt construction and reply post-processing for personas.

The brain turns memory and conversation history into prompts, and turns
model output back into something deliverable: media tags are resolved into
generated images and voice notes, the mood tag is pulled out for storage,
and scheduling requests are collected for the event store. The persona is
always passed in explicitly.
"""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, tzinfo
from pathlib import Path
from typing import TYPE_CHECKING

from .conversation.store import format_transcript
from .events.models import EventType, ScheduledEvent
from .memory.extractor import load_json_object
from .memory.models import OUTFIT_CATEGORIES, Fact
from .memory.selector import RelevanceSelector
from .media.image import ImageGenerator, build_image_prompt
from .persona import Frequency, Persona
from .storage import as_utc, utcnow

if TYPE_CHECKING:
    from .conversation.store import Message
    from .llm import GroqLLMClient
    from .media.voice import VoiceGenerator

logger = logging.getLogger(__name__)

CHAT_APOLOGY = "Adoi, ada masalah sikit... Cuba tanya sekali lagi? 💭"

NO_REPLY = "[NO_REPLY]"
SPLIT = "<SPLIT>"
IMAGE_FAILED = "[Failed to generate image]"
VOICE_FAILED = "[Failed to generate voice note]"

_GENERATE_IMAGE_TAG = re.compile(r"\[GENERATE_IMAGE:\s*(.+?)\]", re.I)
_SEND_VOICE_TAG = re.compile(r"\[SEND_VOICE:\s*(.+?)\]", re.I)
_IMAGE_TAG = re.compile(r"\[IMAGE:\s*(.+?)\]")
_AUDIO_TAG = re.compile(r"\[AUDIO:\s*(.+?)\]")
_MOOD_TAG = re.compile(r"\[MOOD:\s*(.+?)\]")
_SCHEDULE_TAG = re.compile(
    r"\[SCHEDULE:\s*(\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2})\s*\|\s*(.+?)\]", re.I
)

_VOICE_GUIDANCE = {
    Frequency.RARE: "Use voice notes VERY SPARINGLY - only for extremely special, "
    "emotional moments (birthdays, milestones, deeply heartfelt messages).",
    Frequency.MODERATE: "Use voice notes OCCASIONALLY for intimate or emotional messages "
    "- but prefer text most of the time.",
    Frequency.FREQUENT: "You can use voice notes for emotional, intimate, or expressive "
    "messages when text doesn't capture the right feeling.",
}

_IMAGE_GUIDANCE = {
    Frequency.RARE: "Generate images VERY RARELY - only when the user explicitly asks "
    "for photos/selfies.",
    Frequency.MODERATE: "Generate images OCCASIONALLY when the conversation naturally "
    "calls for it (user asks for a photo/selfie, or a specific visual situation).",
    Frequency.FREQUENT: "You can generate images when it makes sense in the conversation "
    "or to enhance emotional connection.",
}

CHAT_PROMPT = """MEMORY CONTEXT:
{memory}

CONVERSATION HISTORY:
{history}

INSTRUCTIONS:
- Respond naturally as the persona, taking into account the memory context and conversation history.
- If your feelings changed, add a hidden tag [MOOD: Emotion because Reason].
- If the conversation has clearly ended and no reply is needed, answer with exactly [NO_REPLY].
- If the user mentions a future plan you should follow up on, add
  [SCHEDULE: YYYY-MM-DD HH:MM | what to ask or say then]. The current time is {now}.
{media}

CRITICAL FORMATTING RULE (MUST FOLLOW):
- NEVER send walls of text or multiple paragraphs in one message
- ALWAYS separate each distinct thought, question, or paragraph with <SPLIT>
- Example: "Good morning sayang! <SPLIT> Did you sleep well? <SPLIT> I missed you 💕"
"""

EVENT_PROMPT = """YOUR CURRENT MOOD:
{mood}

RECENT CONVERSATION:
{history}

TASK: It is now {now}. Earlier you planned to reach out to the user with this intention:
"{instruction}"
{type_hint}
Write the message you send right now. Stay in character, let your current mood and the
recent conversation shape it, and do not mention that it was planned.
Separate distinct thoughts with <SPLIT>.
"""

_EVENT_TYPE_HINTS = {
    EventType.TEXT: "This is a text message.",
    EventType.IMAGE_GENERATION: "A photo of this scene will be attached; "
    "write a short, natural caption for it.",
}

PLAN_PROMPT = """MEMORY CONTEXT:
{memory}

TASK: Generate a daily plan with {count} events for today ({today}).
- Wake time: {wake}
- Sleep time: {sleep}
- Spread the events throughout the day, between wake and sleep time
- Mix text messages and image generation prompts
- Each "content" is an instruction for your future self, e.g. "Ask how the meeting went"
- Use type "text" for text messages and "image_generation" for image prompts

Also decide on your outfit for the day:
- A daily outfit (e.g. "white floral sundress", "casual jeans and pink hoodie")
- Nightwear (e.g. "silk pajamas", "oversized t-shirt")

OUTPUT FORMAT (JSON object only, no markdown):
{{
  "daily_outfit": "white floral sundress with sandals",
  "night_outfit": "silk pajamas",
  "events": [
    {{"type": "text", "content": "Send a morning greeting, ask how they slept", "scheduled_at": "{today} 08:00"}},
    {{"type": "image_generation", "content": "A cozy coffee shop with morning sunlight", "scheduled_at": "{today} 10:30"}}
  ]
}}
"""


@dataclass(frozen=True)
class ScheduleRequest:
    """A follow-up the persona asked to schedule during a conversation."""

    scheduled_at: datetime
    instruction: str


@dataclass
class BrainReply:
    """A processed model reply, ready to deliver.

    Attributes:
        text: Visible text, message parts separated by <SPLIT>.
        image_url: Generated image to send, if any.
        voice_path: Generated voice note to send, if any.
        mood: New mood reported by the model, if any.
        schedule: Follow-ups requested by the model.
        no_reply: The model chose not to answer.
    """

    text: str = ""
    image_url: str | None = None
    voice_path: Path | None = None
    mood: str | None = None
    schedule: list[ScheduleRequest] = field(default_factory=list)
    no_reply: bool = False

    @property
    def parts(self) -> list[str]:
        """Non-empty message parts, in order."""
        return [part.strip() for part in self.text.split(SPLIT) if part.strip()]

    @property
    def caption(self) -> str:
        return "\n".join(self.parts)


@dataclass(frozen=True)
class PlannedEvent:
    type: EventType
    content: str
    scheduled_at: datetime


@dataclass
class DailyPlan:
    """Events and outfits for one persona-day."""

    events: list[PlannedEvent] = field(default_factory=list)
    daily_outfit: str | None = None
    night_outfit: str | None = None
    is_fallback: bool = False


def localize(moment: datetime, tz: tzinfo | None) -> datetime:
    """Attach the local timezone to a naive wall-clock time."""
    if moment.tzinfo is not None:
        return moment
    return moment.replace(tzinfo=tz) if tz is not None else moment.astimezone()


def parse_wall_clock(value: str, tz: tzinfo | None) -> datetime | None:
    """Parse 'YYYY-MM-DD HH:MM[:SS]' as local time, None if invalid."""
    try:
        return localize(datetime.fromisoformat(value.strip()), tz)
    except (TypeError, ValueError):
        return None


def media_instructions(persona: Persona) -> str:
    """Tell the model which media tags it may use, and how often."""
    instructions = []
    if persona.voice_frequency is not Frequency.NEVER:
        instructions.append(
            "- To send a voice note, use the tag: [SEND_VOICE: text to speak]\n"
            f"  {_VOICE_GUIDANCE[persona.voice_frequency]}\n"
            "  Keep voice messages short and natural (1-2 sentences)."
        )
    if persona.image_frequency is not Frequency.NEVER:
        instructions.append(
            "- To send a photo of yourself, use the tag: [GENERATE_IMAGE: description]\n"
            f"  {_IMAGE_GUIDANCE[persona.image_frequency]}\n"
            "  Keep descriptions appropriate; use safe settings like coffee shops, parks, "
            "streets, studios, bright rooms."
        )
    return "\n".join(instructions)


def parse_reply(text: str, tz: tzinfo | None = None) -> BrainReply:
    """Split resolved model output into visible text and side effects."""
    stripped = text.strip()
    if stripped == NO_REPLY:
        return BrainReply(no_reply=True)

    reply = BrainReply()
    mood = _MOOD_TAG.search(stripped)
    if mood:
        reply.mood = mood.group(1).strip()

    for match in _SCHEDULE_TAG.finditer(stripped):
        scheduled_at = parse_wall_clock(match.group(1), tz)
        if scheduled_at is None:
            logger.warning("Ignoring schedule tag with invalid time: %s", match.group(0))
            continue
        reply.schedule.append(ScheduleRequest(scheduled_at, match.group(2).strip()))

    image = _IMAGE_TAG.search(stripped)
    if image:
        reply.image_url = image.group(1).strip()
    audio = _AUDIO_TAG.search(stripped)
    if audio:
        reply.voice_path = Path(audio.group(1).strip())

    visible = stripped
    for pattern in (_MOOD_TAG, _SCHEDULE_TAG, _IMAGE_TAG, _AUDIO_TAG):
        visible = pattern.sub("", visible)
    visible = visible.replace(IMAGE_FAILED, "").replace(VOICE_FAILED, "")
    visible = visible.replace(NO_REPLY, "")
    reply.text = re.sub(r"[ \t]{2,}", " ", visible).strip()
    return reply


class Brain:
    """Generates chat replies, event messages and daily plans."""

    def __init__(
        self,
        llm: GroqLLMClient,
        selector: RelevanceSelector,
        image_generator: ImageGenerator | None = None,
        voice_generator: VoiceGenerator | None = None,
        tz: tzinfo | None = None,
    ) -> None:
        """Initialize the brain.

        Args:
            llm: Text generation backend.
            selector: Formats memory and resolves the current outfit.
            image_generator: Resolves [GENERATE_IMAGE] tags; tags fail without it.
            voice_generator: Resolves [SEND_VOICE] tags; tags fail without it.
            tz: Local timezone of the personas' day.
        """
        self.llm = llm
        self.selector = selector
        self.image_generator = image_generator
        self.voice_generator = voice_generator
        self.tz = tz

    def _local_now(self, now: datetime | None) -> datetime:
        return as_utc(now or utcnow()).astimezone(self.tz)

    async def generate_chat_response(
        self,
        persona: Persona,
        history: list[Message],
        facts: list[Fact],
        now: datetime | None = None,
    ) -> BrainReply:
        """Answer the latest turn of a conversation.

        Never raises: any failure yields the canned apology.
        """
        try:
            prompt = CHAT_PROMPT.format(
                memory=self.selector.format_for_prompt(facts, now),
                history=format_transcript(history),
                now=self._local_now(now).strftime("%Y-%m-%d %H:%M (%A)"),
                media=media_instructions(persona),
            )
            text = await self.llm.complete(prompt, system=persona.system_prompt, temperature=0.9)
            text = await self.process_media_tags(text, persona, now)
            return parse_reply(text, self.tz)
        except Exception as e:
            logger.error("Chat response generation failed for persona %s: %s", persona.id, e)
            return BrainReply(text=CHAT_APOLOGY)

    async def generate_event_response(
        self,
        event: ScheduledEvent,
        persona: Persona,
        mood: str | None,
        history: list[Message],
        now: datetime | None = None,
    ) -> BrainReply:
        """Expand an event instruction into the message sent right now.

        Raises:
            Exception: Backend errors propagate so the event can be retried.
        """
        prompt = EVENT_PROMPT.format(
            mood=mood or "Neutral",
            history=format_transcript(history),
            now=self._local_now(now).strftime("%Y-%m-%d %H:%M (%A)"),
            instruction=event.context_prompt,
            type_hint=_EVENT_TYPE_HINTS.get(event.type, ""),
        )
        text = await self.llm.complete(
            prompt, system=persona.system_prompt, temperature=0.9, fallback=False
        )
        text = await self.process_media_tags(text, persona, now)
        return parse_reply(text, self.tz)

    async def generate_daily_plan(
        self,
        persona: Persona,
        facts: list[Fact],
        today: date,
        now: datetime | None = None,
    ) -> DailyPlan:
        """Plan a day of proactive events and outfits.

        Falls back to three plain check-ins when the model's plan is unusable.
        """
        prompt = PLAN_PROMPT.format(
            memory=self.selector.format_for_prompt(facts, now),
            count=random.randint(3, 7),
            today=today.isoformat(),
            wake=persona.wake_time,
            sleep=persona.sleep_time,
        )
        try:
            content = await self.llm.complete(
                prompt,
                system=persona.system_prompt,
                temperature=0.7,
                json_mode=True,
                fallback=False,
            )
        except Exception as e:
            logger.error("Daily plan generation failed for persona %s: %s", persona.id, e)
            return self.fallback_plan(persona, today)

        data = load_json_object(content)
        if data is None or not isinstance(data.get("events"), list):
            logger.warning("Invalid daily plan response for persona %s", persona.id)
            return self.fallback_plan(persona, today)

        events = []
        for item in data["events"]:
            planned = self._parse_planned_event(item)
            if planned is None:
                logger.warning("Skipping invalid planned event: %s", item)
                continue
            events.append(planned)
        if not events:
            return self.fallback_plan(persona, today)

        return DailyPlan(
            events=events,
            daily_outfit=_optional_text(data.get("daily_outfit")),
            night_outfit=_optional_text(data.get("night_outfit")),
        )

    def _parse_planned_event(self, item: object) -> PlannedEvent | None:
        if not isinstance(item, dict):
            return None
        content = _optional_text(item.get("content"))
        scheduled_at = parse_wall_clock(str(item.get("scheduled_at", "")), self.tz)
        if content is None or scheduled_at is None:
            return None
        raw_type = str(item.get("type", "")).lower()
        event_type = (
            EventType.IMAGE_GENERATION
            if raw_type in ("image_generation", "image")
            else EventType.TEXT
        )
        return PlannedEvent(type=event_type, content=content, scheduled_at=scheduled_at)

    def fallback_plan(self, persona: Persona, today: date) -> DailyPlan:
        def at(clock: str) -> datetime:
            hour, minute = (int(x) for x in clock.split(":"))
            return localize(datetime.combine(today, time(hour, minute)), self.tz)

        return DailyPlan(
            events=[
                PlannedEvent(EventType.TEXT, "Good morning! 🌅", at(persona.wake_time)),
                PlannedEvent(EventType.TEXT, "How are you doing today?", at("12:00")),
                PlannedEvent(EventType.TEXT, "Hope your day is going well! ✨", at("16:00")),
            ],
            is_fallback=True,
        )

    async def generate_image(
        self, description: str, persona: Persona, now: datetime | None = None
    ) -> str | None:
        """Generate a photo of the persona, dressed for the time of day."""
        if self.image_generator is None:
            logger.warning("No image generator configured")
            return None
        outfits = self.selector.store.with_categories(persona.id, OUTFIT_CATEGORIES)  # type: ignore[arg-type]
        outfit = self.selector.current_outfit(outfits, now)
        try:
            return await self.image_generator.generate(
                build_image_prompt(description, persona, outfit)
            )
        except Exception as e:
            logger.error("Image generation failed for persona %s: %s", persona.id, e)
            return None

    async def process_media_tags(
        self, text: str, persona: Persona, now: datetime | None = None
    ) -> str:
        """Resolve the first image and voice request tags in a reply.

        [GENERATE_IMAGE: d] becomes [IMAGE: url] and [SEND_VOICE: t] becomes
        [AUDIO: path]; a failed generation leaves a failure marker instead.
        """
        image_request = _GENERATE_IMAGE_TAG.search(text)
        if image_request:
            url = await self.generate_image(image_request.group(1).strip(), persona, now)
            replacement = f"[IMAGE: {url}]" if url else IMAGE_FAILED
            text = _GENERATE_IMAGE_TAG.sub(lambda _: replacement, text)

        voice_request = _SEND_VOICE_TAG.search(text)
        if voice_request:
            path = None
            if self.voice_generator is None:
                logger.warning("No voice generator configured")
            else:
                try:
                    path = await self.voice_generator.generate(voice_request.group(1).strip())
                except Exception as e:
                    logger.error("Voice generation failed for persona %s: %s", persona.id, e)
            replacement = f"[AUDIO: {path}]" if path else VOICE_FAILED
            text = _SEND_VOICE_TAG.sub(lambda _: replacement, text)

        return text


def _optional_text(raw: object) -> str | None:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None
