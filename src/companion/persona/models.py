"""Data models for personas and the humans they talk to."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Frequency(Enum):
    """How often a persona reaches for a media type."""

    NEVER = "never"
    RARE = "rare"
    MODERATE = "moderate"
    FREQUENT = "frequent"


@dataclass(frozen=True)
class User:
    """A conversation participant.

    Attributes:
        chat_id: Transport chat identifier.
        name: Display name.
        id: Database ID, None for new users.
        last_interaction_at: Time of the most recent inbound message.
    """

    chat_id: str
    name: str = ""
    id: int | None = None
    last_interaction_at: datetime | None = None


@dataclass(frozen=True)
class Persona:
    """A configured companion identity.

    Attributes:
        name: Persona display name.
        system_prompt: Description of who the persona is.
        id: Database ID, None for new personas.
        user_id: The user this persona talks to, if bound.
        physical_traits: Appearance used for image prompts.
        wake_time: Local "HH:MM" the persona starts its day.
        sleep_time: Local "HH:MM" the persona goes to sleep.
        voice_frequency: How often voice notes are sent.
        image_frequency: How often images are generated.
        is_active: Inactive personas get no daily plan.
    """

    name: str
    system_prompt: str = ""
    id: int | None = None
    user_id: int | None = None
    physical_traits: str = ""
    wake_time: str = "08:00"
    sleep_time: str = "23:00"
    voice_frequency: Frequency = Frequency.MODERATE
    image_frequency: Frequency = Frequency.MODERATE
    is_active: bool = True
