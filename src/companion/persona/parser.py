"""Parser for persona definition files with YAML frontmatter.

A persona is described by a Markdown file: the frontmatter holds the
structured settings (name, schedule, media preferences, chat binding) and
the body is the persona's system description. Uses python-frontmatter for
robust parsing.
"""

import logging
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import frontmatter

from .models import Frequency, Persona
from .store import PersonaStore

logger = logging.getLogger(__name__)

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class PersonaParseError(Exception):
    """Raised when a persona file cannot be parsed."""

    pass


class PersonaValidationError(PersonaParseError):
    """Raised when persona frontmatter fails validation."""

    pass


@dataclass(frozen=True)
class PersonaDefinition:
    """A parsed persona file.

    Attributes:
        persona: The persona settings (no id yet).
        chat_id: Chat the persona talks to, if configured.
        path: File the definition was read from.
    """

    persona: Persona
    chat_id: str | None = None
    path: Path | None = None


def _parse_bool(value: Any, default: bool = True) -> bool:
    """Parse a frontmatter flag, accepting common false-like strings."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.lower().strip()
        if lowered in ("false", "no", "0", "off"):
            return False
        return lowered in ("true", "yes", "1", "on")
    return default


def _parse_time(meta: dict[str, Any], key: str, default: str) -> str:
    raw = meta.get(key, default)
    # YAML reads an unquoted 08:00 as a sexagesimal int
    if isinstance(raw, int):
        raw = f"{raw // 60:02d}:{raw % 60:02d}"
    value = str(raw).strip()
    if not _TIME_PATTERN.match(value):
        raise PersonaValidationError(f"Field '{key}' must be HH:MM, got {value!r}")
    return value


def _parse_frequency(meta: dict[str, Any], key: str) -> Frequency:
    raw = str(meta.get(key, Frequency.MODERATE.value)).lower().strip()
    try:
        return Frequency(raw)
    except ValueError:
        allowed = ", ".join(f.value for f in Frequency)
        raise PersonaValidationError(
            f"Field '{key}' must be one of {allowed}, got {raw!r}"
        ) from None


def parse_persona_content(content: str, path: Path | None = None) -> PersonaDefinition:
    """Parse persona file content.

    Args:
        content: Raw file content.
        path: Optional path for context.

    Returns:
        The parsed PersonaDefinition.

    Raises:
        PersonaParseError: If the content cannot be parsed.
        PersonaValidationError: If required fields are missing or invalid.
    """
    try:
        post = frontmatter.loads(content)
    except Exception as e:
        raise PersonaParseError(f"Failed to parse frontmatter: {e}") from e

    meta = post.metadata
    body = post.content.strip()

    if "name" not in meta:
        raise PersonaValidationError("Missing required field: name")
    name = str(meta["name"]).strip()
    if not name:
        raise PersonaValidationError("Field 'name' cannot be empty")
    if not body:
        raise PersonaValidationError("Persona description (file body) cannot be empty")

    chat_id = meta.get("chat_id")

    persona = Persona(
        name=name,
        system_prompt=body,
        physical_traits=str(meta.get("physical_traits", "")).strip(),
        wake_time=_parse_time(meta, "wake_time", "08:00"),
        sleep_time=_parse_time(meta, "sleep_time", "23:00"),
        voice_frequency=_parse_frequency(meta, "voice_frequency"),
        image_frequency=_parse_frequency(meta, "image_frequency"),
        is_active=_parse_bool(meta.get("active", True)),
    )
    return PersonaDefinition(
        persona=persona,
        chat_id=str(chat_id).strip() if chat_id is not None else None,
        path=path,
    )


def parse_persona_file(path: Path) -> PersonaDefinition:
    """Parse a persona definition file.

    Raises:
        PersonaParseError: If the file cannot be read or parsed.
    """
    if not path.is_file():
        raise PersonaParseError(f"Persona file not found: {path}")
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise PersonaParseError(f"Cannot read persona file {path}: {e}") from e
    return parse_persona_content(content, path=path)


def load_persona_dir(directory: Path) -> list[PersonaDefinition]:
    """Parse every *.md file in a directory, skipping invalid ones."""
    if not directory.is_dir():
        logger.debug("No persona directory at %s", directory)
        return []

    definitions = []
    for path in sorted(directory.glob("*.md")):
        try:
            definitions.append(parse_persona_file(path))
        except PersonaParseError as e:
            logger.warning("Skipping persona file %s: %s", path, e)
    return definitions


def sync_personas(store: PersonaStore, definitions: list[PersonaDefinition]) -> list[Persona]:
    """Create or update personas from their definitions, matched by name.

    Returns:
        The stored personas, in definition order.
    """
    synced = []
    for definition in definitions:
        user_id = None
        if definition.chat_id:
            user_id = store.get_or_create_user(definition.chat_id).id

        existing = store.get_by_name(definition.persona.name)
        if existing is None:
            persona = store.create(replace(definition.persona, user_id=user_id))
        else:
            persona = store.update(
                replace(
                    definition.persona,
                    id=existing.id,
                    user_id=user_id or existing.user_id,
                )
            )
        synced.append(persona)
    return synced
