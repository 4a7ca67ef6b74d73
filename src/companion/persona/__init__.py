"""Persona definitions and storage."""

from .models import Frequency, Persona, User
from .parser import (
    PersonaDefinition,
    PersonaParseError,
    PersonaValidationError,
    load_persona_dir,
    parse_persona_content,
    parse_persona_file,
    sync_personas,
)
from .store import PersonaStore

__all__ = [
    "Frequency",
    "Persona",
    "PersonaDefinition",
    "PersonaParseError",
    "PersonaStore",
    "PersonaValidationError",
    "User",
    "load_persona_dir",
    "parse_persona_content",
    "parse_persona_file",
    "sync_personas",
]
