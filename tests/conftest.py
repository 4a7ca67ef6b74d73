"""Shared fixtures."""

from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from companion.logging import configure_logger
from companion.persona import Persona, PersonaStore, User
from companion.storage import Database, to_iso

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def jsonl_logger(tmp_path: Path):
    """Send structured logs to a temporary directory."""
    return configure_logger(tmp_path / "logs")


@pytest.fixture
def db(tmp_path: Path) -> Database:
    """Create a database in a temporary file."""
    database = Database(tmp_path / "companion.db")
    database.init_db()
    yield database
    database.close()


@pytest.fixture
def personas(db: Database) -> PersonaStore:
    return PersonaStore(db)


@pytest.fixture
def user(personas: PersonaStore) -> User:
    return personas.get_or_create_user("1001", "Lucas")


@pytest.fixture
def persona(personas: PersonaStore, user: User) -> Persona:
    return personas.create(
        Persona(
            name="Aina",
            system_prompt="You are Aina, a cheerful barista from Kuala Lumpur.",
            user_id=user.id,
            physical_traits="long black hair, brown eyes",
        )
    )


def insert_fact(
    db: Database,
    persona_id: int,
    fact_id: int,
    category: str,
    value: str,
    target: str = "user",
    updated_at: datetime = NOW,
    importance: int = 5,
) -> None:
    """Insert a fact with an explicit id and timestamp."""
    stamp = to_iso(updated_at)
    db.conn.execute(
        """
        INSERT INTO facts (id, persona_id, target, category, value, importance,
                           created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (fact_id, persona_id, target, category, value, importance, stamp, stamp),
    )
    db.commit()


def make_llm(*responses: str) -> Mock:
    """Create an LLM double whose complete() returns the given texts in order."""
    llm = Mock()
    llm.complete = AsyncMock(side_effect=list(responses))
    return llm


def make_transport() -> Mock:
    """Create a chat transport double on which every send succeeds."""
    transport = Mock()
    transport.send_message = AsyncMock(return_value=True)
    transport.send_photo = AsyncMock(return_value=True)
    transport.send_voice = AsyncMock(return_value=True)
    transport.send_chat_action = AsyncMock(return_value=True)
    return transport
