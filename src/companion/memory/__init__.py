"""Persona memory: fact storage, selection, reconciliation and consolidation."""

from .consolidator import Consolidator
from .extractor import FactExtractor
from .manager import MemoryManager
from .models import (
    ConsolidationPlan,
    Fact,
    FactDiff,
    FactDraft,
    FactRevision,
    FactUpdate,
    Malformed,
)
from .selector import CORE_CATEGORIES, KEYWORD_TABLE, RelevanceSelector
from .store import MemoryStore

__all__ = [
    "CORE_CATEGORIES",
    "ConsolidationPlan",
    "Consolidator",
    "Fact",
    "FactDiff",
    "FactDraft",
    "FactExtractor",
    "FactRevision",
    "FactUpdate",
    "KEYWORD_TABLE",
    "Malformed",
    "MemoryManager",
    "MemoryStore",
    "RelevanceSelector",
]
