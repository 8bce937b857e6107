"""SQLAlchemy models package.
Re-exports the shared `db` instance to avoid import loops and provides
convenient names for the model classes.

Usage:
    from models import db, Card, ArchetypeFunction, CardArchetype
"""
from __future__ import annotations

from extensions import db  # shared SQLAlchemy() instance

# Import models only after db exists to avoid circular imports
from .card import Card  # type: ignore F401
from .archetype import (  # type: ignore F401
    ArchetypeCategory,
    ArchetypeFunction,
    CardArchetype,
    CommanderArchetypeWeight,
)
from .tournament import Commander, DecklistItem, Entry, Tournament  # type: ignore F401

__all__ = [
    "db",
    "Card",
    "ArchetypeCategory",
    "ArchetypeFunction",
    "CardArchetype",
    "CommanderArchetypeWeight",
    "Commander",
    "DecklistItem",
    "Entry",
    "Tournament",
]
