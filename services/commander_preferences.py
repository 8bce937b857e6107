"""Learn which archetype functions correlate with a commander's tournament success.

For each commander with enough history, look at its successful entries
(top cut, or top quarter of the field) and record, per archetype function,
the share of those decks that run it (`weight`) and the typical number of
matching cards per deck (`recommended_count`).
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import Integer, cast, delete, func, or_, select

from extensions import db
from models import (
    ArchetypeCategory,
    ArchetypeFunction,
    CardArchetype,
    Commander,
    CommanderArchetypeWeight,
    DecklistItem,
    Entry,
    Tournament,
)
from utils.exceptions import JobCancelled

_LOG = logging.getLogger(__name__)

MIN_TOTAL_ENTRIES = 5
MIN_SUCCESSFUL_ENTRIES = 3
MIN_CLASSIFICATION_CONFIDENCE = 0.5
MIN_DECK_SHARE = 0.2
MIN_PERSISTED_WEIGHT = 0.2

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class FunctionUsage:
    function_id: int
    deck_count: int
    total_card_inclusions: int


@dataclass(frozen=True)
class CommanderPreference:
    function_id: int
    weight: float
    recommended_count: int


def is_successful(standing: int, top_cut: int | None, size: int | None) -> bool:
    """Top cut, or the top quarter of the field (floor(size / 4))."""
    if standing is None:
        return False
    if top_cut is not None and standing <= top_cut:
        return True
    return standing <= int((size or 0) / 4.0)


def successful_entry_clause():
    return or_(
        Entry.standing <= Tournament.top_cut,
        Entry.standing <= cast(Tournament.size / 4.0, Integer),
    )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def deck_count_floor(successful_count: int) -> int:
    return math.ceil(successful_count * MIN_DECK_SHARE)


def aggregate_preferences(successful_count: int, usages: Iterable[FunctionUsage]) -> List[CommanderPreference]:
    """Turn per-function usage counts into persisted preferences.

    Pure; applies the noise floor, the weight formula and the persistence
    threshold. Returns [] below MIN_SUCCESSFUL_ENTRIES.
    """
    if successful_count < MIN_SUCCESSFUL_ENTRIES:
        return []
    floor = deck_count_floor(successful_count)
    out: List[CommanderPreference] = []
    for usage in usages:
        if usage.deck_count <= 0 or usage.deck_count < floor:
            continue
        weight = min(usage.deck_count / successful_count, 1.0)
        recommended = max(1, _round_half_up(usage.total_card_inclusions / usage.deck_count))
        if recommended > 0 and weight > MIN_PERSISTED_WEIGHT:
            out.append(CommanderPreference(usage.function_id, weight, recommended))
    out.sort(key=lambda p: p.function_id)
    return out


def eligible_commanders(min_entries: int = MIN_TOTAL_ENTRIES) -> List[Tuple[int, str]]:
    stmt = (
        select(Commander.id, Commander.name)
        .join(Entry, Entry.commander_id == Commander.id)
        .group_by(Commander.id, Commander.name)
        .having(func.count(Entry.id) >= min_entries)
        .order_by(Commander.id.asc())
    )
    return [(int(cid), name) for cid, name in db.session.execute(stmt).all()]


def successful_entry_ids(commander_id: int) -> List[int]:
    stmt = (
        select(Entry.id)
        .join(Tournament, Tournament.id == Entry.tournament_id)
        .where(Entry.commander_id == commander_id)
        .where(successful_entry_clause())
        .order_by(Entry.id.asc())
    )
    return [int(eid) for eid in db.session.execute(stmt).scalars().all()]


def function_usage(entry_ids: Sequence[int]) -> List[FunctionUsage]:
    if not entry_ids:
        return []
    stmt = (
        select(
            CardArchetype.function_id,
            func.count(func.distinct(DecklistItem.entry_id)).label("deck_count"),
            func.count().label("total_cards"),
        )
        .select_from(DecklistItem)
        .join(CardArchetype, CardArchetype.card_id == DecklistItem.card_id)
        .where(DecklistItem.entry_id.in_(list(entry_ids)))
        .where(CardArchetype.confidence > MIN_CLASSIFICATION_CONFIDENCE)
        .group_by(CardArchetype.function_id)
        .order_by(CardArchetype.function_id.asc())
    )
    return [
        FunctionUsage(int(function_id), int(deck_count), int(total_cards))
        for function_id, deck_count, total_cards in db.session.execute(stmt).all()
    ]


def compute_for_commander(commander_id: int) -> List[CommanderPreference]:
    entry_ids = successful_entry_ids(commander_id)
    if len(entry_ids) < MIN_SUCCESSFUL_ENTRIES:
        return []
    return aggregate_preferences(len(entry_ids), function_usage(entry_ids))


def _persist(commander_id: int, preferences: Sequence[CommanderPreference]) -> int:
    db.session.execute(
        delete(CommanderArchetypeWeight).where(CommanderArchetypeWeight.commander_id == commander_id)
    )
    for pref in preferences:
        db.session.add(
            CommanderArchetypeWeight(
                commander_id=commander_id,
                function_id=pref.function_id,
                weight=pref.weight,
                recommended_count=pref.recommended_count,
            )
        )
    db.session.commit()
    return len(preferences)


def compute_all_commander_preferences(
    *,
    progress_cb: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
) -> dict:
    """Rebuild commander_archetype_weights for every eligible commander."""
    _LOG.info("Calculating commander archetype preferences")

    db.session.execute(delete(CommanderArchetypeWeight))
    db.session.commit()

    commanders = eligible_commanders()
    _LOG.info("Found %s commanders with sufficient data", len(commanders))

    processed = 0
    with_weights = 0
    weights_written = 0
    failures = 0
    for commander_id, name in commanders:
        if cancel_event is not None and cancel_event.is_set():
            raise JobCancelled(f"Aggregation cancelled after {processed}/{len(commanders)} commanders.")
        try:
            written = _persist(commander_id, compute_for_commander(commander_id))
        except Exception as exc:
            db.session.rollback()
            failures += 1
            _LOG.warning("Failed to calculate preferences for %s: %s", name, exc)
            continue

        processed += 1
        weights_written += written
        if written:
            with_weights += 1
        if processed % 10 == 0:
            _LOG.info("Processed %s/%s commanders", processed, len(commanders))
        if progress_cb:
            progress_cb(processed, len(commanders))

    _LOG.info("Commander preferences calculation completed")
    return {
        "commanders_eligible": len(commanders),
        "commanders_processed": processed,
        "commanders_with_weights": with_weights,
        "weights_written": weights_written,
        "failures": failures,
    }


def commander_weights(commander_id: int) -> List[dict]:
    """Persisted weights for one commander, strongest first."""
    rows = db.session.execute(
        select(CommanderArchetypeWeight, ArchetypeFunction.name, ArchetypeCategory.name)
        .join(ArchetypeFunction, ArchetypeFunction.id == CommanderArchetypeWeight.function_id)
        .join(ArchetypeCategory, ArchetypeCategory.id == ArchetypeFunction.category_id)
        .where(CommanderArchetypeWeight.commander_id == commander_id)
        .order_by(CommanderArchetypeWeight.weight.desc(), ArchetypeFunction.name.asc())
    ).all()
    return [
        {
            "function_id": weight.function_id,
            "function": function_name,
            "category": category_name,
            "weight": weight.weight,
            "recommended_count": weight.recommended_count,
        }
        for weight, function_name, category_name in rows
    ]


__all__ = [
    "CommanderPreference",
    "FunctionUsage",
    "MIN_SUCCESSFUL_ENTRIES",
    "MIN_TOTAL_ENTRIES",
    "aggregate_preferences",
    "commander_weights",
    "compute_all_commander_preferences",
    "compute_for_commander",
    "deck_count_floor",
    "eligible_commanders",
    "function_usage",
    "is_successful",
    "successful_entry_ids",
]
