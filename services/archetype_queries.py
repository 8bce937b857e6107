# services/archetype_queries.py
"""Read side of the archetype tables: per-card lookups, taxonomy listings,
archetype search and tournament meta breakdowns.

Taxonomy listings carry card counts and are memoised with flask-caching;
`invalidate_summaries()` is called after every classification rebuild.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import and_, case, distinct, func, or_, select

from extensions import cache, db
from models import (
    ArchetypeCategory,
    ArchetypeFunction,
    Card,
    CardArchetype,
    Commander,
    DecklistItem,
    Entry,
    Tournament,
)
from services.commander_preferences import successful_entry_clause
from services.time_periods import TimePeriod, min_date_from_time_period, parse_time_period

CARD_ARCHETYPE_FLOOR = 0.3
SUMMARY_CONFIDENCE = 0.5
SEARCH_DEFAULT_CONFIDENCE = 0.5
COMMANDER_ANALYSIS_MIN_DECKS = 3
COLORLESS = "C"


def _archetype_row(row: CardArchetype, function_name: str, category_name: str) -> dict:
    return {
        "card_id": row.card_id,
        "function_id": row.function_id,
        "function": function_name,
        "category": category_name,
        "confidence": row.confidence,
        "context_dependent": bool(row.context_dependent),
        "manual_override": bool(row.manual_override),
    }


def _card_archetype_stmt(card_id: int):
    return (
        select(CardArchetype, ArchetypeFunction.name, ArchetypeCategory.name)
        .join(ArchetypeFunction, ArchetypeFunction.id == CardArchetype.function_id)
        .join(ArchetypeCategory, ArchetypeCategory.id == ArchetypeFunction.category_id)
        .where(CardArchetype.card_id == card_id)
        .order_by(CardArchetype.confidence.desc(), ArchetypeFunction.name.asc())
    )


def card_archetypes(card_id: int, min_confidence: float = CARD_ARCHETYPE_FLOOR) -> List[dict]:
    """All archetypes of a card at or above `min_confidence`, strongest first."""
    stmt = _card_archetype_stmt(card_id).where(CardArchetype.confidence >= min_confidence)
    return [_archetype_row(*row) for row in db.session.execute(stmt).all()]


def primary_archetype(card_id: int) -> Optional[dict]:
    row = db.session.execute(_card_archetype_stmt(card_id).limit(1)).first()
    return _archetype_row(*row) if row else None


def card_archetype_categories(card_id: int) -> List[dict]:
    stmt = (
        select(ArchetypeCategory)
        .join(ArchetypeFunction, ArchetypeFunction.category_id == ArchetypeCategory.id)
        .join(CardArchetype, CardArchetype.function_id == ArchetypeFunction.id)
        .where(CardArchetype.card_id == card_id)
        .where(CardArchetype.confidence > SUMMARY_CONFIDENCE)
        .distinct()
        .order_by(ArchetypeCategory.priority.asc(), ArchetypeCategory.name.asc())
    )
    return [_category_dict(category) for category in db.session.execute(stmt).scalars().all()]


def _category_dict(category: ArchetypeCategory) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "color": category.color,
        "priority": category.priority,
    }


def _function_card_counts() -> dict:
    stmt = (
        select(CardArchetype.function_id, func.count(distinct(CardArchetype.card_id)))
        .where(CardArchetype.confidence > SUMMARY_CONFIDENCE)
        .group_by(CardArchetype.function_id)
    )
    return {int(fid): int(count) for fid, count in db.session.execute(stmt).all()}


def _category_card_counts() -> dict:
    stmt = (
        select(ArchetypeFunction.category_id, func.count(distinct(CardArchetype.card_id)))
        .join(ArchetypeFunction, ArchetypeFunction.id == CardArchetype.function_id)
        .where(CardArchetype.confidence > SUMMARY_CONFIDENCE)
        .group_by(ArchetypeFunction.category_id)
    )
    return {int(cid): int(count) for cid, count in db.session.execute(stmt).all()}


def _function_dict(fn: ArchetypeFunction, counts: dict) -> dict:
    return {
        "id": fn.id,
        "category_id": fn.category_id,
        "name": fn.name,
        "description": fn.description,
        "keywords": fn.keyword_list,
        "patterns": fn.pattern_list,
        "card_count": counts.get(fn.id, 0),
    }


@cache.memoize(timeout=300)
def _category_listing() -> List[dict]:
    function_counts = _function_card_counts()
    category_counts = _category_card_counts()
    categories = db.session.execute(
        select(ArchetypeCategory).order_by(ArchetypeCategory.priority.asc(), ArchetypeCategory.name.asc())
    ).scalars().all()
    out = []
    for category in categories:
        payload = _category_dict(category)
        payload["card_count"] = category_counts.get(category.id, 0)
        payload["functions"] = [_function_dict(fn, function_counts) for fn in category.functions]
        out.append(payload)
    return out


@cache.memoize(timeout=300)
def _function_listing(category_id: Optional[int]) -> List[dict]:
    counts = _function_card_counts()
    stmt = select(ArchetypeFunction).order_by(ArchetypeFunction.name.asc(), ArchetypeFunction.id.asc())
    if category_id:
        stmt = stmt.where(ArchetypeFunction.category_id == category_id)
    return [_function_dict(fn, counts) for fn in db.session.execute(stmt).scalars().all()]


def list_categories() -> List[dict]:
    """Categories by priority, each with its functions and distinct card counts."""
    return _category_listing()


def list_functions(category_id: Optional[int] = None) -> List[dict]:
    return _function_listing(int(category_id) if category_id else None)


def invalidate_summaries() -> None:
    cache.delete_memoized(_category_listing)
    cache.delete_memoized(_function_listing)


@dataclass
class ArchetypeSearchFilters:
    categories: List[str] = field(default_factory=list)
    functions: List[str] = field(default_factory=list)
    min_confidence: float = SEARCH_DEFAULT_CONFIDENCE
    context_dependent: Optional[bool] = None
    colors: List[str] = field(default_factory=list)
    cmc_min: Optional[float] = None
    cmc_max: Optional[float] = None
    types: List[str] = field(default_factory=list)


def _json_field(path: str):
    # json_extract raises on malformed blobs, so only read valid JSON
    return case((func.json_valid(Card.data) == 1, func.json_extract(Card.data, path)), else_=None)


def _archetype_card_ids(filters: ArchetypeSearchFilters):
    min_confidence = filters.min_confidence if filters.min_confidence is not None else SEARCH_DEFAULT_CONFIDENCE
    stmt = select(CardArchetype.card_id).where(CardArchetype.confidence >= min_confidence)
    if filters.context_dependent is not None:
        stmt = stmt.where(CardArchetype.context_dependent.is_(bool(filters.context_dependent)))
    if filters.categories or filters.functions:
        stmt = stmt.join(ArchetypeFunction, ArchetypeFunction.id == CardArchetype.function_id)
        if filters.functions:
            stmt = stmt.where(ArchetypeFunction.name.in_(list(filters.functions)))
        if filters.categories:
            stmt = stmt.join(ArchetypeCategory, ArchetypeCategory.id == ArchetypeFunction.category_id)
            stmt = stmt.where(ArchetypeCategory.name.in_(list(filters.categories)))
    return stmt


def _color_clauses(colors: Sequence[str]) -> list:
    wanted = [str(c).strip().upper() for c in colors if str(c).strip()]
    if not wanted:
        return []
    color_field = _json_field("$.colors")
    if wanted == [COLORLESS]:
        return [
            or_(
                color_field.is_(None),
                case(
                    (func.json_valid(Card.data) == 1, func.json_array_length(Card.data, "$.colors")),
                    else_=0,
                ) == 0,
            )
        ]
    return [color_field.like(f'%"{color}"%') for color in wanted if color != COLORLESS]


def search_cards_by_archetype(
    filters: ArchetypeSearchFilters | None = None,
    limit: int = 50,
    offset: int = 0,
) -> List[dict]:
    """Cards matching the archetype and card-attribute filters, one row per card, by name."""
    filters = filters or ArchetypeSearchFilters()
    stmt = select(Card.id, Card.name, Card.oracle_id, _json_field("$.type_line").label("type_line"))
    stmt = stmt.where(Card.id.in_(_archetype_card_ids(filters)))

    for clause in _color_clauses(filters.colors or []):
        stmt = stmt.where(clause)
    if filters.cmc_min is not None:
        stmt = stmt.where(_json_field("$.cmc") >= filters.cmc_min)
    if filters.cmc_max is not None:
        stmt = stmt.where(_json_field("$.cmc") <= filters.cmc_max)
    for type_name in filters.types or []:
        if str(type_name).strip():
            stmt = stmt.where(_json_field("$.type_line").like(f"%{str(type_name).strip()}%"))

    stmt = stmt.order_by(Card.name.asc(), Card.id.asc()).limit(max(int(limit), 0)).offset(max(int(offset), 0))
    return [
        {"id": row.id, "name": row.name, "oracle_id": row.oracle_id, "type_line": row.type_line}
        for row in db.session.execute(stmt).all()
    ]


def _safe_div(numerator, denominator) -> float:
    return float(numerator) / float(denominator) if denominator else 0.0


def archetype_meta_analysis(
    time_period: TimePeriod | str = TimePeriod.THREE_MONTHS,
    min_tournament_size: int = 60,
    commanders: Optional[Sequence[str]] = None,
    *,
    now: Optional[datetime] = None,
) -> dict:
    """Archetype popularity across successful decks in the window.

    `meta_percentage` is relative to every successful deck in the window,
    even when `commanders` narrows the rows.
    """
    min_date = min_date_from_time_period(time_period, now=now)
    window = and_(
        Tournament.tournament_date >= min_date,
        Tournament.size >= min_tournament_size,
        successful_entry_clause(),
    )

    stmt = (
        select(
            ArchetypeCategory.name.label("category"),
            ArchetypeFunction.name.label("function"),
            func.count(Entry.id).label("total_inclusions"),
            func.count(distinct(Entry.id)).label("decks_with_archetype"),
            func.count(distinct(Entry.commander_id)).label("commanders_using"),
        )
        .select_from(Entry)
        .join(Tournament, Tournament.id == Entry.tournament_id)
        .join(DecklistItem, DecklistItem.entry_id == Entry.id)
        .join(CardArchetype, CardArchetype.card_id == DecklistItem.card_id)
        .join(ArchetypeFunction, ArchetypeFunction.id == CardArchetype.function_id)
        .join(ArchetypeCategory, ArchetypeCategory.id == ArchetypeFunction.category_id)
        .where(window)
        .where(CardArchetype.confidence > SUMMARY_CONFIDENCE)
        .group_by(ArchetypeCategory.name, ArchetypeFunction.name)
        .order_by(func.count(Entry.id).desc(), ArchetypeFunction.name.asc())
    )
    if commanders:
        stmt = stmt.join(Commander, Commander.id == Entry.commander_id).where(Commander.name.in_(list(commanders)))

    total_decks = db.session.execute(
        select(func.count(distinct(Entry.id)))
        .select_from(Entry)
        .join(Tournament, Tournament.id == Entry.tournament_id)
        .where(window)
    ).scalar() or 1

    popularity = [
        {
            "category": row.category,
            "function": row.function,
            "total_inclusions": int(row.total_inclusions),
            "decks_with_archetype": int(row.decks_with_archetype),
            "commanders_using": int(row.commanders_using),
            "meta_percentage": _safe_div(row.decks_with_archetype, total_decks) * 100,
            "average_cards_per_deck": _safe_div(row.total_inclusions, row.decks_with_archetype),
        }
        for row in db.session.execute(stmt).all()
    ]
    return {
        "time_period": parse_time_period(time_period).value,
        "total_decks_analyzed": int(total_decks),
        "archetype_popularity": popularity,
    }


def commander_archetype_analysis(
    commander_name: str,
    time_period: TimePeriod | str = TimePeriod.SIX_MONTHS,
    *,
    now: Optional[datetime] = None,
) -> List[dict]:
    """Per-function usage for one commander's decks (functions seen in >= 3 decks)."""
    min_date = min_date_from_time_period(time_period, now=now)
    decks = func.count(distinct(Entry.id))
    top_cut_decks = func.count(distinct(case((Entry.standing <= Tournament.top_cut, Entry.id), else_=None)))
    stmt = (
        select(
            ArchetypeCategory.name.label("category"),
            ArchetypeFunction.name.label("function"),
            func.count(Entry.id).label("total_inclusions"),
            decks.label("decks_with_archetype"),
            func.avg(Entry.standing).label("average_standing"),
            top_cut_decks.label("top_cut_decks"),
        )
        .select_from(Entry)
        .join(Tournament, Tournament.id == Entry.tournament_id)
        .join(Commander, Commander.id == Entry.commander_id)
        .join(DecklistItem, DecklistItem.entry_id == Entry.id)
        .join(CardArchetype, CardArchetype.card_id == DecklistItem.card_id)
        .join(ArchetypeFunction, ArchetypeFunction.id == CardArchetype.function_id)
        .join(ArchetypeCategory, ArchetypeCategory.id == ArchetypeFunction.category_id)
        .where(Commander.name == commander_name)
        .where(Tournament.tournament_date >= min_date)
        .where(CardArchetype.confidence > SUMMARY_CONFIDENCE)
        .group_by(ArchetypeCategory.name, ArchetypeFunction.name)
        .having(decks >= COMMANDER_ANALYSIS_MIN_DECKS)
        .order_by(decks.desc(), ArchetypeFunction.name.asc())
    )
    return [
        {
            "category": row.category,
            "function": row.function,
            "total_inclusions": int(row.total_inclusions),
            "decks_with_archetype": int(row.decks_with_archetype),
            "average_standing": float(row.average_standing or 0.0),
            "top_cut_decks": int(row.top_cut_decks or 0),
            "top_cut_rate": _safe_div(row.top_cut_decks or 0, row.decks_with_archetype) * 100,
        }
        for row in db.session.execute(stmt).all()
    ]


__all__ = [
    "ArchetypeSearchFilters",
    "archetype_meta_analysis",
    "card_archetype_categories",
    "card_archetypes",
    "commander_archetype_analysis",
    "invalidate_summaries",
    "list_categories",
    "list_functions",
    "primary_archetype",
    "search_cards_by_archetype",
]
