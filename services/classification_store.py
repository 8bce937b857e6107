"""Persistence for card -> archetype function classifications."""

from __future__ import annotations

import logging
from typing import Iterable, List, Sequence, Set, Tuple

from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import SQLAlchemyError

from archetypes.classifier import Classification
from extensions import db
from models.archetype import ArchetypeCategory, ArchetypeFunction, CardArchetype

_LOG = logging.getLogger(__name__)

SUMMARY_MIN_CONFIDENCE = 0.5

ClassificationKey = Tuple[int, int]


def _clamp(value: float) -> float:
    return max(0.0, min(float(value), 1.0))


def _row(item: Classification) -> dict:
    return {
        "card_id": item.card_id,
        "function_id": item.function_id,
        "confidence": _clamp(item.confidence),
        "context_dependent": bool(item.context_dependent),
        "manual_override": False,
    }


def count_classifications(*, manual_only: bool = False) -> int:
    stmt = select(func.count()).select_from(CardArchetype)
    if manual_only:
        stmt = stmt.where(CardArchetype.manual_override.is_(True))
    return int(db.session.execute(stmt).scalar() or 0)


def manual_override_keys() -> Set[ClassificationKey]:
    rows = db.session.execute(
        select(CardArchetype.card_id, CardArchetype.function_id).where(
            CardArchetype.manual_override.is_(True)
        )
    ).all()
    return {(int(card_id), int(function_id)) for card_id, function_id in rows}


def clear_classifications(*, preserve_manual: bool = True) -> int:
    """Delete derived rows (and manual ones unless `preserve_manual`). Commits."""
    stmt = delete(CardArchetype)
    if preserve_manual:
        stmt = stmt.where(CardArchetype.manual_override.is_(False))
    result = db.session.execute(stmt)
    db.session.commit()
    return int(result.rowcount or 0)


def insert_batch(
    items: Sequence[Classification],
    *,
    skip_keys: Set[ClassificationKey] | frozenset = frozenset(),
) -> Tuple[int, int]:
    """Insert a batch of classifications and commit.

    The batch is written in one statement; if that fails the session is rolled
    back and rows are retried one at a time so a single bad row is logged and
    skipped without losing the rest. Returns (inserted, failed).
    """
    rows = [_row(item) for item in items if (item.card_id, item.function_id) not in skip_keys]
    if not rows:
        return 0, 0

    try:
        db.session.execute(insert(CardArchetype), rows)
        db.session.commit()
        return len(rows), 0
    except SQLAlchemyError as exc:
        db.session.rollback()
        _LOG.warning("Bulk classification insert failed (%s); retrying row by row", exc)

    inserted = 0
    failed = 0
    for row in rows:
        try:
            db.session.execute(insert(CardArchetype), [row])
            db.session.commit()
            inserted += 1
        except SQLAlchemyError as exc:
            db.session.rollback()
            failed += 1
            _LOG.warning(
                "Failed to classify card %s for function %s: %s",
                row["card_id"],
                row["function_id"],
                exc,
            )
    return inserted, failed


def replace_all(items: Iterable[Classification], *, preserve_manual: bool = True) -> Tuple[int, int]:
    """Set-replacing write: clear derived rows then insert `items`."""
    clear_classifications(preserve_manual=preserve_manual)
    skip = manual_override_keys() if preserve_manual else frozenset()
    return insert_batch(list(items), skip_keys=skip)


def upsert(
    card_id: int,
    function_id: int,
    confidence: float,
    context_dependent: bool = False,
    *,
    force: bool = False,
) -> CardArchetype:
    """Insert or overwrite one (card, function) row.

    Manually curated rows are left untouched unless `force` is set.
    """
    row = db.session.get(CardArchetype, (card_id, function_id))
    if row is not None and row.manual_override and not force:
        return row
    if row is None:
        row = CardArchetype(card_id=card_id, function_id=function_id)
        db.session.add(row)
    row.confidence = _clamp(confidence)
    row.context_dependent = bool(context_dependent)
    if force:
        row.manual_override = False
    db.session.commit()
    return row


def set_manual_override(
    card_id: int,
    function_id: int,
    confidence: float,
    context_dependent: bool = False,
) -> CardArchetype:
    row = db.session.get(CardArchetype, (card_id, function_id))
    if row is None:
        row = CardArchetype(card_id=card_id, function_id=function_id)
        db.session.add(row)
    row.confidence = _clamp(confidence)
    row.context_dependent = bool(context_dependent)
    row.manual_override = True
    db.session.commit()
    return row


def category_summary(min_confidence: float = SUMMARY_MIN_CONFIDENCE) -> List[dict]:
    """Classification rows above `min_confidence`, grouped by category."""
    count_col = func.count().label("count")
    stmt = (
        select(ArchetypeCategory.name.label("category"), count_col)
        .select_from(CardArchetype)
        .join(ArchetypeFunction, ArchetypeFunction.id == CardArchetype.function_id)
        .join(ArchetypeCategory, ArchetypeCategory.id == ArchetypeFunction.category_id)
        .where(CardArchetype.confidence > min_confidence)
        .group_by(ArchetypeCategory.name)
        .order_by(count_col.desc(), ArchetypeCategory.name)
    )
    return [{"category": category, "count": int(count)} for category, count in db.session.execute(stmt).all()]


__all__ = [
    "SUMMARY_MIN_CONFIDENCE",
    "category_summary",
    "clear_classifications",
    "count_classifications",
    "insert_batch",
    "manual_override_keys",
    "replace_all",
    "set_manual_override",
    "upsert",
]
