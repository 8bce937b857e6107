"""Full-corpus card classification job (clear, then reclassify everything)."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional, Sequence

from flask import current_app, has_app_context
from sqlalchemy import func, select

from archetypes.classifier import (
    ClassifiableCard,
    Classification,
    FunctionCatalog,
    classify_card,
    prepare_card,
)
from extensions import db
from models import ArchetypeFunction, Card
from services import classification_store as store
from services.archetype_queries import invalidate_summaries
from utils.exceptions import ClassificationError, JobCancelled

_LOG = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500
DEFAULT_WORKERS = 4

ProgressCallback = Callable[[int, int], None]


def _config_value(key: str, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def load_catalog() -> FunctionCatalog:
    functions = []
    for fn in ArchetypeFunction.query.order_by(ArchetypeFunction.id.asc()).all():
        if not fn.definition_is_valid:
            _LOG.warning("Skipping archetype function %r: keywords or patterns are not a JSON list", fn.name)
            continue
        functions.append(fn)
    return FunctionCatalog.build(functions)


def iter_card_batches(batch_size: int) -> Iterable[List[ClassifiableCard]]:
    """Yield detached card snapshots in primary-key order, `batch_size` at a time."""
    last_id = 0
    while True:
        rows = db.session.execute(
            select(Card.id, Card.name, Card.text, Card.data)
            .where(Card.id > last_id)
            .order_by(Card.id.asc())
            .limit(batch_size)
        ).all()
        if not rows:
            return
        last_id = rows[-1].id
        yield [
            prepare_card({"id": row.id, "name": row.name, "text": row.text, "data": row.data})
            for row in rows
        ]


def _classify_one(card: ClassifiableCard, catalog: FunctionCatalog) -> Optional[List[Classification]]:
    try:
        return classify_card(card, catalog)
    except Exception as exc:  # a single bad card must not abort the run
        _LOG.warning("Classification failed for card %s (%s): %s", card.id, card.name, exc)
        return None


def classify_batch(
    cards: Sequence[ClassifiableCard],
    catalog: FunctionCatalog,
    executor: Optional[ThreadPoolExecutor] = None,
) -> tuple[List[Classification], int]:
    """Score a batch; returns (classifications in card order, cards that errored)."""
    if executor is None:
        results = [_classify_one(card, catalog) for card in cards]
    else:
        results = list(executor.map(lambda c: _classify_one(c, catalog), cards))
    out: List[Classification] = []
    errors = 0
    for result in results:
        if result is None:
            errors += 1
            continue
        out.extend(result)
    return out, errors


def classify_all_cards(
    *,
    batch_size: Optional[int] = None,
    workers: Optional[int] = None,
    preserve_manual: Optional[bool] = None,
    progress_cb: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
) -> dict:
    """Rebuild card_archetypes for the whole card corpus.

    Not incremental: existing derived rows are deleted first. Manually curated
    rows survive when `preserve_manual` (default from ARCHETYPE_PRESERVE_MANUAL)
    and the classifier never overwrites them.
    """
    batch_size = max(int(batch_size or _config_value("ARCHETYPE_BATCH_SIZE", DEFAULT_BATCH_SIZE)), 1)
    workers = max(int(workers or _config_value("ARCHETYPE_WORKERS", DEFAULT_WORKERS)), 1)
    if preserve_manual is None:
        preserve_manual = bool(_config_value("ARCHETYPE_PRESERVE_MANUAL", True))

    _LOG.info("Starting card classification")
    total = int(db.session.execute(select(func.count()).select_from(Card)).scalar() or 0)
    _LOG.info("Total cards to classify: %s", total)

    catalog = load_catalog()
    if not len(catalog):
        raise ClassificationError("No archetype functions defined; seed the taxonomy first.")
    _LOG.info("Found %s archetype functions", len(catalog))

    existing = store.count_classifications()
    cleared = 0
    if existing:
        _LOG.info("Found %s existing classifications - clearing to start fresh", existing)
        cleared = store.clear_classifications(preserve_manual=preserve_manual)
    skip_keys = store.manual_override_keys() if preserve_manual else frozenset()

    processed = 0
    inserted_total = 0
    failed_total = 0
    card_errors = 0
    last_logged_pct = -1

    executor = ThreadPoolExecutor(max_workers=workers) if workers > 1 else None
    try:
        for batch in iter_card_batches(batch_size):
            if cancel_event is not None and cancel_event.is_set():
                raise JobCancelled(f"Classification cancelled after {processed}/{total} cards.")

            classifications, errors = classify_batch(batch, catalog, executor)
            inserted, failed = store.insert_batch(classifications, skip_keys=skip_keys)
            inserted_total += inserted
            failed_total += failed
            card_errors += errors
            processed += len(batch)

            percentage = round(processed / total * 100) if total else 100
            if processed % 1000 == 0 or percentage // 10 != last_logged_pct // 10:
                _LOG.info("Progress: %s/%s (%s%%)", processed, total, percentage)
                last_logged_pct = percentage
            if progress_cb:
                progress_cb(processed, total)
    finally:
        if executor is not None:
            executor.shutdown(wait=True)

    summary = store.category_summary()
    _LOG.info("Classification Summary:")
    for row in summary:
        _LOG.info("   %s: %s cards", row["category"], row["count"])
    invalidate_summaries()
    _LOG.info("Card classification completed")

    return {
        "cards_total": total,
        "cards_processed": processed,
        "classifications": inserted_total,
        "failed_inserts": failed_total,
        "card_errors": card_errors,
        "cleared": cleared,
        "summary": summary,
    }


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_WORKERS",
    "classify_all_cards",
    "classify_batch",
    "iter_card_batches",
    "load_catalog",
]
