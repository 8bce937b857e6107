from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional

from seeds.seed_archetypes import seed_archetype_taxonomy
from services.card_classification import classify_all_cards
from services.commander_preferences import compute_all_commander_preferences
from utils.logging_config import job_context
from utils.run_lock import stage_lock

_LOG = logging.getLogger(__name__)

STAGE_SEED = "seed"
STAGE_CLASSIFY = "classify"
STAGE_WEIGHTS = "weights"


def run_stage(name: str, func: Callable[[], dict]) -> Dict[str, object]:
    """Run one stage under its run lock; returns {"result", "elapsed"}."""
    with job_context(name), stage_lock(name):
        _LOG.info("Stage %s started", name)
        started = time.perf_counter()
        try:
            result = func()
        except Exception:
            _LOG.exception("Stage %s failed", name)
            raise
        elapsed = time.perf_counter() - started
        _LOG.info("Stage %s finished in %.2fs", name, elapsed, extra={"elapsed": round(elapsed, 3)})
    return {"result": result, "elapsed": elapsed}


def seed_taxonomy() -> Dict[str, object]:
    return run_stage(STAGE_SEED, seed_archetype_taxonomy)


def classify_cards(
    *,
    batch_size: Optional[int] = None,
    workers: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Dict[str, object]:
    return run_stage(
        STAGE_CLASSIFY,
        lambda: classify_all_cards(batch_size=batch_size, workers=workers, cancel_event=cancel_event),
    )


def compute_commander_weights(*, cancel_event: Optional[threading.Event] = None) -> Dict[str, object]:
    return run_stage(STAGE_WEIGHTS, lambda: compute_all_commander_preferences(cancel_event=cancel_event))


def run_archetype_migration(
    *,
    batch_size: Optional[int] = None,
    workers: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Dict[str, object]:
    """
    Seed the taxonomy, reclassify every card, then rebuild commander weights.

    Stages run in order and each must finish before the next starts. A failure
    propagates immediately; work already committed by earlier stages stays.
    """
    with job_context("migrate") as run_id:
        _LOG.info("Starting archetype migration")
        started = time.perf_counter()

        seeded = seed_taxonomy()
        classified = classify_cards(batch_size=batch_size, workers=workers, cancel_event=cancel_event)
        weighted = compute_commander_weights(cancel_event=cancel_event)

        total = time.perf_counter() - started
        _LOG.info("Archetype migration completed successfully in %.2fs", total)

    return {
        "run_id": run_id,
        "stages": {
            STAGE_SEED: seeded,
            STAGE_CLASSIFY: classified,
            STAGE_WEIGHTS: weighted,
        },
        "elapsed": total,
    }


__all__ = [
    "classify_cards",
    "compute_commander_weights",
    "run_archetype_migration",
    "run_stage",
    "seed_taxonomy",
]
