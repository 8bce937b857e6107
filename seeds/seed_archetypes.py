from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List

from extensions import db
from models.archetype import ArchetypeCategory, ArchetypeFunction
from utils.exceptions import TaxonomyError

_LOG = logging.getLogger(__name__)

TAXONOMY_PATH = Path(__file__).resolve().parent / "archetype_taxonomy.json"


def load_taxonomy(path: Path = TAXONOMY_PATH) -> dict:
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError) as exc:
        raise TaxonomyError(f"Unable to read archetype taxonomy from {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TaxonomyError(f"Archetype taxonomy in {path} must be a JSON object.")
    return data


def seed_archetype_taxonomy(taxonomy: dict | None = None) -> Dict[str, int]:
    """Insert categories and functions that are not present yet.

    Existing rows of the same name are never overwritten. A function whose
    category cannot be resolved is skipped with a warning.
    """
    taxonomy = taxonomy if taxonomy is not None else load_taxonomy()
    categories: List[dict] = taxonomy.get("categories") or []
    functions: List[dict] = taxonomy.get("functions") or []

    categories_added = 0
    for entry in categories:
        name = (entry.get("name") or "").strip()
        if not name:
            continue
        if ArchetypeCategory.query.filter_by(name=name).first():
            continue
        db.session.add(
            ArchetypeCategory(
                name=name,
                description=entry.get("description"),
                color=entry.get("color"),
                priority=int(entry.get("priority") or 0),
            )
        )
        categories_added += 1
    db.session.flush()

    functions_added = 0
    functions_skipped = 0
    for entry in functions:
        name = (entry.get("name") or "").strip()
        category_name = (entry.get("category") or "").strip()
        category = ArchetypeCategory.query.filter_by(name=category_name).first()
        if category is None:
            _LOG.warning("Skipping archetype function %r: category %r not found", name, category_name)
            functions_skipped += 1
            continue
        if ArchetypeFunction.query.filter_by(category_id=category.id, name=name).first():
            continue
        db.session.add(
            ArchetypeFunction(
                category_id=category.id,
                name=name,
                description=entry.get("description"),
                keywords=json.dumps([str(kw).lower() for kw in entry.get("keywords") or []]),
                rules_patterns=json.dumps(list(entry.get("patterns") or [])),
            )
        )
        functions_added += 1

    db.session.commit()
    _LOG.info(
        "Archetype definitions populated",
        extra={
            "categories_added": categories_added,
            "functions_added": functions_added,
            "functions_skipped": functions_skipped,
        },
    )
    return {
        "categories_added": categories_added,
        "functions_added": functions_added,
        "functions_skipped": functions_skipped,
    }
