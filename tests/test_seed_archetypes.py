import json

import pytest

from models import ArchetypeCategory, ArchetypeFunction
from seeds.seed_archetypes import load_taxonomy, seed_archetype_taxonomy
from utils.exceptions import TaxonomyError


def test_seeds_the_default_taxonomy(db_session):
    counts = seed_archetype_taxonomy()

    assert counts == {"categories_added": 7, "functions_added": 16, "functions_skipped": 0}
    assert ArchetypeCategory.query.count() == 7
    assert ArchetypeFunction.query.count() == 16

    rocks = ArchetypeFunction.query.filter_by(name="Mana Rocks").one()
    assert rocks.category.name == "Fast Mana"
    assert "add" in json.loads(rocks.keywords)


def test_seeding_twice_adds_nothing(db_session):
    seed_archetype_taxonomy()
    again = seed_archetype_taxonomy()

    assert again == {"categories_added": 0, "functions_added": 0, "functions_skipped": 0}
    assert ArchetypeFunction.query.count() == 16


def test_existing_rows_are_not_overwritten(db_session):
    seed_archetype_taxonomy({"categories": [{"name": "Tutors", "description": "curated", "priority": 9}]})
    seed_archetype_taxonomy()

    tutors = ArchetypeCategory.query.filter_by(name="Tutors").one()
    assert tutors.description == "curated"
    assert tutors.priority == 9


def test_function_with_unknown_category_is_skipped(db_session):
    taxonomy = {
        "categories": [{"name": "Interaction", "priority": 3}],
        "functions": [
            {"name": "Counterspells", "category": "Interaction", "keywords": ["Counter"]},
            {"name": "Orphan", "category": "Nowhere", "keywords": []},
        ],
    }
    counts = seed_archetype_taxonomy(taxonomy)

    assert counts == {"categories_added": 1, "functions_added": 1, "functions_skipped": 1}
    counter = ArchetypeFunction.query.filter_by(name="Counterspells").one()
    assert json.loads(counter.keywords) == ["counter"]


def test_unreadable_taxonomy_file(tmp_path):
    broken = tmp_path / "taxonomy.json"
    broken.write_text("{nope", encoding="utf-8")
    with pytest.raises(TaxonomyError):
        load_taxonomy(broken)
    with pytest.raises(TaxonomyError):
        load_taxonomy(tmp_path / "missing.json")
