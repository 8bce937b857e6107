import pytest

from archetypes.classifier import Classification
from extensions import db
from factories import classify, create_card, create_function
from models import CardArchetype
from services import classification_store as store


@pytest.fixture
def rows(db_session):
    card_a = create_card(name="Alpha")
    card_b = create_card(name="Beta")
    draw = create_function(name="Card Draw", category="Card Advantage", keywords=["draw"])
    ramp = create_function(name="Mana Rocks", category="Fast Mana", keywords=["add"])
    db.session.commit()
    return card_a, card_b, draw, ramp


def test_insert_batch_writes_and_clamps(rows):
    card_a, card_b, draw, ramp = rows
    inserted, failed = store.insert_batch(
        [
            Classification(card_a.id, draw.id, 0.7, False),
            Classification(card_b.id, ramp.id, 1.4, True),
        ]
    )
    assert (inserted, failed) == (2, 0)
    stored = db.session.get(CardArchetype, (card_b.id, ramp.id))
    assert stored.confidence == 1.0
    assert stored.context_dependent is True


def test_insert_batch_skips_bad_rows_and_keeps_the_rest(rows):
    card_a, card_b, draw, ramp = rows
    inserted, failed = store.insert_batch(
        [
            Classification(card_a.id, draw.id, 0.6, False),
            Classification(card_a.id, 999_999, 0.6, False),
            Classification(card_b.id, ramp.id, 0.6, False),
        ]
    )
    assert (inserted, failed) == (2, 1)
    assert store.count_classifications() == 2


def test_insert_batch_honours_skip_keys(rows):
    card_a, _, draw, ramp = rows
    inserted, _ = store.insert_batch(
        [Classification(card_a.id, draw.id, 0.6, False), Classification(card_a.id, ramp.id, 0.6, False)],
        skip_keys={(card_a.id, draw.id)},
    )
    assert inserted == 1
    assert db.session.get(CardArchetype, (card_a.id, draw.id)) is None


def test_clear_preserves_manual_overrides(rows):
    card_a, card_b, draw, ramp = rows
    classify(card_a, draw, 0.6)
    classify(card_b, ramp, 0.9, manual=True)
    db.session.commit()

    assert store.clear_classifications(preserve_manual=True) == 1
    assert store.manual_override_keys() == {(card_b.id, ramp.id)}
    assert store.count_classifications(manual_only=True) == 1

    assert store.clear_classifications(preserve_manual=False) == 1
    assert store.count_classifications() == 0


def test_replace_all_is_set_replacing(rows):
    card_a, card_b, draw, ramp = rows
    store.replace_all([Classification(card_a.id, draw.id, 0.6, False)])
    store.replace_all([Classification(card_b.id, ramp.id, 0.8, False)])

    keys = {(r.card_id, r.function_id) for r in CardArchetype.query.all()}
    assert keys == {(card_b.id, ramp.id)}


def test_upsert_respects_manual_override_unless_forced(rows):
    card_a, _, draw, _ = rows
    store.set_manual_override(card_a.id, draw.id, 0.95)

    kept = store.upsert(card_a.id, draw.id, 0.4)
    assert kept.confidence == pytest.approx(0.95)
    assert kept.manual_override is True

    forced = store.upsert(card_a.id, draw.id, 0.4, force=True)
    assert forced.confidence == pytest.approx(0.4)
    assert forced.manual_override is False


def test_category_summary_counts_rows_above_threshold(rows):
    card_a, card_b, draw, ramp = rows
    classify(card_a, draw, 0.9)
    classify(card_b, draw, 0.6)
    classify(card_a, ramp, 0.45)
    db.session.commit()

    assert store.category_summary() == [{"category": "Card Advantage", "count": 2}]
