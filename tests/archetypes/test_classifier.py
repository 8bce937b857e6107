import json

import pytest

from archetypes.classifier import (
    CLASSIFICATION_THRESHOLD,
    FunctionCatalog,
    classify_card,
    prepare_card,
    primary_function,
    score_function,
)
from seeds.seed_archetypes import load_taxonomy


@pytest.fixture(scope="module")
def catalog():
    taxonomy = load_taxonomy()
    definitions = [
        {
            "id": index,
            "name": fn["name"],
            "keywords": fn["keywords"],
            "patterns": fn["patterns"],
            "category": fn["category"],
        }
        for index, fn in enumerate(taxonomy["functions"], start=1)
    ]
    return FunctionCatalog.build(definitions)


def _fn(catalog, name):
    return next(fn for fn in catalog if fn.name == name)


def _card(name="Test Card", text="", type_line=None, **blob):
    data = dict(blob)
    if type_line is not None:
        data["type_line"] = type_line
    return {"id": 1, "name": name, "text": text, "data": json.dumps(data) if data else None}


def test_mana_rock_text_and_artifact_type(catalog):
    card = prepare_card(_card(text="Tap: Add one mana of any color.", type_line="Artifact"))
    breakdown = score_function(card, _fn(catalog, "Mana Rocks"))

    assert breakdown.keyword_score == pytest.approx(0.75)
    assert breakdown.pattern_score == pytest.approx(1 / 3)
    assert breakdown.type_bonus == pytest.approx(0.3)
    assert breakdown.known_card_bonus == 0.0
    assert breakdown.confidence == pytest.approx(0.75 * 0.4 + (1 / 3) * 0.6 + 0.3)

    rows = classify_card(card, catalog)
    assert _fn(catalog, "Mana Rocks").id in {row.function_id for row in rows}


def test_known_card_bonus_guarantees_persistence(catalog):
    card = prepare_card(_card(name="Sol Ring", text="Nothing relevant here."))
    breakdown = score_function(card, _fn(catalog, "Mana Rocks"))

    assert breakdown.known_card_bonus == pytest.approx(0.4)
    assert breakdown.confidence > CLASSIFICATION_THRESHOLD
    rows = {row.function_id: row for row in classify_card(card, catalog)}
    assert _fn(catalog, "Mana Rocks").id in rows


def test_known_card_match_is_substring_of_lowercased_name(catalog):
    card = prepare_card(_card(name="Counterspell // Alt Art"))
    assert score_function(card, _fn(catalog, "Counterspells")).known_card_bonus == pytest.approx(0.4)


def test_malformed_data_still_scores_text(catalog):
    card = prepare_card({"id": 7, "name": "Broken", "text": "Counter target spell.", "data": "{not json"})
    breakdown = score_function(card, _fn(catalog, "Counterspells"))

    assert breakdown.type_bonus == 0.0
    assert breakdown.keyword_score == pytest.approx(1.0)
    assert breakdown.pattern_score == pytest.approx(1.0)
    assert breakdown.confidence == pytest.approx(1.0)


def test_rules_text_falls_back_to_oracle_text(catalog):
    card = prepare_card(
        {
            "id": 3,
            "name": "Blob Only",
            "text": "",
            "data": json.dumps({"oracle_text": "Destroy all creatures.", "type_line": "Sorcery"}),
        }
    )
    breakdown = score_function(card, _fn(catalog, "Board Wipes"))
    assert breakdown.type_bonus == pytest.approx(0.3)
    assert breakdown.confidence > 0.5


def test_big_threats_reads_generic_mana_numeral_only(catalog):
    big_threats = _fn(catalog, "Big Threats")
    by_cost = prepare_card(_card(text="Flying, trample", type_line="Creature — Dragon", mana_cost="{6}{R}"))
    cmc_only = prepare_card(_card(text="Flying, trample", type_line="Creature — Dragon", cmc=7))
    colored = prepare_card(_card(text="Flying, trample", type_line="Creature — Hydra", mana_cost="{4}{G}{G}", cmc=6))
    small = prepare_card(_card(text="Flying, trample", type_line="Creature — Bird", mana_cost="{2}{U}"))

    assert score_function(by_cost, big_threats).type_bonus == pytest.approx(0.2)
    assert score_function(cmc_only, big_threats).type_bonus == 0.0
    assert score_function(colored, big_threats).type_bonus == 0.0
    assert score_function(small, big_threats).type_bonus == 0.0


def test_heavy_colored_cost_alone_does_not_make_a_big_threat(catalog):
    card = _card(text="Trample", type_line="Creature — Beast", mana_cost="{4}{G}{G}", cmc=6)
    big_threats = _fn(catalog, "Big Threats")

    assert score_function(prepare_card(card), big_threats).confidence == pytest.approx(0.1)
    assert big_threats.id not in {c.function_id for c in classify_card(card, catalog)}


def test_context_dependent_functions_and_signals(catalog):
    plain = prepare_card(_card(text="Draw a card."))
    tribal = prepare_card(_card(text="Creatures you control get +1/+1. Draw a card."))

    assert score_function(plain, _fn(catalog, "Big Threats")).context_dependent is True
    assert score_function(plain, _fn(catalog, "Card Draw")).context_dependent is False
    assert score_function(tribal, _fn(catalog, "Card Draw")).context_dependent is True


def test_confidence_is_clamped_to_unit_interval(catalog):
    card = prepare_card(
        _card(
            name="Mana Crypt",
            text="{T}: Add {C}{C}. Tap: add one mana of any color. Artifact mana.",
            type_line="Artifact",
        )
    )
    breakdown = score_function(card, _fn(catalog, "Mana Rocks"))
    assert breakdown.confidence == 1.0


def test_only_rows_above_threshold_are_emitted(catalog):
    card = prepare_card(_card(text="Search your library."))
    for row in classify_card(card, catalog):
        assert row.confidence > CLASSIFICATION_THRESHOLD
        assert 0.0 <= row.confidence <= 1.0


def test_classification_is_deterministic(catalog):
    card = _card(name="Cultivate", text="Search your library for up to two basic land cards.", type_line="Sorcery")
    first = classify_card(card, catalog)
    second = classify_card(card, catalog)
    assert first == second


def test_empty_card_produces_no_rows(catalog):
    assert classify_card({"id": 9, "name": "", "text": None, "data": None}, catalog) == []


def test_function_without_keywords_or_patterns_scores_zero():
    catalog = FunctionCatalog.build([{"id": 1, "name": "Empty", "keywords": [], "patterns": []}])
    breakdown = score_function(prepare_card(_card(text="Anything")), next(iter(catalog)))
    assert breakdown.keyword_score == 0.0
    assert breakdown.pattern_score == 0.0


def test_invalid_pattern_never_matches_but_others_still_count():
    catalog = FunctionCatalog.build(
        [{"id": 1, "name": "Mixed", "keywords": [], "patterns": ["draw (a card", "draw a card"]}]
    )
    breakdown = score_function(prepare_card(_card(text="Draw a card.")), next(iter(catalog)))
    assert breakdown.pattern_score == pytest.approx(0.5)


def test_primary_function_prefers_highest_confidence(catalog):
    card = _card(name="Sol Ring", text="{T}: Add {C}{C}.", type_line="Artifact")
    rows = classify_card(card, catalog)
    best = primary_function(rows)
    assert best is not None
    assert best.function_id == _fn(catalog, "Mana Rocks").id
    assert primary_function([]) is None


def test_empty_keyword_counts_as_a_match():
    catalog = FunctionCatalog.build(
        [{"id": 1, "name": "Odd Function", "keywords": ["", "zzz"], "patterns": []}]
    )
    breakdown = score_function(prepare_card(_card(text="Draw a card.")), next(iter(catalog)))
    assert breakdown.keyword_score == pytest.approx(0.5)
