import json

import pytest

from extensions import db
from factories import create_card, create_commander, create_entry, create_tournament, function_by_name
from models import CardArchetype
from utils.run_lock import stage_lock


@pytest.fixture
def catalog(runner):
    cards = {
        "counterspell": create_card(name="Counterspell", text="Counter target spell.", type_line="Instant", colors=["U"]),
        "sol": create_card(name="Sol Ring", text="{T}: Add {C}{C}.", type_line="Artifact", colors=[]),
    }
    commander = create_commander(name="Kinnan, Bonder Prodigy", color_id="UG")
    tournament = create_tournament(size=64, top_cut=16)
    deck = list(cards.values())
    for standing in (1, 2, 3, 30, 31):
        create_entry(commander=commander, tournament=tournament, standing=standing, cards=deck)
    db.session.commit()
    return cards


def test_migrate_command(runner, catalog):
    result = runner.invoke(args=["archetypes", "migrate", "--workers", "1"])

    assert result.exit_code == 0, result.output
    assert "Archetype migration completed" in result.output
    for stage in ("seed:", "classify:", "weights:"):
        assert stage in result.output


def test_migrate_command_fails_when_stage_is_locked(runner, catalog):
    with stage_lock("seed"):
        result = runner.invoke(args=["archetypes", "migrate"])

    assert result.exit_code == 1
    assert "already running" in result.output


def test_stage_commands(runner, catalog):
    seeded = runner.invoke(args=["archetypes", "seed"])
    assert seeded.exit_code == 0
    assert "Categories added: 7, functions added: 16" in seeded.output

    classified = runner.invoke(args=["archetypes", "classify", "--workers", "1"])
    assert classified.exit_code == 0, classified.output
    assert "Classified 2/2 cards" in classified.output

    weights = runner.invoke(args=["archetypes", "weights"])
    assert weights.exit_code == 0, weights.output
    assert "1 with weights" in weights.output


def test_classify_without_taxonomy_exits_nonzero(runner, catalog):
    result = runner.invoke(args=["archetypes", "classify", "--workers", "1"])
    assert result.exit_code == 1
    assert "seed the taxonomy first" in result.output


def test_read_commands(runner, catalog):
    assert runner.invoke(args=["archetypes", "migrate", "--workers", "1"]).exit_code == 0
    card_id = catalog["counterspell"].id

    summary = json.loads(runner.invoke(args=["archetypes", "summary", "--json"]).output)
    assert {c["name"] for c in summary} >= {"Fast Mana", "Interaction"}

    card = json.loads(runner.invoke(args=["archetypes", "card", str(card_id)]).output)
    assert card["primary"]["function"] == "Counterspells"
    assert "Interaction" in card["categories"]

    explain = runner.invoke(args=["archetypes", "explain", str(card_id)])
    assert explain.exit_code == 0
    marked = [line for line in explain.output.splitlines() if line.startswith("*")]
    assert len(marked) == 1 and "Counterspells" in marked[0]

    search = runner.invoke(
        args=["archetypes", "search", "--function", "Mana Rocks", "--color", "C", "--min-confidence", "0.3"]
    )
    assert "Sol Ring" in search.output
    assert "Counterspell" not in search.output

    commander = json.loads(runner.invoke(args=["archetypes", "commander", "Kinnan, Bonder Prodigy"]).output)
    assert "Counterspells" in {w["function"] for w in commander["weights"]}

    top = runner.invoke(args=["commanders", "top", "--sort-by", "popularity"])
    assert "Kinnan, Bonder Prodigy" in top.output

    stats = json.loads(runner.invoke(args=["commanders", "stats", "Kinnan, Bonder Prodigy"]).output)
    assert stats["Kinnan, Bonder Prodigy"]["count"] == 5


def test_override_command_survives_rebuild(runner, catalog):
    runner.invoke(args=["archetypes", "seed"])
    wipes = function_by_name("Board Wipes")
    card_id = catalog["sol"].id

    result = runner.invoke(args=["archetypes", "override", str(card_id), str(wipes.id), "0.9"])
    assert result.exit_code == 0, result.output
    runner.invoke(args=["archetypes", "classify", "--workers", "1"])

    db.session.expire_all()
    row = db.session.get(CardArchetype, (card_id, wipes.id))
    assert row.manual_override is True
    assert row.confidence == pytest.approx(0.9)


def test_unknown_card_and_commander(runner, catalog):
    assert runner.invoke(args=["archetypes", "card", "999999"]).exit_code == 1
    assert runner.invoke(args=["archetypes", "commander", "Nobody"]).exit_code == 1
