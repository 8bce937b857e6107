import pytest

from extensions import db
from factories import create_card, create_commander, create_entry, create_tournament
from models import CardArchetype, CommanderArchetypeWeight
from utils.exceptions import ClassificationError, RunLockError
from utils.run_lock import lock_path, stage_lock
from worker.tasks import STAGE_CLASSIFY, STAGE_SEED, STAGE_WEIGHTS, run_archetype_migration, run_stage


@pytest.fixture
def history(db_session):
    counterspell = create_card(name="Counterspell", text="Counter target spell.", type_line="Instant")
    island = create_card(name="Island", text="", type_line="Basic Land — Island")
    commander = create_commander(name="Urza, Lord High Artificer", color_id="U")
    tournament = create_tournament(size=64, top_cut=16)
    for standing in (1, 2, 3):
        create_entry(commander=commander, tournament=tournament, standing=standing, cards=[counterspell, island])
    for standing in (40, 41):
        create_entry(commander=commander, tournament=tournament, standing=standing, cards=[island])
    db.session.commit()
    return {"commander": commander, "counterspell": counterspell}


def test_full_migration_runs_every_stage(history):
    outcome = run_archetype_migration(workers=1)

    assert list(outcome["stages"]) == [STAGE_SEED, STAGE_CLASSIFY, STAGE_WEIGHTS]
    assert outcome["run_id"]
    assert outcome["elapsed"] >= max(stage["elapsed"] for stage in outcome["stages"].values())

    assert outcome["stages"][STAGE_SEED]["result"]["functions_added"] == 16
    assert outcome["stages"][STAGE_CLASSIFY]["result"]["cards_total"] == 2
    weights = outcome["stages"][STAGE_WEIGHTS]["result"]
    assert weights["commanders_with_weights"] == 1

    assert CardArchetype.query.filter_by(card_id=history["counterspell"].id).count() >= 1
    weights = {
        w.function.name: w for w in CommanderArchetypeWeight.query.filter_by(commander_id=history["commander"].id)
    }
    assert weights["Counterspells"].weight == 1.0
    assert weights["Counterspells"].recommended_count == 1
    assert not any(lock_path(stage).exists() for stage in (STAGE_SEED, STAGE_CLASSIFY, STAGE_WEIGHTS))


def test_migration_is_repeatable(history):
    run_archetype_migration(workers=1)
    first = {(w.commander_id, w.function_id, w.weight) for w in CommanderArchetypeWeight.query.all()}
    second_run = run_archetype_migration(workers=1)
    second = {(w.commander_id, w.function_id, w.weight) for w in CommanderArchetypeWeight.query.all()}

    assert first == second
    assert second_run["stages"][STAGE_SEED]["result"]["functions_added"] == 0


def test_held_lock_blocks_the_stage(history):
    with stage_lock(STAGE_CLASSIFY):
        with pytest.raises(RunLockError):
            run_archetype_migration(workers=1)
    assert CardArchetype.query.count() == 0


def test_failing_stage_stops_the_run(db_session):
    from worker import tasks

    with pytest.raises(ClassificationError):
        tasks.classify_cards(workers=1)
    assert not lock_path(STAGE_CLASSIFY).exists()


def test_run_stage_releases_lock_on_error(db_session):
    def _boom():
        raise RuntimeError("stage exploded")

    with pytest.raises(RuntimeError):
        run_stage("scratch", _boom)
    assert not lock_path("scratch").exists()


def test_script_entrypoint_exit_codes(app, history, capsys):
    from scripts.migrate_archetypes import main

    assert main(workers=1, app=app) == 0
    assert "Archetype migration completed" in capsys.readouterr().out

    with app.app_context(), stage_lock(STAGE_WEIGHTS):
        assert main(workers=1, app=app) == 1
    assert "already running" in capsys.readouterr().err
