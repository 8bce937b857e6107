import os
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]

# Isolate all tests to a throwaway instance + SQLite database
TEST_INSTANCE_DIR = ROOT_DIR / ".pytest-instance"
TEST_INSTANCE_DIR.mkdir(parents=True, exist_ok=True)
TEST_DB_PATH = TEST_INSTANCE_DIR / "test.sqlite"
os.environ["FLASK_ENV"] = "testing"
os.environ["INSTANCE_DIR"] = str(TEST_INSTANCE_DIR)
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_PATH.as_posix()}"

import app as archetype_app  # noqa: E402  pylint:disable=wrong-import-position
from extensions import db  # noqa: E402
from utils.run_lock import lock_path  # noqa: E402

create_app = archetype_app.create_app


@pytest.fixture(scope="session")
def app():
    flask_app = create_app()
    flask_app.config.update(
        TESTING=True,
        ARCHETYPE_WORKERS=1,
        SQLALCHEMY_SESSION_OPTIONS={"expire_on_commit": False},
    )
    with flask_app.app_context():
        db.session.configure(expire_on_commit=False)
    return flask_app


@pytest.fixture
def db_session(app):
    with app.app_context():
        db.session.remove()
        db.engine.dispose()
        if TEST_DB_PATH.exists():
            TEST_DB_PATH.unlink()
        for suffix in ("-wal", "-shm"):
            sidecar = TEST_DB_PATH.with_name(TEST_DB_PATH.name + suffix)
            if sidecar.exists():
                sidecar.unlink()
        for stage in ("seed", "classify", "weights"):
            lock_path(stage).unlink(missing_ok=True)
        db.create_all()
        yield db
        db.session.remove()
        db.engine.dispose()
        db.drop_all()


@pytest.fixture
def runner(app, db_session):  # noqa: ARG001 - keeps DB initialised for CLI tests
    return app.test_cli_runner()


@pytest.fixture
def seeded_taxonomy(db_session):
    from seeds.seed_archetypes import seed_archetype_taxonomy

    seed_archetype_taxonomy()
    return db_session
