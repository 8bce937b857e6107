"""Run the full archetype migration outside the Flask CLI.

    python scripts/migrate_archetypes.py [--batch-size N] [--workers N]
"""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path
from typing import Optional

import click

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app import create_app  # noqa: E402
from worker.tasks import run_archetype_migration  # noqa: E402

_LOG = logging.getLogger("scripts.migrate_archetypes")


def main(batch_size: Optional[int] = None, workers: Optional[int] = None, app=None) -> int:
    """Returns the process exit status: 0 on success, 1 on failure, 130 if interrupted."""
    app = app or create_app()
    cancel_event = threading.Event()
    with app.app_context():
        try:
            outcome = run_archetype_migration(batch_size=batch_size, workers=workers, cancel_event=cancel_event)
        except KeyboardInterrupt:
            cancel_event.set()
            _LOG.error("Archetype migration interrupted")
            return 130
        except Exception as exc:
            _LOG.error("Archetype migration failed: %s", exc, exc_info=True)
            click.echo(f"Archetype migration failed: {exc}", err=True)
            return 1

    click.echo(f"Archetype migration completed in {outcome['elapsed']:.2f}s")
    return 0


@click.command()
@click.option("--batch-size", type=int, default=None, help="Cards per batch.")
@click.option("--workers", type=int, default=None, help="Classifier threads.")
def cli(batch_size, workers):
    sys.exit(main(batch_size=batch_size, workers=workers))


if __name__ == "__main__":
    cli()
