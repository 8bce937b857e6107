"""Flask application factory, CLI entry points, and database bootstrap."""

import json
import logging
import os
import sqlite3
import threading

import click
from flask import Flask
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from dotenv import load_dotenv; load_dotenv()

from config import Config, INSTANCE_DIR as CONFIG_INSTANCE_DIR
from extensions import db, migrate, cache
from utils.exceptions import AppError
from utils.logging_config import configure_logging

_LOG = logging.getLogger(__name__)


def _safe_init_sqlalchemy(app: Flask):
    """Initialise SQLAlchemy only if it has not been bound yet."""
    if not getattr(app, "extensions", None) or "sqlalchemy" not in app.extensions:
        db.init_app(app)


def _safe_init_migrate(app: Flask):
    """Bind Flask-Migrate with batch mode so SQLite ALTERs work."""
    if not getattr(app, "extensions", None) or "migrate" not in app.extensions:
        migrate.init_app(app, db, render_as_batch=True)


def _safe_init_cache(app: Flask):
    """Register the cache extension, falling back to SimpleCache if the backend is unavailable."""
    try:
        cache.init_app(app)
    except Exception as exc:
        app.logger.warning("Primary cache init failed (%s); falling back to SimpleCache.", exc)
        fallback_cfg = {
            "CACHE_TYPE": "SimpleCache",
            "CACHE_DEFAULT_TIMEOUT": app.config.get("CACHE_DEFAULT_TIMEOUT", 600),
        }
        cache.init_app(app, config=fallback_cfg)


def _echo_json(payload) -> None:
    click.echo(json.dumps(payload, indent=2, sort_keys=True, default=str))


def _fail(exc: Exception, what: str) -> click.ClickException:
    _LOG.error("%s failed: %s", what, exc, exc_info=True)
    return click.ClickException(f"{what} failed: {exc}")


def register_cli(app: Flask) -> None:
    from models import Card, Commander
    from services import archetype_queries as queries
    from services import classification_store as store
    from services.commander_preferences import commander_weights
    from services.commander_stats import CommanderSortBy, CommanderStatsFilters, commander_stats, top_commanders
    from services.time_periods import TimePeriod
    from worker import tasks

    period_choice = click.Choice([p.value for p in TimePeriod], case_sensitive=False)

    @app.cli.group("archetypes")
    def archetypes_cli():
        """Archetype taxonomy, card classification and commander weights."""

    @archetypes_cli.command("seed")
    def seed_cmd():
        """Insert missing archetype categories and functions."""
        try:
            outcome = tasks.seed_taxonomy()
        except (AppError, SQLAlchemyError) as exc:
            raise _fail(exc, "Taxonomy seeding") from exc
        counts = outcome["result"]
        click.echo(
            f"Categories added: {counts['categories_added']}, functions added: {counts['functions_added']}, "
            f"skipped: {counts['functions_skipped']} ({outcome['elapsed']:.2f}s)"
        )

    @archetypes_cli.command("classify")
    @click.option("--batch-size", type=int, default=None, help="Cards per batch (default ARCHETYPE_BATCH_SIZE).")
    @click.option("--workers", type=int, default=None, help="Classifier threads (default ARCHETYPE_WORKERS).")
    def classify_cmd(batch_size, workers):
        """Clear and rebuild every card classification."""
        try:
            outcome = tasks.classify_cards(batch_size=batch_size, workers=workers)
        except (AppError, SQLAlchemyError) as exc:
            raise _fail(exc, "Card classification") from exc
        stats = outcome["result"]
        click.echo(
            f"Classified {stats['cards_processed']}/{stats['cards_total']} cards: "
            f"{stats['classifications']} rows, {stats['failed_inserts']} failed inserts, "
            f"{stats['card_errors']} card errors ({outcome['elapsed']:.2f}s)"
        )
        for row in stats["summary"]:
            click.echo(f"  {row['category']}: {row['count']} cards")

    @archetypes_cli.command("weights")
    def weights_cmd():
        """Rebuild commander archetype weights."""
        try:
            outcome = tasks.compute_commander_weights()
        except (AppError, SQLAlchemyError) as exc:
            raise _fail(exc, "Commander preference calculation") from exc
        stats = outcome["result"]
        click.echo(
            f"Commanders: {stats['commanders_processed']}/{stats['commanders_eligible']} processed, "
            f"{stats['commanders_with_weights']} with weights, {stats['weights_written']} weights, "
            f"{stats['failures']} failures ({outcome['elapsed']:.2f}s)"
        )

    @archetypes_cli.command("migrate")
    @click.option("--batch-size", type=int, default=None)
    @click.option("--workers", type=int, default=None)
    def migrate_cmd(batch_size, workers):
        """Seed, classify and compute commander weights in one run."""
        cancel_event = threading.Event()
        try:
            outcome = tasks.run_archetype_migration(
                batch_size=batch_size, workers=workers, cancel_event=cancel_event
            )
        except KeyboardInterrupt:
            cancel_event.set()
            raise click.ClickException("Archetype migration interrupted.")
        except (AppError, SQLAlchemyError) as exc:
            raise _fail(exc, "Archetype migration") from exc
        for name, stage in outcome["stages"].items():
            click.echo(f"{name}: {stage['elapsed']:.2f}s")
        click.echo(f"Archetype migration completed in {outcome['elapsed']:.2f}s (run {outcome['run_id']})")

    @archetypes_cli.command("summary")
    @click.option("--json", "as_json", is_flag=True, help="Output raw JSON.")
    def summary_cmd(as_json):
        """Categories with their functions and card counts."""
        categories = queries.list_categories()
        if as_json:
            _echo_json(categories)
            return
        for category in categories:
            click.echo(f"{category['name']} ({category['card_count']} cards)")
            for fn in category["functions"]:
                click.echo(f"  - {fn['name']}: {fn['card_count']}")

    @archetypes_cli.command("card")
    @click.argument("card_id", type=int)
    @click.option("--min-confidence", type=float, default=queries.CARD_ARCHETYPE_FLOOR, show_default=True)
    def card_cmd(card_id, min_confidence):
        """Show stored archetypes for one card."""
        card = db.session.get(Card, card_id)
        if card is None:
            raise click.ClickException(f"Card {card_id} not found.")
        _echo_json(
            {
                "card": {"id": card.id, "name": card.name},
                "primary": queries.primary_archetype(card_id),
                "archetypes": queries.card_archetypes(card_id, min_confidence=min_confidence),
                "categories": [c["name"] for c in queries.card_archetype_categories(card_id)],
            }
        )

    @archetypes_cli.command("explain")
    @click.argument("card_id", type=int)
    def explain_cmd(card_id):
        """Score one card against every function without writing anything."""
        from archetypes.classifier import classify_card, prepare_card, primary_function, score_function
        from services.card_classification import load_catalog

        card = db.session.get(Card, card_id)
        if card is None:
            raise click.ClickException(f"Card {card_id} not found.")
        catalog = load_catalog()
        prepared = prepare_card(card)
        best = primary_function(classify_card(prepared, catalog))
        for fn in catalog:
            b = score_function(prepared, fn)
            marker = "*" if best is not None and best.function_id == fn.id else " "
            click.echo(
                f"{marker} {fn.name:<22} conf={b.confidence:.3f} kw={b.keyword_score:.2f} "
                f"pat={b.pattern_score:.2f} type=+{b.type_bonus:.1f} known=+{b.known_card_bonus:.1f}"
                f"{' ctx' if b.context_dependent else ''}"
            )

    @archetypes_cli.command("override")
    @click.argument("card_id", type=int)
    @click.argument("function_id", type=int)
    @click.argument("confidence", type=click.FloatRange(0.0, 1.0))
    @click.option("--context-dependent", is_flag=True)
    def override_cmd(card_id, function_id, confidence, context_dependent):
        """Pin a curated classification that rebuilds will keep."""
        try:
            store.set_manual_override(card_id, function_id, confidence, context_dependent)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise _fail(exc, "Manual override") from exc
        queries.invalidate_summaries()
        click.echo(f"Pinned card {card_id} -> function {function_id} at {confidence:.2f}")

    @archetypes_cli.command("search")
    @click.option("--category", "categories", multiple=True)
    @click.option("--function", "functions", multiple=True)
    @click.option("--min-confidence", type=float, default=queries.SEARCH_DEFAULT_CONFIDENCE, show_default=True)
    @click.option("--context-dependent/--no-context-dependent", default=None)
    @click.option("--color", "colors", multiple=True, help="W/U/B/R/G, or C for colourless.")
    @click.option("--cmc-min", type=float, default=None)
    @click.option("--cmc-max", type=float, default=None)
    @click.option("--type", "types", multiple=True)
    @click.option("--limit", type=int, default=50, show_default=True)
    @click.option("--offset", type=int, default=0, show_default=True)
    def search_cmd(categories, functions, min_confidence, context_dependent, colors, cmc_min, cmc_max, types, limit, offset):
        """Find cards by archetype and card attributes."""
        filters = queries.ArchetypeSearchFilters(
            categories=list(categories),
            functions=list(functions),
            min_confidence=min_confidence,
            context_dependent=context_dependent,
            colors=list(colors),
            cmc_min=cmc_min,
            cmc_max=cmc_max,
            types=list(types),
        )
        for row in queries.search_cards_by_archetype(filters, limit=limit, offset=offset):
            click.echo(f"{row['id']:>7}  {row['name']}  [{row['type_line'] or ''}]")

    @archetypes_cli.command("commander")
    @click.argument("name")
    @click.option("--time-period", type=period_choice, default=TimePeriod.SIX_MONTHS.value, show_default=True)
    def commander_cmd(name, time_period):
        """Archetype usage and learned weights for one commander."""
        commander = Commander.query.filter_by(name=name).first()
        if commander is None:
            raise click.ClickException(f"Commander {name!r} not found.")
        _echo_json(
            {
                "commander": name,
                "weights": commander_weights(commander.id),
                "analysis": queries.commander_archetype_analysis(name, time_period.upper()),
            }
        )

    @archetypes_cli.command("meta")
    @click.option("--time-period", type=period_choice, default=TimePeriod.THREE_MONTHS.value, show_default=True)
    @click.option("--min-size", type=int, default=60, show_default=True)
    @click.option("--commander", "commanders", multiple=True)
    def meta_cmd(time_period, min_size, commanders):
        """Archetype popularity across successful decks."""
        _echo_json(
            queries.archetype_meta_analysis(
                time_period.upper(), min_tournament_size=min_size, commanders=list(commanders) or None
            )
        )

    @app.cli.group("commanders")
    def commanders_cli():
        """Commander tournament statistics."""

    @commanders_cli.command("top")
    @click.option(
        "--sort-by",
        type=click.Choice([s.value for s in CommanderSortBy], case_sensitive=False),
        default=CommanderSortBy.CONVERSION.value,
        show_default=True,
    )
    @click.option("--time-period", type=period_choice, default=TimePeriod.ONE_MONTH.value, show_default=True)
    @click.option("--min-entries", type=int, default=0, show_default=True)
    @click.option("--min-size", type=int, default=0, show_default=True)
    @click.option("--color-id", default=None)
    @click.option("--limit", type=int, default=20, show_default=True)
    def top_cmd(sort_by, time_period, min_entries, min_size, color_id, limit):
        """Leaderboard of commanders."""
        rows = top_commanders(
            sort_by=sort_by,
            time_period=time_period,
            min_entries=min_entries,
            min_tournament_size=min_size,
            color_id=color_id,
            limit=limit,
        )
        for row in rows:
            click.echo(
                f"{row['name']:<40} entries={row['count']:<5} top_cuts={row['top_cuts']:<4} "
                f"conversion={row['conversion_rate'] * 100:.1f}%"
            )

    @commanders_cli.command("stats")
    @click.argument("names", nargs=-1, required=True)
    @click.option("--time-period", type=period_choice, default=TimePeriod.ALL_TIME.value, show_default=True)
    @click.option("--min-size", type=int, default=0, show_default=True)
    def stats_cmd(names, time_period, min_size):
        """Count, top cuts, conversion and meta share for named commanders."""
        commanders = Commander.query.filter(Commander.name.in_(names)).order_by(Commander.name).all()
        if not commanders:
            raise click.ClickException("No matching commanders.")
        filters = CommanderStatsFilters(min_size=min_size, time_period=TimePeriod(time_period.upper()))
        stats = commander_stats([c.id for c in commanders], filters)
        _echo_json({c.name: s for c, s in zip(commanders, stats)})


def create_app():
    """Create, configure, and return a fully-initialised Flask app."""
    app = Flask(
        __name__,
        instance_path=str(CONFIG_INSTANCE_DIR),
        instance_relative_config=False,
    )
    app.config.from_object(Config)

    os.makedirs(app.instance_path, exist_ok=True)
    configure_logging(app)

    # If no DB URI provided, store SQLite DB in instance/
    if not app.config.get("SQLALCHEMY_DATABASE_URI"):
        app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{os.path.join(app.instance_path, 'database.db')}"

    # --- Core extensions ---
    _safe_init_sqlalchemy(app)
    _safe_init_migrate(app)
    _safe_init_cache(app)

    import models  # noqa: F401  (register tables on the metadata)

    register_cli(app)
    return app


# Single SQLite PRAGMA hook (avoid duplicate listeners)
_SQLITE_PRAGMA_STATEMENTS = (
    "PRAGMA foreign_keys=ON;",
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
)


def _apply_sqlite_pragmas(dbapi_connection) -> None:
    """Execute the configured PRAGMAs if this is a SQLite connection."""
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    cur = dbapi_connection.cursor()
    try:
        for statement in _SQLITE_PRAGMA_STATEMENTS:
            cur.execute(statement)
    except sqlite3.Error as exc:
        _LOG.warning("Could not apply SQLite PRAGMAs: %s", exc)
    finally:
        cur.close()


@event.listens_for(Engine, "connect")
def _sqlite_pragmas(dbapi_connection, _) -> None:
    """Enforce foreign keys (and WAL) each time SQLite opens a connection."""
    _apply_sqlite_pragmas(dbapi_connection)
