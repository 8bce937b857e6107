from datetime import datetime, timedelta

import pytest

from extensions import db
from factories import create_commander, create_entry, create_tournament
from services.commander_stats import (
    CommanderSortBy,
    CommanderStatsFilters,
    commander_stats,
    top_commanders,
)
from services.query_cache import QueryCache
from services.time_periods import TimePeriod

NOW = datetime(2026, 6, 1)


@pytest.fixture
def field(db_session):
    event = create_tournament(size=40, top_cut=10, tournament_date=NOW - timedelta(days=3))
    stale = create_tournament(size=40, top_cut=10, tournament_date=NOW - timedelta(days=200))
    popular = create_commander(name="Popular", color_id="UG")
    sharp = create_commander(name="Sharp", color_id="B")
    unknown = create_commander(name="Unknown Commander", color_id="C")
    idle = create_commander(name="Idle")

    for standing in (1, 12, 20, 30):
        create_entry(commander=popular, tournament=event, standing=standing)
    for standing in (2, 3):
        create_entry(commander=sharp, tournament=event, standing=standing)
    for standing in (4, 5, 6, 7, 8):
        create_entry(commander=unknown, tournament=event, standing=standing)
    create_entry(commander=sharp, tournament=stale, standing=39)
    db.session.commit()
    return {"popular": popular, "sharp": sharp, "unknown": unknown, "idle": idle}


def test_commander_stats_in_requested_order(field):
    filters = CommanderStatsFilters(time_period=TimePeriod.ONE_MONTH)
    popular, sharp, idle = commander_stats(
        [field["popular"].id, field["sharp"].id, field["idle"].id], filters, now=NOW
    )

    assert popular["count"] == 4
    assert popular["top_cuts"] == 1
    assert popular["conversion_rate"] == pytest.approx(0.25)
    assert popular["meta_share"] == pytest.approx(4 / 11)
    assert popular["top_cut_bias"] == pytest.approx(4 * 10 / 40)

    assert sharp["count"] == 2
    assert sharp["conversion_rate"] == pytest.approx(1.0)
    assert idle == {"count": 0, "top_cuts": 0, "conversion_rate": 0.0, "meta_share": 0.0, "top_cut_bias": 0.0}


def test_commander_stats_all_time_includes_old_events(field):
    (sharp,) = commander_stats([field["sharp"].id], CommanderStatsFilters(), now=NOW)
    assert sharp["count"] == 3
    assert sharp["top_cuts"] == 2


def test_top_commanders_sorting_and_exclusions(field):
    cache = QueryCache()
    by_popularity = top_commanders(CommanderSortBy.POPULARITY, TimePeriod.ONE_MONTH, query_cache=cache, now=NOW)
    by_conversion = top_commanders("conversion", "ONE_MONTH", query_cache=cache, now=NOW)

    assert [row["name"] for row in by_popularity] == ["Popular", "Sharp"]
    assert [row["name"] for row in by_conversion] == ["Sharp", "Popular"]
    assert "Unknown Commander" not in {row["name"] for row in by_popularity}


def test_top_commanders_filters(field):
    cache = QueryCache()
    assert [r["name"] for r in top_commanders(min_entries=3, query_cache=cache, now=NOW)] == ["Popular"]
    assert [r["name"] for r in top_commanders(color_id="B", query_cache=cache, now=NOW)] == ["Sharp"]
    assert top_commanders(min_tournament_size=100, query_cache=cache, now=NOW) == []


def test_top_commanders_results_are_cached(field):
    cache = QueryCache(ttl=60)
    first = top_commanders(CommanderSortBy.TOP_CUTS, query_cache=cache, now=NOW)

    create_entry(commander=field["popular"], tournament=create_tournament(tournament_date=NOW), standing=1)
    db.session.commit()

    assert top_commanders(CommanderSortBy.TOP_CUTS, query_cache=cache, now=NOW) == first
    assert len(cache) == 1
    fresh = top_commanders(CommanderSortBy.TOP_CUTS, query_cache=QueryCache(), now=NOW)
    assert fresh != first
