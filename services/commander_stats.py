"""Commander tournament statistics and leaderboards."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional

from sqlalchemy import Float, case, cast, func, select

from extensions import db
from models import Commander, Entry, Tournament
from services.query_cache import QueryCache, default_query_cache
from services.time_periods import TimePeriod, min_date_from_time_period, parse_time_period

_LOG = logging.getLogger(__name__)

EXCLUDED_COMMANDERS = ("Unknown Commander", "Nadu, Winged Wisdom")
MAX_TOURNAMENT_SIZE = 1_000_000


class CommanderSortBy(str, Enum):
    POPULARITY = "POPULARITY"
    CONVERSION = "CONVERSION"
    TOP_CUTS = "TOP_CUTS"


@dataclass
class CommanderStatsFilters:
    color_id: Optional[str] = None
    min_size: int = 0
    max_size: int = MAX_TOURNAMENT_SIZE
    min_date: Optional[datetime] = None
    max_date: Optional[datetime] = None
    time_period: Optional[TimePeriod] = None


def _zero_stats() -> dict:
    return {"count": 0, "top_cuts": 0, "conversion_rate": 0.0, "meta_share": 0.0, "top_cut_bias": 0.0}


def _top_cut_flag():
    return case((Entry.standing <= Tournament.top_cut, 1), else_=0)


def commander_stats(
    commander_ids: Iterable[int],
    filters: CommanderStatsFilters | None = None,
    *,
    now: Optional[datetime] = None,
) -> List[dict]:
    """Per-commander stats in the order of `commander_ids`.

    `top_cut_bias` sums top_cut / size over the commander's entries, i.e. the
    number of top cuts expected if placement were random. Commanders without
    qualifying entries get zeros.
    """
    ids = [int(cid) for cid in commander_ids]
    if not ids:
        return []
    filters = filters or CommanderStatsFilters()
    now = now or datetime.utcnow()
    max_date = filters.max_date or now
    if filters.min_date is not None:
        min_date = filters.min_date
    else:
        min_date = min_date_from_time_period(filters.time_period, now=now)

    window = (
        Tournament.size >= filters.min_size,
        Tournament.size <= filters.max_size,
        Tournament.tournament_date >= min_date,
        Tournament.tournament_date <= max_date,
    )

    total_entries = db.session.execute(
        select(func.count(Entry.id)).join(Tournament, Tournament.id == Entry.tournament_id).where(*window)
    ).scalar() or 1

    top_cuts = func.sum(_top_cut_flag())
    stmt = (
        select(
            Commander.id,
            func.count(Entry.id).label("count"),
            top_cuts.label("top_cuts"),
            func.sum(cast(Tournament.top_cut, Float) / cast(Tournament.size, Float)).label("top_cut_bias"),
        )
        .join(Entry, Entry.commander_id == Commander.id)
        .join(Tournament, Tournament.id == Entry.tournament_id)
        .where(*window)
        .where(Commander.id.in_(ids))
        .group_by(Commander.id)
    )
    if filters.color_id:
        stmt = stmt.where(Commander.color_id == filters.color_id)

    by_id = {}
    for row in db.session.execute(stmt).all():
        count = int(row.count or 0)
        cuts = int(row.top_cuts or 0)
        by_id[row.id] = {
            "count": count,
            "top_cuts": cuts,
            "conversion_rate": cuts / count if count else 0.0,
            "meta_share": count / total_entries,
            "top_cut_bias": float(row.top_cut_bias or 0.0),
        }
    return [by_id.get(cid, _zero_stats()) for cid in ids]


def _query_top_commanders(
    sort_by: CommanderSortBy,
    min_date: datetime,
    min_entries: int,
    min_tournament_size: int,
    color_id: Optional[str],
    limit: int,
) -> List[dict]:
    count = func.count(Entry.id)
    top_cuts = func.sum(_top_cut_flag())
    conversion = cast(top_cuts, Float) / count
    stats = (
        select(
            Entry.commander_id.label("commander_id"),
            count.label("count"),
            top_cuts.label("top_cuts"),
            conversion.label("conversion_rate"),
        )
        .join(Tournament, Tournament.id == Entry.tournament_id)
        .where(Tournament.tournament_date >= min_date)
        .where(Tournament.size >= min_tournament_size)
        .group_by(Entry.commander_id)
        .subquery("stats")
    )
    sort_column = {
        CommanderSortBy.POPULARITY: stats.c.count,
        CommanderSortBy.TOP_CUTS: stats.c.top_cuts,
        CommanderSortBy.CONVERSION: stats.c.conversion_rate,
    }[sort_by]

    stmt = (
        select(
            Commander.id,
            Commander.name,
            Commander.color_id,
            stats.c.count,
            stats.c.top_cuts,
            stats.c.conversion_rate,
        )
        .join(stats, stats.c.commander_id == Commander.id)
        .where(Commander.name.not_in(EXCLUDED_COMMANDERS))
        .where(stats.c.count >= min_entries)
        .order_by(sort_column.desc(), Commander.id.desc())
        .limit(limit)
    )
    if color_id:
        stmt = stmt.where(Commander.color_id == color_id)

    return [
        {
            "id": row.id,
            "name": row.name,
            "color_id": row.color_id,
            "count": int(row.count or 0),
            "top_cuts": int(row.top_cuts or 0),
            "conversion_rate": float(row.conversion_rate or 0.0),
        }
        for row in db.session.execute(stmt).all()
    ]


def top_commanders(
    sort_by: CommanderSortBy | str = CommanderSortBy.CONVERSION,
    time_period: TimePeriod | str = TimePeriod.ONE_MONTH,
    min_entries: int = 0,
    min_tournament_size: int = 0,
    color_id: Optional[str] = None,
    limit: int = 50,
    *,
    query_cache: Optional[QueryCache] = None,
    now: Optional[datetime] = None,
) -> List[dict]:
    """Commander leaderboard, cached per argument set in a QueryCache."""
    sort_by = CommanderSortBy(str(sort_by.value if isinstance(sort_by, Enum) else sort_by).upper())
    period = parse_time_period(time_period)
    query_cache = query_cache or default_query_cache()
    key = QueryCache.make_key(
        query="top_commanders",
        sort_by=sort_by.value,
        time_period=period.value,
        min_entries=min_entries or 0,
        min_tournament_size=min_tournament_size or 0,
        color_id=color_id,
        limit=limit,
    )

    def _load() -> List[dict]:
        _LOG.info(
            "Executing fresh commanders query",
            extra={"sort_by": sort_by.value, "time_period": period.value, "color_id": color_id},
        )
        return _query_top_commanders(
            sort_by,
            min_date_from_time_period(period, now=now),
            min_entries or 0,
            min_tournament_size or 0,
            color_id,
            limit,
        )

    return query_cache.get_or_set(key, _load)


__all__ = [
    "CommanderSortBy",
    "CommanderStatsFilters",
    "EXCLUDED_COMMANDERS",
    "commander_stats",
    "top_commanders",
]
