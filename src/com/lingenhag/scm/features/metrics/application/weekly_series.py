# src/com/lingenhag/scm/features/metrics/application/weekly_series.py
from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import date, datetime
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from com.lingenhag.scm.domain.models import Observation, TimeBucket, WeekPoint, WeeklyEntityTotal
from com.lingenhag.scm.features.metrics.application.time_buckets import utc_date, months_before, week_start

_LOG = logging.getLogger(__name__)

BILLION = 1e9

# Symbol-Slots der Chart-Serien (Reihenfolge = Stapelreihenfolge im Chart)
TRACKED_SYMBOLS: Tuple[str, ...] = ("usdt", "usdc", "dai", "busd", "frax", "tusd")

# coin_id → Slot
DEFAULT_ENTITY_SLOTS: Dict[str, str] = {
    "tether": "usdt",
    "usd-coin": "usdc",
    "dai": "dai",
    "binance-usd": "busd",
    "frax": "frax",
    "true-usd": "tusd",
}


def format_week_label(week: date) -> str:
    """en-US short label, e.g. 'Mar 3'."""
    return f"{week:%b} {week.day}"


def _point(week: date, total: float, slots: Mapping[str, float], slot_names: Iterable[str]) -> WeekPoint:
    return WeekPoint(
        week=week.isoformat(),
        total_market_cap=total / BILLION,
        series={name: slots.get(name, 0.0) / BILLION for name in slot_names},
        formatted_date=format_week_label(week),
    )


def build_weekly_series(
        observations: Iterable[Observation],
        lookback_months: int,
        anchor: datetime,
        *,
        slot_names: Tuple[str, ...] = TRACKED_SYMBOLS,
) -> List[WeekPoint]:
    """
    Sum-in-week variant: every observation inside the lookback window adds its
    market cap to its week, per lower-cased symbol. The total covers all
    symbols, tracked or not.
    """
    cutoff = months_before(anchor, lookback_months)
    weeks: Dict[date, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
    totals: Dict[date, float] = defaultdict(float)

    for obs in observations:
        if obs.observed_at < cutoff:
            continue
        wk = week_start(obs.observed_at)
        mcap = obs.value("market_cap")
        totals[wk] += mcap
        weeks[wk][obs.entity_symbol.lower()] += mcap

    return [_point(wk, totals[wk], weeks[wk], slot_names) for wk in sorted(totals)]


def market_per_entity_per_week(
        observations: Iterable[Observation],
        anchor: datetime,
) -> List[WeeklyEntityTotal]:
    """
    Latest-in-week variant: for each (entity, week) the observation with the
    greatest observed_at. Observations from the anchor's (still incomplete)
    day are excluded.
    """
    cutoff = TimeBucket.day(utc_date(anchor)).start
    latest: Dict[Tuple[str, date], Observation] = {}

    for obs in observations:
        if obs.observed_at >= cutoff:
            continue
        key = (obs.entity_id, week_start(obs.observed_at))
        current = latest.get(key)
        if current is None or obs.observed_at > current.observed_at:
            latest[key] = obs
        elif obs.observed_at == current.observed_at and (obs.row_id or 0) >= (current.row_id or 0):
            latest[key] = obs

    return [
        WeeklyEntityTotal(
            entity_id=entity_id,
            entity_name=obs.entity_name,
            week=wk,
            market_cap=obs.value("market_cap"),
        )
        for (entity_id, wk), obs in sorted(latest.items(), key=lambda kv: (kv[0][1], kv[0][0]))
    ]


def route_weekly_series(
        rows: Iterable[WeeklyEntityTotal],
        entity_slots: Optional[Mapping[str, str]] = None,
) -> List[WeekPoint]:
    """
    Verteilt Wochenwerte pro Entity auf die benannten Serien-Slots.
    Unmapped entities are logged and left out of both slots and total.
    """
    mapping = dict(entity_slots) if entity_slots is not None else DEFAULT_ENTITY_SLOTS
    slot_names = tuple(dict.fromkeys(mapping.values()))
    weeks: Dict[date, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
    totals: Dict[date, float] = {}
    unknown: Counter[str] = Counter()

    for row in rows:
        totals.setdefault(row.week, 0.0)
        slot = mapping.get(row.entity_id.lower())
        if slot is None:
            unknown[row.entity_id] += 1
            continue
        weeks[row.week][slot] += row.market_cap
        totals[row.week] += row.market_cap

    for entity_id, n in sorted(unknown.items()):
        _LOG.info("Unknown coin_id skipped in weekly series: %s (%d weeks)", entity_id, n)

    return [_point(wk, totals[wk], weeks[wk], slot_names) for wk in sorted(totals)]
