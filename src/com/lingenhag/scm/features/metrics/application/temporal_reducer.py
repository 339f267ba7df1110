# src/com/lingenhag/scm/features/metrics/application/temporal_reducer.py
from __future__ import annotations

from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from com.lingenhag.scm.domain.models import Observation, TimeBucket


def _precedes(a: Observation, b: Observation) -> bool:
    """True wenn a vor b rangiert (früherer Zeitstempel, dann kleinere row_id)."""
    if a.observed_at != b.observed_at:
        return a.observed_at < b.observed_at
    if a.row_id is not None and b.row_id is not None:
        return a.row_id < b.row_id
    return False


def first_per_entity(observations: Iterable[Observation], bucket: TimeBucket) -> Dict[str, Observation]:
    """
    Rank 1 pro Entity innerhalb des Buckets (aufsteigend nach observed_at).

    Equivalent to
        RANK() OVER (PARTITION BY coin_id ORDER BY timestamp_utc) = 1
    except that ties never yield two rows: the lower row_id wins, and without
    row ids the first one in input order.
    """
    chosen: Dict[str, Observation] = {}
    for obs in observations:
        if not bucket.contains(obs.observed_at):
            continue
        current = chosen.get(obs.entity_id)
        if current is None or _precedes(obs, current):
            chosen[obs.entity_id] = obs
    return chosen


def reduce_total(observations: Iterable[Observation], bucket: TimeBucket, field: str) -> float:
    """Summe von `field` über die erste Beobachtung je Entity im Bucket. Leerer Bucket → 0.0."""
    chosen = first_per_entity(observations, bucket)
    # sorted keys keep float summation order independent of input order
    return float(sum(chosen[k].value(field) for k in sorted(chosen)))


def latest_observed_at(observations: Iterable[Observation]) -> Optional[datetime]:
    latest: Optional[datetime] = None
    for obs in observations:
        if latest is None or obs.observed_at > latest:
            latest = obs.observed_at
    return latest


def find_latest_total(observations: Iterable[Observation], field: str) -> float:
    """
    Sums `field` over every observation at the single most recent timestamp.
    No per-entity de-duplication: the latest timestamp is one ingestion pass.
    """
    obs_list: List[Observation] = list(observations)
    latest = latest_observed_at(obs_list)
    if latest is None:
        return 0.0
    return float(sum(o.value(field) for o in obs_list if o.observed_at == latest))


def current_total(observations: Iterable[Observation], reference_day: date, field: str) -> float:
    """Reduced total for the reference day; empty day falls back to the latest snapshot."""
    obs_list: List[Observation] = list(observations)
    bucket = TimeBucket.day(reference_day)
    if any(bucket.contains(o.observed_at) for o in obs_list):
        return reduce_total(obs_list, bucket, field)
    return find_latest_total(obs_list, field)
