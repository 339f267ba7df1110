# src/com/lingenhag/scm/features/metrics/application/comparative_metrics.py
from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List

from com.lingenhag.scm.domain.models import ComparativeMetric, Observation
from com.lingenhag.scm.features.metrics.application.temporal_reducer import reduce_total
from com.lingenhag.scm.features.metrics.application.time_buckets import (
    day_bucket,
    month_key,
    same_day_last_month,
    same_weekday_last_year,
)


def percentage_change(current: float, previous: float) -> float:
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100.0


def _compare(observations: List[Observation], current_bucket, previous_bucket, field: str) -> ComparativeMetric:
    current = reduce_total(observations, current_bucket, field)
    previous = reduce_total(observations, previous_bucket, field)
    return ComparativeMetric(
        current=current,
        previous=previous,
        percentage_change=percentage_change(current, previous),
    )


def month_over_month(
        observations: Iterable[Observation],
        reference_day: date,
        field: str = "market_cap",
) -> ComparativeMetric:
    """
    Reference day vs. the same calendar day one month earlier.
    Month-end days clamp (03-31 → 02-28/29), see time_buckets.months_before.
    """
    obs_list = list(observations)
    return _compare(obs_list, day_bucket(reference_day), same_day_last_month(reference_day), field)


def year_over_year(observations: Iterable[Observation], reference_day: date) -> ComparativeMetric:
    """Market cap vs. 51 weeks earlier (same weekday, no leap-year drift)."""
    obs_list = list(observations)
    return _compare(obs_list, day_bucket(reference_day), same_weekday_last_year(reference_day), "market_cap")


def monthly_totals(observations: Iterable[Observation]) -> Dict[str, float]:
    """{YYYY-MM -> Summe market_cap} über alle Beobachtungen, ohne Deduplizierung."""
    totals: Dict[str, float] = {}
    for obs in observations:
        key = month_key(obs.observed_at)
        totals[key] = totals.get(key, 0.0) + obs.value("market_cap")
    return totals


def monthly_growth_rate(observations: Iterable[Observation]) -> float:
    totals = monthly_totals(observations)
    months = sorted(totals, reverse=True)
    if len(months) < 2:
        return 0.0
    return percentage_change(totals[months[0]], totals[months[1]])
