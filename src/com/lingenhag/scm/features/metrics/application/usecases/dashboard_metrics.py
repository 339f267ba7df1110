# src/com/lingenhag/scm/features/metrics/application/usecases/dashboard_metrics.py
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from functools import partial
from typing import Callable, Dict, List, Optional

from com.lingenhag.scm.domain.models import Observation, TimeBucket, WeekPoint
from com.lingenhag.scm.features.metrics.application.comparative_metrics import (
    month_over_month,
    monthly_growth_rate,
    year_over_year,
)
from com.lingenhag.scm.features.metrics.application.ports import ObservationStorePort
from com.lingenhag.scm.features.metrics.application.source_selector import AggregationSourceSelector
from com.lingenhag.scm.features.metrics.application.temporal_reducer import current_total
from com.lingenhag.scm.features.metrics.application.time_buckets import (
    months_before,
    same_day_last_month,
    same_weekday_last_year,
    utc_date,
)
from com.lingenhag.scm.features.metrics.application.weekly_series import (
    build_weekly_series,
    market_per_entity_per_week,
    route_weekly_series,
)
from com.lingenhag.scm.platform.monitoring.metrics import Metrics

_LOG = logging.getLogger(__name__)

TOTAL_MARKET_CAP = "total_market_cap"
TOTAL_VOLUME_24H = "total_volume_24h"
MONTHLY_GROWTH_RATE = "monthly_growth_rate"
MARKET_CAP_CHANGE_MOM = "total_market_cap_change_mom"
VOLUME_CHANGE_MOM = "total_volume_change_mom"
MARKET_CAP_CHANGE_YOY = "market_cap_change_yoy"
WEEKLY_SERIES = "weekly_series"

WEEKLY_POLICIES = ("latest", "sum")


@dataclass(frozen=True)
class MetricResult:
    name: str
    value: Optional[float] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class DashboardSnapshot:
    results: Dict[str, MetricResult] = field(default_factory=dict)
    last_updated: Optional[datetime] = None

    @property
    def failed(self) -> List[MetricResult]:
        return [r for r in self.results.values() if not r.ok]

    def value(self, name: str) -> Optional[float]:
        res = self.results.get(name)
        return res.value if res else None


class DashboardMetrics:
    """
    Dashboard-KPIs über stablecoin_market_caps.

    Each scalar metric tries its precomputed view first and falls back to the
    manual computation over raw observations. "Today" is always the day of the
    store's latest observed_at, never the wall clock.
    """

    def __init__(
            self,
            store: ObservationStorePort,
            selector: Optional[AggregationSourceSelector] = None,
            *,
            metrics: Optional[Metrics] = None,
            max_workers: int = 6,
            weekly_lookback_months: int = 12,
            weekly_policy: str = "latest",
    ) -> None:
        if weekly_policy not in WEEKLY_POLICIES:
            raise ValueError(f"weekly_policy must be one of {WEEKLY_POLICIES}, got {weekly_policy!r}")
        self.store = store
        self.metrics = metrics
        self.selector = selector or AggregationSourceSelector(metrics=metrics)
        self.max_workers = int(max_workers)
        self.weekly_lookback_months = int(weekly_lookback_months)
        self.weekly_policy = weekly_policy

    # ---------- helpers ----------
    def _resolve_anchor(self, anchor: Optional[datetime]) -> Optional[datetime]:
        return anchor if anchor is not None else self.store.latest_observed_at()

    def _reference_day(self, reference_day: Optional[date], anchor: Optional[datetime]) -> Optional[date]:
        if reference_day is not None:
            return reference_day
        anchor = self._resolve_anchor(anchor)
        return utc_date(anchor) if anchor is not None else None

    def _fetch_buckets(self, *buckets: TimeBucket) -> List[Observation]:
        out: List[Observation] = []
        for b in buckets:
            out.extend(self.store.fetch_observations(b.start, b.end))
        return out

    def _scalar(self, metric: str, view: str, manual: Callable[[], float], reference_day: Optional[date]) -> float:
        # Views sind auf max(timestamp_utc) verankert; expliziter Stichtag → nur manuell
        if reference_day is not None:
            return manual()
        return self.selector.resolve(
            metric,
            precomputed=lambda: self.store.fetch_precomputed(view) or 0.0,
            manual=manual,
        )

    # ---------- current totals ----------
    def _manual_current_total(
            self,
            field_name: str,
            reference_day: Optional[date],
            anchor: Optional[datetime],
    ) -> float:
        anchor = self._resolve_anchor(anchor)
        day = reference_day if reference_day is not None else (utc_date(anchor) if anchor is not None else None)
        if day is None:
            return 0.0
        bucket = TimeBucket.day(day)
        observations = self.store.fetch_observations(bucket.start, bucket.end)
        if not observations and anchor is not None:
            _LOG.info("No observations on %s, using latest snapshot at %s", day, anchor.isoformat())
            observations = self.store.fetch_observations(anchor, anchor + timedelta(microseconds=1))
        return current_total(observations, day, field_name)

    def total_market_cap(self, reference_day: Optional[date] = None, anchor: Optional[datetime] = None) -> float:
        return self._scalar(
            TOTAL_MARKET_CAP,
            "v_current_market_cap",
            lambda: self._manual_current_total("market_cap", reference_day, anchor),
            reference_day,
        )

    def total_volume_24h(self, reference_day: Optional[date] = None, anchor: Optional[datetime] = None) -> float:
        return self._scalar(
            TOTAL_VOLUME_24H,
            "v_current_volume",
            lambda: self._manual_current_total("volume_24h", reference_day, anchor),
            reference_day,
        )

    # ---------- comparisons ----------
    def _manual_mom(self, field_name: str, reference_day: Optional[date], anchor: Optional[datetime]) -> float:
        day = self._reference_day(reference_day, anchor)
        if day is None:
            return 0.0
        observations = self._fetch_buckets(TimeBucket.day(day), same_day_last_month(day))
        return month_over_month(observations, day, field_name).percentage_change

    def _manual_yoy(self, reference_day: Optional[date], anchor: Optional[datetime]) -> float:
        day = self._reference_day(reference_day, anchor)
        if day is None:
            return 0.0
        observations = self._fetch_buckets(TimeBucket.day(day), same_weekday_last_year(day))
        return year_over_year(observations, day).percentage_change

    def total_market_cap_change_mom(
            self,
            reference_day: Optional[date] = None,
            anchor: Optional[datetime] = None,
    ) -> float:
        return self._scalar(
            MARKET_CAP_CHANGE_MOM,
            "v_market_cap_perc_change",
            lambda: self._manual_mom("market_cap", reference_day, anchor),
            reference_day,
        )

    def total_volume_change_mom(
            self,
            reference_day: Optional[date] = None,
            anchor: Optional[datetime] = None,
    ) -> float:
        return self._scalar(
            VOLUME_CHANGE_MOM,
            "v_volume_perc_change",
            lambda: self._manual_mom("volume_24h", reference_day, anchor),
            reference_day,
        )

    def market_cap_change_yoy(self, reference_day: Optional[date] = None, anchor: Optional[datetime] = None) -> float:
        return self._scalar(
            MARKET_CAP_CHANGE_YOY,
            "v_market_cap_perc_change_yoy",
            lambda: self._manual_yoy(reference_day, anchor),
            reference_day,
        )

    def monthly_growth_rate(self) -> float:
        return self.selector.resolve(
            MONTHLY_GROWTH_RATE,
            precomputed=lambda: self.store.fetch_precomputed("v_monthly_growth_rate") or 0.0,
            manual=lambda: monthly_growth_rate(self.store.fetch_observations()),
        )

    # ---------- weekly chart ----------
    def weekly_series(
            self,
            policy: Optional[str] = None,
            lookback_months: Optional[int] = None,
    ) -> List[WeekPoint]:
        """
        "latest": letzter Wert pro Coin und Woche, auf benannte Slots geroutet (Default).
        "sum": Summe aller Werte pro Symbol und Woche im Lookback-Fenster.
        """
        policy = policy or self.weekly_policy
        if policy not in WEEKLY_POLICIES:
            raise ValueError(f"Unknown weekly policy: {policy}")
        anchor = self.store.latest_observed_at()
        if anchor is None:
            return []

        if policy == "sum":
            months = self.weekly_lookback_months if lookback_months is None else int(lookback_months)
            observations = self.store.fetch_observations(start=months_before(anchor, months))
            return build_weekly_series(observations, months, anchor)

        return self.selector.resolve(
            WEEKLY_SERIES,
            precomputed=lambda: route_weekly_series(self.store.fetch_precomputed_weekly()),
            manual=lambda: route_weekly_series(
                market_per_entity_per_week(self.store.fetch_observations(), anchor)
            ),
        )

    # ---------- fan-out ----------
    def load(self) -> DashboardSnapshot:
        """
        Berechnet alle Skalar-Metriken parallel. Ein Fehler betrifft nur die
        jeweilige Metrik und landet in MetricResult.error.

        Der Anker wird einmal gelesen und an alle Metriken weitergereicht, damit
        parallel eingefügte Zeilen keine unterschiedlichen Stichtage erzeugen.
        """
        anchor: Optional[datetime] = None
        try:
            anchor = self.store.latest_observed_at()
        except Exception as e:  # noqa: BLE001
            # jede Metrik liest den Anker dann selbst und meldet den Fehler einzeln
            _LOG.error("Failed to fetch anchor timestamp: %s", e)

        tasks: Dict[str, Callable[[], float]] = {
            TOTAL_MARKET_CAP: partial(self.total_market_cap, anchor=anchor),
            TOTAL_VOLUME_24H: partial(self.total_volume_24h, anchor=anchor),
            MONTHLY_GROWTH_RATE: self.monthly_growth_rate,
            MARKET_CAP_CHANGE_MOM: partial(self.total_market_cap_change_mom, anchor=anchor),
            VOLUME_CHANGE_MOM: partial(self.total_volume_change_mom, anchor=anchor),
            MARKET_CAP_CHANGE_YOY: partial(self.market_cap_change_yoy, anchor=anchor),
        }
        results: Dict[str, MetricResult] = {}
        last_updated: Optional[datetime] = None

        with ThreadPoolExecutor(max_workers=max(1, self.max_workers)) as pool:
            futures = {pool.submit(fn): name for name, fn in tasks.items()}
            updated_future = pool.submit(self.store.last_updated)

            for fut in as_completed(futures):
                name = futures[fut]
                try:
                    results[name] = MetricResult(name=name, value=float(fut.result()))
                except Exception as e:  # noqa: BLE001
                    _LOG.error("Error fetching %s: %s", name, e)
                    if self.metrics:
                        self.metrics.track_failure(metric=name)
                    results[name] = MetricResult(name=name, error=str(e))

            try:
                last_updated = updated_future.result()
            except Exception as e:  # noqa: BLE001
                _LOG.error("Failed to fetch last updated date: %s", e)

        ordered = {name: results[name] for name in tasks}
        return DashboardSnapshot(results=ordered, last_updated=last_updated)
