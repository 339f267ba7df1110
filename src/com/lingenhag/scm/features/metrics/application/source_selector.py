# src/com/lingenhag/scm/features/metrics/application/source_selector.py
from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

from com.lingenhag.scm.features.metrics.application.ports import PrecomputedUnavailable
from com.lingenhag.scm.platform.monitoring.metrics import Metrics

_LOG = logging.getLogger(__name__)

T = TypeVar("T")


class AggregationSourceSelector:
    """
    Versucht zuerst den vorberechneten Pfad (DB-View) und fällt bei jedem
    Fehler transparent auf die manuelle Berechnung zurück.

    Errors of the manual path are not caught here; they belong to the caller
    of that single metric.
    """

    def __init__(self, metrics: Optional[Metrics] = None) -> None:
        self.metrics = metrics

    def resolve(self, metric: str, precomputed: Callable[[], T], manual: Callable[[], T]) -> T:
        start = time.time()
        try:
            value = precomputed()
            self._observe(metric, "precomputed", start)
            return value
        except PrecomputedUnavailable as e:
            reason = "unavailable"
            _LOG.warning("Precomputed %s not available, falling back to manual calculation: %s", metric, e)
        except Exception as e:  # noqa: BLE001
            reason = "error"
            _LOG.warning("Precomputed %s failed, falling back to manual calculation: %s", metric, e)

        if self.metrics:
            self.metrics.track_fallback(metric=metric, reason=reason)
        start = time.time()
        value = manual()
        self._observe(metric, "manual", start)
        return value

    def _observe(self, metric: str, path: str, start: float) -> None:
        if self.metrics:
            self.metrics.track_compute_duration(metric=metric, path=path, duration=time.time() - start)
