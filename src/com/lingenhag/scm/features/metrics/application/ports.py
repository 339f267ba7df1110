# src/com/lingenhag/scm/features/metrics/application/ports.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol

from com.lingenhag.scm.domain.models import Observation, WeeklyEntityTotal


class MetricsError(RuntimeError):
    """Basisklasse für Fehler der Metrik-Schicht."""


class PrecomputedUnavailable(MetricsError):
    """Precomputed aggregation is missing or failed; the manual path takes over."""


class StoreReadError(MetricsError):
    """Rohdaten konnten nicht gelesen werden (DB/IO). Fatal für die betroffene Metrik."""


class ObservationStorePort(Protocol):
    # ---- Rohdaten ----
    def fetch_observations(
            self,
            start: Optional[datetime] = None,
            end: Optional[datetime] = None,
    ) -> List[Observation]:
        """
        Beobachtungen im halboffenen Intervall [start, end), sortiert nach
        (entity_id, observed_at, row_id). None = unbeschränkt.
        """
        ...

    def latest_observed_at(self) -> Optional[datetime]:
        """Globales max(observed_at) – Anker für 'heute'."""
        ...

    def last_updated(self) -> Optional[datetime]:
        ...

    # ---- Precomputed (Views) ----
    def fetch_precomputed(self, view: str) -> Optional[float]:
        """Single scalar from a precomputed view. Raises PrecomputedUnavailable."""
        ...

    def fetch_precomputed_weekly(self) -> List[WeeklyEntityTotal]:
        """Rows of v_market_cap_per_week_per_coin. Raises PrecomputedUnavailable."""
        ...
