# src/com/lingenhag/scm/domain/models.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Optional

# -----------------------------
# Observations (raw table rows)
# -----------------------------
@dataclass(frozen=True)
class Observation:
    entity_id: str
    entity_name: str
    entity_symbol: str
    observed_at: datetime
    market_cap: Optional[float] = None
    price: Optional[float] = None
    volume_24h: Optional[float] = None
    granularity: str = ""
    row_id: Optional[int] = None  # store PK, only used as tie-breaker

    def __post_init__(self):
        if self.observed_at.tzinfo is None:
            object.__setattr__(self, "observed_at", self.observed_at.replace(tzinfo=timezone.utc))

    def value(self, field_name: str) -> float:
        if field_name not in NUMERIC_FIELDS:
            raise ValueError(f"Unknown numeric field: {field_name}")
        v = getattr(self, field_name)
        return float(v) if v is not None else 0.0


NUMERIC_FIELDS = ("market_cap", "volume_24h", "price")

# -----------------------------
# Time Buckets
# -----------------------------
@dataclass(frozen=True)
class TimeBucket:
    """Halboffenes UTC-Intervall [start, end)."""
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError("Bucket end must be after start")

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts < self.end

    @classmethod
    def day(cls, d: date) -> "TimeBucket":
        start = datetime.combine(d, time.min, tzinfo=timezone.utc)
        return cls(start=start, end=start + timedelta(days=1))

    @classmethod
    def week(cls, d: date) -> "TimeBucket":
        monday = d - timedelta(days=d.weekday())
        start = datetime.combine(monday, time.min, tzinfo=timezone.utc)
        return cls(start=start, end=start + timedelta(days=7))

# -----------------------------
# Derived values
# -----------------------------
@dataclass(frozen=True)
class ComparativeMetric:
    current: float
    previous: float
    percentage_change: float

@dataclass(frozen=True)
class WeeklyEntityTotal:
    entity_id: str
    entity_name: str
    week: date
    market_cap: float

@dataclass(frozen=True)
class WeekPoint:
    week: str  # ISO date of the Monday
    total_market_cap: float  # billions
    series: Dict[str, float] = field(default_factory=dict)  # billions per named slot
    formatted_date: str = ""

    def as_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {"week": self.week, "total_market_cap": self.total_market_cap}
        out.update(self.series)
        out["formatted_date"] = self.formatted_date
        return out
