# src/com/lingenhag/scm/features/metrics/infrastructure/repositories/duckdb_observation_repository.py
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

import duckdb

from com.lingenhag.scm.domain.models import Observation, WeeklyEntityTotal
from com.lingenhag.scm.features.metrics.application.ports import (
    ObservationStorePort,
    PrecomputedUnavailable,
    StoreReadError,
)

_LOG = logging.getLogger(__name__)

TABLE = "stablecoin_market_caps"

# Whitelist: nur diese Views werden als Identifier in SQL eingesetzt
PRECOMPUTED_VIEWS = (
    "v_current_market_cap",
    "v_current_volume",
    "v_market_cap_perc_change",
    "v_volume_perc_change",
    "v_monthly_growth_rate",
    "v_market_cap_perc_change_yoy",
)
WEEKLY_VIEW = "v_market_cap_per_week_per_coin"


def _ts_utc_naive(dt: datetime) -> datetime:
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _ts_utc_aware(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _as_date(v: Any) -> date:
    return v.date() if isinstance(v, datetime) else v


class DuckDBObservationRepository(ObservationStorePort):
    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)

    def _connect(self) -> duckdb.DuckDBPyConnection:
        con = duckdb.connect(self.db_path)
        # Tagesgrenzen immer in UTC, auch wenn timestamp_utc als TIMESTAMPTZ angelegt ist
        try:
            con.execute("SET TimeZone='UTC'")
        except duckdb.Error as e:
            _LOG.debug("SET TimeZone failed: %s", e)
        return con

    def _ensure_table(self, con: duckdb.DuckDBPyConnection, table: str) -> None:
        info = con.execute(f"PRAGMA table_info('{table}')").fetchall()
        if not info:
            raise StoreReadError(f"{table} fehlt. Ingestion/Schema prüfen.")

    def _read(self, what: str, sql: str, params: List[Any]) -> List[tuple]:
        try:
            with self._connect() as con:
                self._ensure_table(con, TABLE)
                return con.execute(sql, params).fetchall()
        except StoreReadError:
            raise
        except (duckdb.Error, OSError) as e:
            raise StoreReadError(f"Failed to fetch {what}: {e}") from e

    # -------- Rohdaten --------
    def fetch_observations(
            self,
            start: Optional[datetime] = None,
            end: Optional[datetime] = None,
    ) -> List[Observation]:
        clauses: List[str] = []
        params: List[Any] = []
        if start is not None:
            clauses.append("timestamp_utc >= ?")
            params.append(_ts_utc_naive(start))
        if end is not None:
            clauses.append("timestamp_utc < ?")
            params.append(_ts_utc_naive(end))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._read(
            "observations",
            f"""
            SELECT id, coin_id, coin_name, coin_symbol, CAST(timestamp_utc AS TIMESTAMP),
                   market_cap_usd, price_usd, volume_24h_usd, data_granularity
            FROM {TABLE}
            {where}
            ORDER BY coin_id ASC, timestamp_utc ASC, id ASC
            """,
            params,
        )
        return [
            Observation(
                entity_id=r[1],
                entity_name=r[2],
                entity_symbol=r[3],
                observed_at=_ts_utc_aware(r[4]),
                market_cap=r[5],
                price=r[6],
                volume_24h=r[7],
                granularity=r[8] or "",
                row_id=r[0],
            )
            for r in rows
        ]

    def latest_observed_at(self) -> Optional[datetime]:
        rows = self._read("latest timestamp", f"SELECT CAST(max(timestamp_utc) AS TIMESTAMP) FROM {TABLE}", [])
        return _ts_utc_aware(rows[0][0]) if rows else None

    def last_updated(self) -> Optional[datetime]:
        rows = self._read("last updated date", f"SELECT CAST(max(updated_at) AS TIMESTAMP) FROM {TABLE}", [])
        return _ts_utc_aware(rows[0][0]) if rows else None

    # -------- Precomputed --------
    def fetch_precomputed(self, view: str) -> Optional[float]:
        if view not in PRECOMPUTED_VIEWS:
            raise ValueError(f"Unknown precomputed view: {view}")
        try:
            with self._connect() as con:
                row = con.execute(f"SELECT metric_value FROM {view}").fetchone()
        except duckdb.CatalogException as e:
            raise PrecomputedUnavailable(f"{view}: {e}") from e
        if row is None or row[0] is None:
            return None
        return float(row[0])

    def fetch_precomputed_weekly(self) -> List[WeeklyEntityTotal]:
        try:
            with self._connect() as con:
                rows = con.execute(
                    f"""
                    SELECT coin_id, coin_name, week_start, market_cap
                    FROM {WEEKLY_VIEW}
                    ORDER BY week_start ASC, coin_id ASC
                    """
                ).fetchall()
        except duckdb.CatalogException as e:
            raise PrecomputedUnavailable(f"{WEEKLY_VIEW}: {e}") from e
        return [
            WeeklyEntityTotal(
                entity_id=r[0],
                entity_name=r[1],
                week=_as_date(r[2]),
                market_cap=float(r[3] or 0.0),
            )
            for r in rows
        ]
