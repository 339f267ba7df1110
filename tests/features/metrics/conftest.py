# tests/features/metrics/conftest.py
import os
import tempfile
from datetime import datetime

import duckdb
import pytest
from prometheus_client import CollectorRegistry

from com.lingenhag.scm.domain.models import Observation
from com.lingenhag.scm.features.metrics.infrastructure.repositories.duckdb_observation_repository import (
    DuckDBObservationRepository,
)
from com.lingenhag.scm.platform.monitoring.metrics import Metrics

COINS = {
    "tether": ("Tether", "USDT"),
    "usd-coin": ("USD Coin", "USDC"),
    "dai": ("Dai", "DAI"),
    "mystery-coin": ("Mystery", "MYS"),
}


@pytest.fixture
def obs():
    """Factory für Observation-Objekte mit sinnvollen Defaults."""
    def _make(entity_id, observed_at, market_cap=0.0, volume_24h=0.0, *, symbol=None, row_id=None):
        name, default_symbol = COINS.get(entity_id, (entity_id.title(), entity_id.upper()))
        return Observation(
            entity_id=entity_id,
            entity_name=name,
            entity_symbol=symbol or default_symbol,
            observed_at=observed_at,
            market_cap=market_cap,
            price=1.0,
            volume_24h=volume_24h,
            granularity="hourly",
            row_id=row_id,
        )
    return _make


@pytest.fixture
def metrics():
    return Metrics(port=0, registry=CollectorRegistry())


@pytest.fixture
def db_path():
    tmpdir = tempfile.TemporaryDirectory()
    path = os.path.join(tmpdir.name, "test.duckdb")
    try:
        with duckdb.connect(path) as con:
            con.execute("CREATE SEQUENCE stablecoin_market_caps_seq START 1;")
            con.execute("""
                        CREATE TABLE stablecoin_market_caps (
                            id INTEGER PRIMARY KEY DEFAULT nextval('stablecoin_market_caps_seq'),
                            coin_id TEXT NOT NULL,
                            coin_name TEXT NOT NULL,
                            coin_symbol TEXT NOT NULL,
                            timestamp_utc TIMESTAMP NOT NULL,
                            market_cap_usd DOUBLE,
                            price_usd DOUBLE,
                            volume_24h_usd DOUBLE,
                            data_granularity TEXT,
                            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                        );
                        """)
        yield path
    finally:
        tmpdir.cleanup()


@pytest.fixture
def insert_rows(db_path):
    """rows: (coin_id, naive UTC timestamp, market_cap, volume)"""
    def _insert(rows):
        with duckdb.connect(db_path) as con:
            for coin_id, ts, mcap, vol in rows:
                name, symbol = COINS.get(coin_id, (coin_id.title(), coin_id.upper()))
                con.execute(
                    """
                    INSERT INTO stablecoin_market_caps
                    (coin_id, coin_name, coin_symbol, timestamp_utc, market_cap_usd, price_usd,
                     volume_24h_usd, data_granularity, updated_at)
                    VALUES (?, ?, ?, ?, ?, 1.0, ?, 'hourly', ?)
                    """,
                    [coin_id, name, symbol, ts, mcap, vol, ts],
                )
    return _insert


@pytest.fixture
def repo(db_path):
    return DuckDBObservationRepository(db_path)


@pytest.fixture
def seeded_repo(repo, insert_rows):
    """
    Anker-Tag 2024-03-31 (Sonntag).
      - Vormonat (geklemmt): 2024-02-29
      - 51 Wochen zurück:     2023-04-09
    """
    B = 1e9
    insert_rows([
        # today: first sample per coin counts
        ("tether", datetime(2024, 3, 31, 0, 0), 100 * B, 50 * B),
        ("tether", datetime(2024, 3, 31, 12, 0), 999 * B, 999 * B),
        ("usd-coin", datetime(2024, 3, 31, 6, 0), 30 * B, 10 * B),
        # same day last month
        ("tether", datetime(2024, 2, 29, 8, 0), 90 * B, 40 * B),
        ("tether", datetime(2024, 2, 29, 20, 0), 1 * B, 1 * B),
        ("usd-coin", datetime(2024, 2, 29, 9, 0), 30 * B, 10 * B),
        # 51 weeks ago
        ("tether", datetime(2023, 4, 9, 0, 0), 80 * B, 5 * B),
        ("usd-coin", datetime(2023, 4, 9, 0, 0), 20 * B, 5 * B),
        # untracked coin
        ("mystery-coin", datetime(2024, 3, 25, 0, 0), 5 * B, 1 * B),
    ])
    return repo
