# tests/features/metrics/test_dashboard_metrics.py
from datetime import date, datetime, timezone
from unittest.mock import Mock

import pytest

from com.lingenhag.scm.features.metrics.application.ports import (
    ObservationStorePort,
    PrecomputedUnavailable,
    StoreReadError,
)
from com.lingenhag.scm.features.metrics.application.usecases.dashboard_metrics import (
    MARKET_CAP_CHANGE_MOM,
    MARKET_CAP_CHANGE_YOY,
    MONTHLY_GROWTH_RATE,
    TOTAL_MARKET_CAP,
    TOTAL_VOLUME_24H,
    VOLUME_CHANGE_MOM,
    DashboardMetrics,
)
from com.lingenhag.scm.platform.persistence.migrator import apply_migrations

EXPECTED = {
    TOTAL_MARKET_CAP: 130e9,
    TOTAL_VOLUME_24H: 60e9,
    MARKET_CAP_CHANGE_MOM: (130 - 120) / 120 * 100,
    VOLUME_CHANGE_MOM: 20.0,
    MARKET_CAP_CHANGE_YOY: 30.0,
    MONTHLY_GROWTH_RATE: (1134 - 121) / 121 * 100,
}


def test_manual_path_without_views(seeded_repo, metrics):
    svc = DashboardMetrics(seeded_repo, metrics=metrics)

    assert svc.total_market_cap() == pytest.approx(EXPECTED[TOTAL_MARKET_CAP])
    assert svc.total_volume_24h() == pytest.approx(EXPECTED[TOTAL_VOLUME_24H])
    assert svc.total_market_cap_change_mom() == pytest.approx(EXPECTED[MARKET_CAP_CHANGE_MOM])
    assert svc.total_volume_change_mom() == pytest.approx(EXPECTED[VOLUME_CHANGE_MOM])
    assert svc.market_cap_change_yoy() == pytest.approx(EXPECTED[MARKET_CAP_CHANGE_YOY])
    assert svc.monthly_growth_rate() == pytest.approx(EXPECTED[MONTHLY_GROWTH_RATE])
    assert metrics.registry.get_sample_value(
        "metric_fallback_total", {"metric": TOTAL_MARKET_CAP, "reason": "unavailable"}
    ) == 1.0


def test_precomputed_path_matches_manual(seeded_repo, metrics):
    apply_migrations(seeded_repo.db_path)
    svc = DashboardMetrics(seeded_repo, metrics=metrics)

    snap = svc.load()

    assert not snap.failed
    for name, expected in EXPECTED.items():
        assert snap.value(name) == pytest.approx(expected), name
    assert metrics.registry.get_sample_value(
        "metric_fallback_total", {"metric": TOTAL_MARKET_CAP, "reason": "unavailable"}
    ) is None


def test_load_returns_all_metrics_in_stable_order(seeded_repo):
    snap = DashboardMetrics(seeded_repo, max_workers=2).load()

    assert list(snap.results) == [
        TOTAL_MARKET_CAP,
        TOTAL_VOLUME_24H,
        MONTHLY_GROWTH_RATE,
        MARKET_CAP_CHANGE_MOM,
        VOLUME_CHANGE_MOM,
        MARKET_CAP_CHANGE_YOY,
    ]
    assert snap.last_updated == datetime(2024, 3, 31, 12, tzinfo=timezone.utc)


def test_explicit_reference_day_falls_back_to_latest_snapshot(repo, insert_rows):
    insert_rows([("tether", datetime(2025, 5, 1, 12, 0), 500.0, 7.0)])
    svc = DashboardMetrics(repo)

    assert svc.total_market_cap(reference_day=date(2025, 6, 3)) == 500
    assert svc.total_volume_24h(reference_day=date(2025, 6, 3)) == 7


def test_latest_snapshot_sums_all_rows_at_that_timestamp(repo, insert_rows):
    insert_rows([
        ("tether", datetime(2025, 5, 1, 12, 0), 300.0, 0.0),
        ("usd-coin", datetime(2025, 5, 1, 12, 0), 200.0, 0.0),
        ("dai", datetime(2025, 4, 1, 12, 0), 1000.0, 0.0),
    ])

    assert DashboardMetrics(repo).total_market_cap(reference_day=date(2025, 6, 3)) == 500


def test_empty_store_yields_zero_metrics(repo):
    svc = DashboardMetrics(repo)

    snap = svc.load()

    assert not snap.failed
    assert all(r.value == 0.0 for r in snap.results.values())
    assert svc.weekly_series() == []


def _mock_store() -> Mock:
    store = Mock(spec=ObservationStorePort)
    store.fetch_precomputed.side_effect = PrecomputedUnavailable("no views")
    store.latest_observed_at.return_value = datetime(2025, 6, 3, 8, tzinfo=timezone.utc)
    store.last_updated.return_value = datetime(2025, 6, 3, 8, tzinfo=timezone.utc)
    return store


def test_store_failure_is_isolated_per_metric(metrics):
    store = _mock_store()

    def fetch(start=None, end=None):
        if start is None:  # monthly growth reads the full table
            raise StoreReadError("Failed to fetch observations: connection reset")
        return []

    store.fetch_observations.side_effect = fetch
    svc = DashboardMetrics(store, metrics=metrics)

    snap = svc.load()

    assert [r.name for r in snap.failed] == [MONTHLY_GROWTH_RATE]
    assert "connection reset" in snap.results[MONTHLY_GROWTH_RATE].error
    assert snap.value(TOTAL_MARKET_CAP) == 0.0
    assert snap.results[TOTAL_VOLUME_24H].ok
    assert metrics.registry.get_sample_value("metric_failures_total", {"metric": MONTHLY_GROWTH_RATE}) == 1.0


def test_last_updated_failure_does_not_fail_metrics():
    store = _mock_store()
    store.fetch_observations.return_value = []
    store.last_updated.side_effect = StoreReadError("boom")

    snap = DashboardMetrics(store).load()

    assert snap.last_updated is None
    assert not snap.failed


def test_weekly_series_latest_policy_manual_and_precomputed_agree(seeded_repo):
    svc = DashboardMetrics(seeded_repo)
    manual = svc.weekly_series()

    apply_migrations(seeded_repo.db_path)
    precomputed = svc.weekly_series()

    assert manual == precomputed
    assert [p.week for p in manual] == ["2023-04-03", "2024-02-26", "2024-03-25"]
    assert manual[0].series["usdt"] == pytest.approx(80)
    assert manual[1].total_market_cap == pytest.approx(31)
    assert manual[2].total_market_cap == 0  # only the untracked coin


def test_weekly_series_sum_policy(seeded_repo):
    svc = DashboardMetrics(seeded_repo, weekly_policy="sum")

    points = svc.weekly_series(lookback_months=1)

    # anchor 2024-03-31 12:00 → window starts 2024-02-29 12:00
    assert [p.week for p in points] == ["2024-02-26", "2024-03-25"]
    assert points[0].total_market_cap == pytest.approx(1)
    assert points[1].total_market_cap == pytest.approx(100 + 999 + 30 + 5)
    assert points[1].series["usdt"] == pytest.approx(1099)


def test_unknown_weekly_policy_is_rejected(seeded_repo):
    with pytest.raises(ValueError):
        DashboardMetrics(seeded_repo, weekly_policy="median")
    with pytest.raises(ValueError):
        DashboardMetrics(seeded_repo).weekly_series(policy="median")


def test_load_resolves_anchor_once():
    store = _mock_store()
    store.fetch_observations.return_value = []

    DashboardMetrics(store).load()

    store.latest_observed_at.assert_called_once_with()


def test_explicit_anchor_pins_the_reference_day(seeded_repo):
    svc = DashboardMetrics(seeded_repo)
    anchor = datetime(2024, 2, 29, 8, tzinfo=timezone.utc)

    # manueller Pfad (Views nicht installiert): 2024-02-29 statt Store-Maximum
    assert svc.total_market_cap(anchor=anchor) == pytest.approx(120e9)
    assert svc.total_volume_24h(anchor=anchor) == pytest.approx(50e9)
