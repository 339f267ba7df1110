# src/com/lingenhag/scm/features/metrics/presentation/cli_commands.py
from __future__ import annotations

import argparse
import csv
import json
from typing import List

from com.lingenhag.scm.domain.models import WeekPoint
from com.lingenhag.scm.features.metrics.application.usecases.dashboard_metrics import (
    MARKET_CAP_CHANGE_MOM,
    MARKET_CAP_CHANGE_YOY,
    MONTHLY_GROWTH_RATE,
    TOTAL_MARKET_CAP,
    TOTAL_VOLUME_24H,
    VOLUME_CHANGE_MOM,
    WEEKLY_POLICIES,
    DashboardMetrics,
)
from com.lingenhag.scm.platform.config.settings import Settings
from com.lingenhag.scm.platform.monitoring.metrics import Metrics
from com.lingenhag.scm.platform.persistence.migrator import apply_migrations

_LABELS = {
    TOTAL_MARKET_CAP: ("total_market_cap", "usd"),
    TOTAL_VOLUME_24H: ("total_volume_24h", "usd"),
    MONTHLY_GROWTH_RATE: ("growth_rate_monthly", "pct"),
    MARKET_CAP_CHANGE_MOM: ("market_cap_change", "pct"),
    VOLUME_CHANGE_MOM: ("volume_change", "pct"),
    MARKET_CAP_CHANGE_YOY: ("market_cap_change_yoy", "pct"),
}


def add_metrics_subparser(root_subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    metrics_parser = root_subparsers.add_parser("metrics", help="Stablecoin dashboard metrics")
    metrics_sub = metrics_parser.add_subparsers(dest="metrics_cmd", required=True)

    db_help = "Path to DuckDB (Default: SCM_DB_PATH, config.yaml database.default_path oder 'data/scm.duckdb')"

    # Dashboard KPIs
    p_show = metrics_sub.add_parser("show", help="Show all dashboard KPIs (market cap, volume, growth, changes)")
    p_show.add_argument("--format", choices=["table", "json"], default="table", help="Output format")
    p_show.add_argument("--db", help=db_help)
    p_show.set_defaults(func=_cmd_show)

    # Weekly chart series
    p_weekly = metrics_sub.add_parser("weekly", help="Weekly market cap series per stablecoin (billions)")
    p_weekly.add_argument("--policy", choices=list(WEEKLY_POLICIES), help="latest-in-week (default) or sum-in-week")
    p_weekly.add_argument("--lookback-months", type=int, help="Lookback window for policy 'sum' (default: 12)")
    p_weekly.add_argument("--format", choices=["table", "json"], default="table", help="Output format")
    p_weekly.add_argument("--export", metavar="PATH", help="Optional CSV export of the series")
    p_weekly.add_argument("--db", help=db_help)
    p_weekly.set_defaults(func=_cmd_weekly)

    # Precomputed views
    p_install = metrics_sub.add_parser("install-views", help="Create/update the precomputed aggregation views")
    p_install.add_argument("--db", help=db_help)
    p_install.set_defaults(func=_cmd_install_views)


def _build_service(config: Settings, metrics: Metrics, repo) -> DashboardMetrics:
    return DashboardMetrics(
        store=repo,
        metrics=metrics,
        max_workers=int(config.get("metrics", "max_workers", 6)),
        weekly_lookback_months=int(config.get("metrics", "weekly_lookback_months", 12)),
        weekly_policy=str(config.get("metrics", "weekly_policy", "latest")),
    )


def _cmd_show(args: argparse.Namespace, config: Settings, metrics: Metrics, repo) -> int:
    svc = _build_service(config, metrics, repo)
    snap = svc.load()
    last_updated = (
        f"{snap.last_updated:%b} {snap.last_updated.day}, {snap.last_updated.year}" if snap.last_updated else None
    )

    if args.format == "json":
        out = {
            "data": {_LABELS[name][0]: res.value for name, res in snap.results.items()},
            "errors": {_LABELS[r.name][0]: r.error for r in snap.failed},
            "last_updated": last_updated,
        }
        print(json.dumps(out, indent=2))
    else:
        print("[dashboard-metrics]")
        for name, res in snap.results.items():
            label, unit = _LABELS[name]
            if not res.ok:
                print(f"  {label:<22}: ERROR {res.error} (retry: scm metrics show)")
            elif unit == "usd":
                print(f"  {label:<22}: {res.value:,.2f}")
            else:
                print(f"  {label:<22}: {res.value:+.2f}%")
        print(f"  {'last_updated':<22}: {last_updated or '-'}")

    return 1 if snap.failed else 0


def _cmd_weekly(args: argparse.Namespace, config: Settings, metrics: Metrics, repo) -> int:
    svc = _build_service(config, metrics, repo)
    points: List[WeekPoint] = svc.weekly_series(policy=args.policy, lookback_months=args.lookback_months)
    rows = [p.as_dict() for p in points]

    if args.format == "json":
        print(json.dumps({"data": rows, "message": "No chart data available" if not rows else "ok"}, indent=2))
    else:
        print(f"[weekly-series] points={len(rows)}")
        for p in points:
            slots = " ".join(f"{k}={v:,.2f}" for k, v in p.series.items())
            print(f"  {p.week} ({p.formatted_date:>6}) total={p.total_market_cap:,.2f}B {slots}")

    if args.export and rows:
        with open(args.export, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=list(rows[0].keys()))
            writer.writeheader()
            writer.writerows(rows)
        print(f"[weekly-series] exported CSV → {args.export}")
    return 0


def _cmd_install_views(args: argparse.Namespace, config: Settings, metrics: Metrics, repo) -> int:
    applied = apply_migrations(args.db)
    if not applied:
        print("[aggregations] Keine Views angewendet (vermutlich bereits aktuell).")
    else:
        print(f"[aggregations] applied={applied}")
    return 0
