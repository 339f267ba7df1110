# src/com/lingenhag/scm/main.py
from __future__ import annotations

import argparse
import logging
import sys

from com.lingenhag.scm.platform.config.settings import Settings
from com.lingenhag.scm.platform.monitoring.metrics import Metrics
from com.lingenhag.scm.features.metrics.presentation.cli_commands import add_metrics_subparser
from com.lingenhag.scm.features.metrics.infrastructure.repositories.duckdb_observation_repository import (
    DuckDBObservationRepository,
)

logging.basicConfig(level=logging.INFO)


def build_parser() -> argparse.ArgumentParser:
    """
    Root-CLI für das Stablecoin-Dashboard.
    Beispiel:
      scm metrics show --format json
      scm metrics weekly --policy sum --lookback-months 6
      scm metrics install-views --db data/scm.duckdb
    """
    parser = argparse.ArgumentParser(prog="scm", description="com.lingenhag.scm – Stablecoin metrics CLI")
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Pfad zur Konfigurationsdatei (Default: config.yaml)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        help="Prometheus Metrics Port (Default: monitoring.port aus config.yaml, 0 = aus)",
    )

    subparsers = parser.add_subparsers(dest="feature", required=True)

    # ---- Metrics-Slice ----
    add_metrics_subparser(subparsers)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = Settings.load(args.config)
    port = args.metrics_port if args.metrics_port is not None else int(config.get("monitoring", "port", 8000))
    metrics = Metrics(port=port)
    metrics.start_server()

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(2)

    # DB-Pfad auflösen und Repository injizieren
    db_path = config.db_path(getattr(args, "db", None))
    setattr(args, "db", db_path)
    repo = DuckDBObservationRepository(db_path=db_path)
    sys.exit(args.func(args, config=config, metrics=metrics, repo=repo))


if __name__ == "__main__":
    main()
