# src/com/lingenhag/scm/platform/config/settings.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict

import yaml
from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    config: Dict[str, Any]

    @classmethod
    def load(cls, config_path: str = "config.yaml") -> "Settings":
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            logging.warning(f"Konfigurationsdatei {config_path} nicht gefunden. Verwende Defaults.")
            config = {}
        return cls(config=config)

    def get(self, section: str, key: str, default: Any = None) -> Any:
        return (self.config.get(section) or {}).get(key, default)

    def db_path(self, cli_value: str | None = None) -> str:
        """
        Einheitliche DB-Auflösung:
        - CLI-Argument --db hat Vorrang
        - dann Umgebungsvariable SCM_DB_PATH
        - sonst config.yaml → database.default_path
        - Fallback: data/scm.duckdb
        """
        if cli_value and str(cli_value).strip():
            return str(cli_value)
        env = os.getenv("SCM_DB_PATH")
        if env:
            return env
        return str(self.get("database", "default_path", "data/scm.duckdb"))
