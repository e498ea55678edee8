"""
Engine configuration: defaults, YAML loading, logging setup.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass
class EngineConfig:
    """Tunables for one engine deployment. Passed explicitly; never global."""
    db_path: str = "data/competition.db"
    log_level: str = "INFO"
    seed: int | None = None
    ranking_window_days: int = 90
    ranking_top_n: int = 6
    weeks_per_season: int = 4
    lineup_deadline_hours: int = 2
    max_category_assignments: int = 3
    default_round_interval_minutes: int = 10
    sweep_expired_injuries: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EngineConfig:
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in (data or {}).items():
            if key not in known:
                logger.warning("Ignoring unknown config key %r", key)
                continue
            values[key] = value
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def load_config(config_file: str | Path | None) -> EngineConfig:
    """Load configuration from a YAML file; fall back to defaults if missing or invalid."""
    if config_file is None:
        return EngineConfig()
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        logger.warning("Configuration file '%s' not found. Using default configuration.", config_file)
        return EngineConfig()
    except yaml.YAMLError as e:
        logger.warning("Error parsing configuration file: %s. Using default configuration.", e)
        return EngineConfig()
    if data is not None and not isinstance(data, dict):
        logger.warning("Configuration file '%s' is not a mapping. Using default configuration.", config_file)
        return EngineConfig()
    return EngineConfig.from_dict(data)


def configure_logging(level: str = "INFO") -> None:
    """Install a basic handler unless the host application already configured logging."""
    root = logging.getLogger()
    if root.handlers:
        return
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
