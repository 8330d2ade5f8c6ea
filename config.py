import os
import logging
from dataclasses import dataclass

import yaml

APP_NAME = "WorkoutTrackerDB"
APP_VERSION = "1.0.0"
DEFAULT_DB_PATH = "workout_tracker.db"
DEFAULT_CONFIG_PATH = "workout_log.yaml"

FORMULAS = ("epley", "brzycki", "lombardi")


class YamlConfig:
    """Load and save configuration to a YAML file."""

    def __init__(self, path: str = DEFAULT_CONFIG_PATH) -> None:
        self.path = path

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} must contain a mapping")
        return data

    def save(self, data: dict) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(dict(data), f)


@dataclass
class AppConfig:
    db_path: str = DEFAULT_DB_PATH
    log_level: str = "WARNING"
    one_rm_formula: str = "epley"
    history_limit: int = 50
    seed_defaults: bool = True

    @classmethod
    def load(cls, path: str = DEFAULT_CONFIG_PATH) -> "AppConfig":
        """Build the config from ``path`` with environment overrides applied."""
        data = YamlConfig(path).load()
        cfg = cls(
            db_path=str(data.get("db_path", DEFAULT_DB_PATH)),
            log_level=str(data.get("log_level", "WARNING")).upper(),
            one_rm_formula=str(data.get("one_rm_formula", "epley")).lower(),
            history_limit=int(data.get("history_limit", 50)),
            seed_defaults=bool(data.get("seed_defaults", True)),
        )
        if os.environ.get("WORKOUT_LOG_DB"):
            cfg.db_path = os.environ["WORKOUT_LOG_DB"]
        if os.environ.get("WORKOUT_LOG_LEVEL"):
            cfg.log_level = os.environ["WORKOUT_LOG_LEVEL"].upper()
        if cfg.one_rm_formula not in FORMULAS:
            raise ValueError(f"unknown 1RM formula: {cfg.one_rm_formula}")
        if cfg.history_limit <= 0:
            raise ValueError("history_limit must be positive")
        return cfg

    def save(self, path: str = DEFAULT_CONFIG_PATH) -> None:
        YamlConfig(path).save(
            {
                "db_path": self.db_path,
                "log_level": self.log_level,
                "one_rm_formula": self.one_rm_formula,
                "history_limit": self.history_limit,
                "seed_defaults": self.seed_defaults,
            }
        )


def configure_logging(level: str = "WARNING") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
