"""Grading configuration: defaults, YAML file, and per-database overrides."""
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path

import yaml

from exam_prep.db import get_connection
from exam_prep.errors import InvalidInputError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".exam_prep" / "config.yaml"


@dataclass(frozen=True)
class GradingConfig:
    pass_threshold: float = 70
    completion_threshold: float = 70
    correct_marks: int = 4
    incorrect_marks: int = -1
    points_per_level: int = 25
    max_retries: int = 5
    default_time_allocation: int = 60


def get_setting(db_path: str, key: str, default: str = None) -> str | None:
    conn = get_connection(db_path)
    row = conn.execute("SELECT value FROM user_settings WHERE key = ?", (key,)).fetchone()
    conn.close()
    return row["value"] if row else default


def set_setting(db_path: str, key: str, value: str) -> None:
    conn = get_connection(db_path)
    conn.execute(
        "INSERT INTO user_settings (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value=?",
        (key, value, value),
    )
    conn.commit()
    conn.close()


def _apply_overrides(config: GradingConfig, values: dict, source: str) -> GradingConfig:
    known = {f.name: f.type for f in fields(GradingConfig)}
    updates = {}
    for key, raw in values.items():
        if key not in known:
            logger.warning("Ignoring unknown config key %r from %s", key, source)
            continue
        caster = int if known[key] in (int, "int") else float
        try:
            updates[key] = caster(raw)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Config value for {key!r} must be numeric, got {raw!r}") from e
    return replace(config, **updates)


def load_config(db_path: str | None = None, config_path: str | None = None) -> GradingConfig:
    """Build the grading config from defaults, a YAML file, then database settings."""
    config = GradingConfig()

    path = config_path or os.environ.get("EXAM_PREP_CONFIG")
    path = Path(path) if path else DEFAULT_CONFIG_PATH
    if path.exists():
        data = yaml.safe_load(path.read_text()) or {}
        if not isinstance(data, dict):
            raise InvalidInputError(f"Config file {path} must contain a mapping")
        config = _apply_overrides(config, data, str(path))
    elif config_path:
        raise InvalidInputError(f"Config file not found: {config_path}")

    if db_path:
        conn = get_connection(db_path)
        names = [f.name for f in fields(GradingConfig)]
        rows = conn.execute(
            f"SELECT key, value FROM user_settings WHERE key IN ({','.join('?' * len(names))})",
            names,
        ).fetchall()
        conn.close()
        config = _apply_overrides(config, {r["key"]: r["value"] for r in rows}, "user_settings")
    return config
