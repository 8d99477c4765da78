"""
Configuration and environment loading.

- Loads settings.yml (YAML) from the repo root if present; falls back to environment variables (.env is read first).
- Exposes SETTINGS with the knobs used across the project (database, AI move budget, statistics workers, logging).
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Optional

import yaml
from dotenv import load_dotenv

load_dotenv()

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _repo_root() -> str:
    # this file: chesscore/config.py -> repo root is one level up
    return os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))


def _load_yaml(path: str) -> dict:
    if not os.path.isfile(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return data if isinstance(data, dict) else {}


_cfg = _load_yaml(os.environ.get("CHESSCORE_SETTINGS_FILE", os.path.join(_repo_root(), "settings.yml")))


def _get(name: str, default: Any, cast: Optional[Callable[[Any], Any]] = None) -> Any:
    """YAML takes precedence over the environment."""
    if name in _cfg:
        val = _cfg[name]
        return cast(val) if cast else val
    env = os.environ.get(name)
    if env is not None:
        return cast(env) if cast else env
    return default


@dataclass(frozen=True)
class Settings:
    # Persistence
    database_url: str
    database_echo: bool

    # AI move generation
    ai_time_budget_s: float
    ai_max_attempts: int
    ai_backoff_base_s: float
    ai_backoff_cap_s: float
    ai_history_window: int
    ai_retry_pause_s: float
    ai_probe_timeout_s: float

    # Background work
    stats_workers: int

    log_level: str


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


SETTINGS = Settings(
    database_url=_get("CHESSCORE_DATABASE_URL", "sqlite:///chesscore.db"),
    database_echo=_get("CHESSCORE_DATABASE_ECHO", False, cast=_as_bool),
    ai_time_budget_s=_get("CHESSCORE_AI_TIME_BUDGET_S", 10.0, cast=float),
    ai_max_attempts=_get("CHESSCORE_AI_MAX_ATTEMPTS", 3, cast=int),
    ai_backoff_base_s=_get("CHESSCORE_AI_BACKOFF_BASE_S", 1.0, cast=float),
    ai_backoff_cap_s=_get("CHESSCORE_AI_BACKOFF_CAP_S", 10.0, cast=float),
    ai_history_window=_get("CHESSCORE_AI_HISTORY_WINDOW", 10, cast=int),
    ai_retry_pause_s=_get("CHESSCORE_AI_RETRY_PAUSE_S", 0.1, cast=float),
    ai_probe_timeout_s=_get("CHESSCORE_AI_PROBE_TIMEOUT_S", 5.0, cast=float),
    stats_workers=_get("CHESSCORE_STATS_WORKERS", 2, cast=int),
    log_level=_get("CHESSCORE_LOG_LEVEL", "INFO"),
)


def configure_logging(level: Optional[str] = None) -> None:
    """Root logger setup for processes embedding the core (servers, scripts)."""
    logging.basicConfig(level=(level or SETTINGS.log_level).upper(), format=LOG_FORMAT)
