"""
Runtime settings read from the environment.

Every value has a default so the CLI works without any configuration; a .env
file in the working directory is picked up by ``load_env`` before this runs.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_HOME_FEDERATION = "AUS"
DEFAULT_SEARCH_URL = "https://ratings.fide.com/incl_search_l.php"


@dataclass(frozen=True)
class Settings:
    home_federation: str = DEFAULT_HOME_FEDERATION
    concurrency: int = 4
    db_path: Path = Path("data/fidematch.db")
    search_url: str = DEFAULT_SEARCH_URL
    timeout: float = 15.0
    log_level: str = "INFO"
    log_dir: Path = Path("logs")


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _level(env: Mapping[str, str], name: str, default: str) -> str:
    raw = (env.get(name) or "").strip()
    if raw == "":
        return default
    level = raw.upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"{name} must be one of {', '.join(LOG_LEVELS)}, got {raw!r}")
    return level


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ
    return Settings(
        home_federation=(env.get("FIDEMATCH_HOME_FEDERATION") or DEFAULT_HOME_FEDERATION).strip().upper(),
        concurrency=_int(env, "FIDEMATCH_CONCURRENCY", 4),
        db_path=Path(env.get("FIDEMATCH_DB") or "data/fidematch.db"),
        search_url=env.get("FIDEMATCH_SEARCH_URL") or DEFAULT_SEARCH_URL,
        timeout=_float(env, "FIDEMATCH_TIMEOUT", 15.0),
        log_level=_level(env, "FIDEMATCH_LOG_LEVEL", "INFO"),
        log_dir=Path(env.get("FIDEMATCH_LOG_DIR") or "logs"),
    )
