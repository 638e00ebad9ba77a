from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

DEFAULT_TEMPLATES_DIR = Path.home() / ".harmony_planner" / "templates"


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    log_level: str = "INFO"
    log_format: str = "text"
    templates_dir: Path = DEFAULT_TEMPLATES_DIR
    planner_workers: int = 1

    @property
    def json_logs(self) -> bool:
        return self.log_format == "json"


def load_settings() -> Settings:
    templates_dir = os.getenv("HARMONY_TEMPLATES_DIR")
    return Settings(
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_format=os.getenv("LOG_FORMAT", "text").lower(),
        templates_dir=Path(templates_dir).expanduser() if templates_dir else DEFAULT_TEMPLATES_DIR,
        planner_workers=max(1, _int_from_env("HARMONY_PLANNER_WORKERS", 1)),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
