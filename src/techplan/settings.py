from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    db_path: Path
    workload_timeout_seconds: float = 8.0
    log_level: str = "INFO"


def default_db_path() -> Path:
    # Repo-local unless TECHPLAN_DB points elsewhere.
    env = os.environ.get("TECHPLAN_DB", "").strip()
    return Path(env) if env else Path("db") / "techplan.db"
