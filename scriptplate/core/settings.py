from __future__ import annotations

import os
import shutil
import sys
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    backend: str
    uv_path: str
    python_path: str
    execute_timeout: float | None
    work_root: Path | None
    log_level: str
    api_allow_execute: bool


def _timeout_from_env() -> float | None:
    value = float(os.getenv("SCRIPTPLATE_TIMEOUT", "300"))
    return value if value > 0 else None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    work_root = os.getenv("SCRIPTPLATE_WORK_ROOT")
    root = None
    if work_root:
        root = Path(work_root).resolve()
        root.mkdir(parents=True, exist_ok=True)
    return Settings(
        backend=os.getenv("SCRIPTPLATE_BACKEND", "uv").lower(),
        uv_path=os.getenv("SCRIPTPLATE_UV") or shutil.which("uv") or "uv",
        python_path=os.getenv("SCRIPTPLATE_PYTHON") or sys.executable,
        execute_timeout=_timeout_from_env(),
        work_root=root,
        log_level=os.getenv("SCRIPTPLATE_LOG_LEVEL", "WARNING").upper(),
        api_allow_execute=os.getenv("SCRIPTPLATE_API_ALLOW_EXECUTE", "").lower() in _TRUTHY,
    )
