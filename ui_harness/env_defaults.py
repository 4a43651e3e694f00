"""Read harness defaults from a workspace-level .env.defaults file.

Values in the process environment always win; this file only supplies
fallbacks so a checkout can pin its own target URLs and cache paths without
exporting variables in every shell. HARNESS_ENV_DEFAULTS points at another
file.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional, Tuple

REPO_ROOT = Path(__file__).resolve().parents[1]

_QUOTES = ('"', "'")


def parse_line(raw: str) -> Optional[Tuple[str, str]]:
    """Parse ``KEY=value`` (optionally ``export KEY="value"``); None for blanks and comments."""
    line = raw.strip()
    if line.startswith("export "):
        line = line[len("export "):].lstrip()
    if not line or line.startswith("#") or "=" not in line:
        return None

    key, _, value = line.partition("=")
    value = value.strip()
    if value[:1] in _QUOTES and len(value) >= 2 and value.endswith(value[0]):
        value = value[1:-1]
    elif " #" in value:
        value = value.split(" #", 1)[0].rstrip()
    return key.strip(), value


def defaults_path() -> Path:
    return Path(os.environ.get("HARNESS_ENV_DEFAULTS", REPO_ROOT / ".env.defaults"))


@lru_cache(maxsize=1)
def _load_env_defaults() -> Dict[str, str]:
    path = defaults_path()
    if not path.is_file():
        return {}
    pairs = (parse_line(raw) for raw in path.read_text(encoding="utf-8").splitlines())
    return dict(pair for pair in pairs if pair is not None)


def get_env_default(key: str) -> Optional[str]:
    return _load_env_defaults().get(key)


def env(key: str, fallback: str) -> str:
    """Environment value, then .env.defaults value, then ``fallback``."""
    return os.environ.get(key) or get_env_default(key) or fallback


def clear_cache() -> None:
    _load_env_defaults.cache_clear()
