from __future__ import annotations

import os
from typing import Any


def parse_bool(value) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except (TypeError, ValueError):
        return default


def env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, str(default)))
    except (TypeError, ValueError):
        return default


def env_str(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def load_flask_config() -> dict[str, Any]:
    return {
        "RATELIMIT_STORAGE_URI": os.environ.get("FOLIO_RATE_LIMIT_STORAGE_URI", "memory://"),
        "MAX_CONTENT_LENGTH": env_int("FOLIO_MAX_REQUEST_BYTES", 64 * 1024),
    }
