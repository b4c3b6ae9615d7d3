from __future__ import annotations

import os

from periodwise.rollover import MAX_ROLLOVER_DEPTH


def get_database_url() -> str:
    return os.getenv("DATABASE_URL", "sqlite:///./periodwise.db")


def get_frontend_origin() -> str:
    return os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"


def get_max_rollover_depth() -> int:
    raw = os.getenv("MAX_ROLLOVER_DEPTH")
    if raw is None:
        return MAX_ROLLOVER_DEPTH
    try:
        depth = int(raw)
    except ValueError:
        return MAX_ROLLOVER_DEPTH
    if depth < 0:
        return MAX_ROLLOVER_DEPTH
    return depth
