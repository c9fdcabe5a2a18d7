# backend/batchpos/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Remote store of truth (products, batches, committed sales)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///batchpos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Client-local durable queue for sales that could not be committed remotely
    QUEUE_DATABASE_URL = os.environ.get(
        "QUEUE_DATABASE_URL",
        "sqlite:///batchpos_queue.sqlite3",
    )

    # Every remote call is bounded; a timeout counts as lost connectivity
    REMOTE_TIMEOUT_SECONDS = float(os.environ.get("REMOTE_TIMEOUT_SECONDS", "10"))

    # Entries stuck in "syncing" longer than this go back to "queued"
    SYNC_STALE_THRESHOLD_SECONDS = int(os.environ.get("SYNC_STALE_THRESHOLD_SECONDS", "120"))

    # Treat the remote store as unreachable (register drills, tests)
    FORCE_OFFLINE = _env_bool("FORCE_OFFLINE")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
