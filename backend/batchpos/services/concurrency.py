# Overview: Remote-store call boundary: optimistic-lock retry, error translation, connectivity probe.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import (
    DisconnectionError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConnectivityError, RemoteWriteError
from ..extensions import db

# Failures that mean "the remote store is not there", as opposed to "it said no".
CONNECTIVITY_ERRORS = (OperationalError, DisconnectionError, InterfaceError, PoolTimeoutError)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on optimistic-locking conflicts.

    StaleDataError means another writer bumped a version_id between our read
    and our write. The session is rolled back and func runs again from its
    reads, so it must be safe to repeat.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except StaleDataError as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def remote_call(func, *args, **kwargs):
    """
    Run one unit of remote work and translate SQLAlchemy failures.

    - transport failures and timeouts -> ConnectivityError
    - anything else the store raises (constraint, exhausted retries) -> RemoteWriteError

    The session is rolled back before re-raising so the caller can keep using it.
    Errors from our own taxonomy pass through untouched.
    """
    try:
        return func(*args, **kwargs)
    except CONNECTIVITY_ERRORS as exc:
        db.session.rollback()
        raise ConnectivityError("Remote store unreachable", details={"cause": str(exc.__class__.__name__)}) from exc
    except StaleDataError as exc:
        db.session.rollback()
        raise RemoteWriteError("Concurrent update conflict", details={"cause": "StaleDataError"}) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise RemoteWriteError("Remote store rejected the operation", details={"cause": str(exc.__class__.__name__)}) from exc


def probe_remote() -> bool:
    """Cheap round trip to the remote store; False on any connectivity failure."""
    if current_app.config.get("FORCE_OFFLINE"):
        return False
    try:
        db.session.execute(text("SELECT 1"))
        return True
    except CONNECTIVITY_ERRORS:
        db.session.rollback()
        current_app.logger.warning("Remote store probe failed; treating register as offline")
        return False


def engine_options(database_url: str, timeout_seconds: float) -> dict:
    """
    SQLAlchemy engine options that bound every remote call.

    A connect/pool/statement timeout surfaces as OperationalError or
    TimeoutError, which remote_call reports as ConnectivityError.
    """
    options: dict = {"pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        options["connect_args"] = {"timeout": timeout_seconds}
        return options

    options["pool_timeout"] = timeout_seconds
    if database_url.startswith("postgresql"):
        options["connect_args"] = {
            "connect_timeout": max(1, int(timeout_seconds)),
            "options": f"-c statement_timeout={int(timeout_seconds * 1000)}",
        }
    return options
