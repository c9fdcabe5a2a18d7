# Overview: Closed error taxonomy shared by the ledger, checkout and sync services.

from __future__ import annotations


class PosError(Exception):
    """Base class for every error the core raises on purpose."""

    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "details": self.details}


class ValidationError(PosError, ValueError):
    """400-level input problem (bad quantity or price). Never retried."""

    status_code = 400


class InsufficientStock(PosError):
    """
    Not enough open batch quantity to cover a request.

    `partial` holds whatever the FIFO walk computed before running out
    (a ConsumeResult or ConsumeManyResult). It is informational only.
    """

    status_code = 409

    def __init__(self, message: str, details: dict | None = None, partial=None):
        super().__init__(message, details)
        self.partial = partial


class ConnectivityError(PosError):
    """The remote store could not be reached (or timed out)."""

    status_code = 503


class RemoteWriteError(PosError):
    """The remote store was reached but rejected or failed a write."""

    status_code = 502


class SyncError(PosError):
    """Per-entry synchronization failure, recorded on the queued sale."""

    status_code = 500

    def __init__(self, queued_id: str, message: str, details: dict | None = None):
        super().__init__(message, details)
        self.queued_id = queued_id

    def to_dict(self) -> dict:
        return {"id": self.queued_id, "error": str(self), "details": self.details}
