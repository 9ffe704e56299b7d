# Overview: Domain error kinds raised while reconciling device operations.

from __future__ import annotations


class SyncError(Exception):
    """Base class for per-operation reconciliation failures."""

    kind = "sync_error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "kind": self.kind, "details": self.details}


class NotFoundError(SyncError):
    """Entity absent on read."""

    kind = "not_found"


class VersionConflictError(SyncError):
    """Lost optimistic-concurrency race: the conditional write touched no rows."""

    kind = "version_conflict"


class InsufficientStockError(SyncError):
    """Stock adjustment would drive on-hand stock below zero."""

    kind = "insufficient_stock"


class UnknownEntityTypeError(SyncError):
    """Operation names an entity type the engine cannot route."""

    kind = "unknown_entity_type"


class DecodeError(SyncError):
    """Payload does not match the expected shape for its entity type."""

    kind = "decode_error"


class ExhaustedError(SyncError):
    """Retry budget spent."""

    kind = "exhausted"

    def __init__(self, op_id: str, retry_count: int, cause: str | None = None):
        message = f"operation {op_id} exhausted after {retry_count} attempts"
        if cause:
            message = f"{message}; last error: {cause}"
        super().__init__(
            message,
            details={"op_id": op_id, "retry_count": retry_count, "cause": cause},
        )
        self.op_id = op_id
        self.retry_count = retry_count


# Rejected operations can never succeed by being replayed again.
TERMINAL_ERRORS = (UnknownEntityTypeError, DecodeError)
