# Overview: Durable queue of pending device operations; ordering, retry bookkeeping and dead letters.

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from ..errors import NotFoundError
from ..models import SyncOperation, DeadLetterOperation
from possync.time_utils import MonotonicClock, utcnow
from .concurrency import commit_with_retry

logger = logging.getLogger(__name__)


@dataclass
class OperationEnvelope:
    """One device operation as received on the wire."""
    id: str
    entity_type: str
    entity_id: str | None = None
    operation: str | None = None
    payload: object = None
    device_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "OperationEnvelope":
        if not isinstance(data, dict):
            raise ValueError("operation must be a JSON object")
        op_id = data.get("id")
        entity_type = data.get("entity_type")
        if not op_id or not isinstance(op_id, str):
            raise ValueError("operation id is required")
        if not entity_type or not isinstance(entity_type, str):
            raise ValueError(f"entity_type is required for operation {op_id}")
        # Device-side created_at and retry_count are not trusted
        return cls(
            id=op_id,
            entity_type=entity_type,
            entity_id=data.get("entity_id"),
            operation=data.get("operation"),
            payload=data.get("payload"),
            device_id=data.get("device_id"),
        )

    def encoded_payload(self) -> str:
        if self.payload is None:
            return "{}"
        if isinstance(self.payload, (bytes, bytearray)):
            return self.payload.decode("utf-8")
        if isinstance(self.payload, str):
            return self.payload
        return json.dumps(self.payload, sort_keys=True)


class SyncQueue:
    """
    Pending operations in replay order.

    Entries are ordered by (created_at, id). created_at is stamped here from
    a monotonic clock, so one push keeps the order it was submitted in.
    """

    def __init__(self, session, *, clock: MonotonicClock | None = None, commit_attempts: int = 3):
        self.session = session
        self.clock = clock or MonotonicClock()
        self.commit_attempts = commit_attempts

    def _commit(self) -> None:
        commit_with_retry(self.session, attempts=self.commit_attempts)

    def get(self, op_id: str) -> SyncOperation | None:
        return self.session.get(SyncOperation, op_id)

    def enqueue(self, envelope: OperationEnvelope, *, commit: bool = True) -> SyncOperation:
        """
        Append an operation with retry_count=0.

        Resubmitting an id that is already queued or dead-lettered returns
        the stored entry unchanged.
        """
        existing = self.get(envelope.id)
        if existing is not None:
            logger.debug("Operation %s already queued; ignoring resubmission", envelope.id)
            return existing

        parked = self.session.get(DeadLetterOperation, envelope.id)
        if parked is not None:
            logger.info("Operation %s is dead-lettered; ignoring resubmission", envelope.id)
            return parked

        op = SyncOperation(
            id=envelope.id,
            entity_type=envelope.entity_type,
            entity_id=envelope.entity_id,
            operation=envelope.operation,
            payload=envelope.encoded_payload(),
            device_id=envelope.device_id,
            created_at=self.clock.now(),
            retry_count=0,
        )
        self.session.add(op)
        if commit:
            self._commit()
        return op

    def enqueue_batch(self, envelopes: list[OperationEnvelope]) -> list[SyncOperation]:
        """Durably enqueue one push; every envelope is stored or none is."""
        try:
            ops = []
            for envelope in envelopes:
                ops.append(self.enqueue(envelope, commit=False))
                # Same id twice in one push must resolve to the pending row
                self.session.flush()
            self._commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info("Queued %d operation(s)", len(envelopes))
        return ops

    def list_all(self) -> list[SyncOperation]:
        return (
            self.session.query(SyncOperation)
            .order_by(SyncOperation.created_at.asc(), SyncOperation.id.asc())
            .all()
        )

    def count(self) -> int:
        return self.session.query(SyncOperation).count()

    def bump_retry(self, op_id: str, error: str | None = None) -> int:
        """Increment retry_count after a failed replay; returns the new count."""
        op = self.get(op_id)
        if op is None:
            raise NotFoundError(f"operation {op_id} not queued", details={"op_id": op_id})
        op.retry_count = (op.retry_count or 0) + 1
        op.last_error = error
        op.last_attempt_at = utcnow()
        self._commit()
        return op.retry_count

    def note_error(self, op_id: str, error: str) -> None:
        """Record a failed attempt that does not count against the retry budget."""
        op = self.get(op_id)
        if op is None:
            raise NotFoundError(f"operation {op_id} not queued", details={"op_id": op_id})
        op.last_error = error
        op.last_attempt_at = utcnow()
        self._commit()

    def remove(self, op_id: str, *, commit: bool = True) -> None:
        self.session.query(SyncOperation).filter_by(id=op_id).delete()
        if commit:
            self._commit()

    def dead_letter(self, op_id: str, error: str | None = None) -> DeadLetterOperation:
        """Move an operation out of the active queue."""
        op = self.get(op_id)
        if op is None:
            raise NotFoundError(f"operation {op_id} not queued", details={"op_id": op_id})
        parked = DeadLetterOperation(
            id=op.id,
            entity_type=op.entity_type,
            entity_id=op.entity_id,
            operation=op.operation,
            payload=op.payload,
            device_id=op.device_id,
            created_at=op.created_at,
            retry_count=op.retry_count,
            last_error=error or op.last_error,
            dead_lettered_at=utcnow(),
        )
        retry_count = op.retry_count
        self.session.delete(op)
        self.session.add(parked)
        self._commit()
        logger.warning("Dead-lettered operation %s after %d attempt(s)", op_id, retry_count)
        return parked

    def list_dead_letters(self) -> list[DeadLetterOperation]:
        return (
            self.session.query(DeadLetterOperation)
            .order_by(DeadLetterOperation.dead_lettered_at.asc(), DeadLetterOperation.id.asc())
            .all()
        )

    def requeue_dead_letter(self, op_id: str) -> SyncOperation:
        """Put a dead-lettered operation back at the end of the queue with a fresh budget."""
        parked = self.session.get(DeadLetterOperation, op_id)
        if parked is None:
            raise NotFoundError(f"dead letter {op_id} not found", details={"op_id": op_id})
        op = SyncOperation(
            id=parked.id,
            entity_type=parked.entity_type,
            entity_id=parked.entity_id,
            operation=parked.operation,
            payload=parked.payload,
            device_id=parked.device_id,
            created_at=self.clock.now(),
            retry_count=0,
            last_error=parked.last_error,
        )
        self.session.delete(parked)
        self.session.add(op)
        self._commit()
        logger.info("Requeued dead-lettered operation %s", op_id)
        return op

    def purge_dead_letters(self, *, older_than: datetime | None = None, older_than_days: int | None = None) -> int:
        """Delete dead letters parked before the cutoff (all of them when no cutoff)."""
        if older_than is None and older_than_days is not None:
            older_than = utcnow() - timedelta(days=older_than_days)
        query = self.session.query(DeadLetterOperation)
        if older_than is not None:
            query = query.filter(DeadLetterOperation.dead_lettered_at < older_than)
        deleted = query.delete()
        self._commit()
        return deleted
