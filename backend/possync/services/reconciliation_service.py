# Overview: Reconciliation engine; drains the sync queue and applies each operation by entity kind.

"""
Reconciliation invariants (authoritative)

Per operation:
- Pending -> Applied: applied and removed from the queue in one commit.
- Pending -> Deferred: apply failed, retry_count incremented, stays queued.
- Pending -> Exhausted: retry_count reached max_retries. Reported as a hard
  conflict on every drain. Stays in the queue (and keeps being attempted)
  unless dead-lettering is enabled, which moves it to sync_dead_letters.
- Pending -> Rejected: unknown entity type or malformed payload. Replaying
  cannot fix it, so retry_count is left alone. Stays queued, or is
  dead-lettered when dead-lettering is enabled. Never silently dropped.

Per drain:
- The whole queue is drained in (created_at, id) order, not only the
  operations of the push that triggered it.
- Individual failures never abort the drain. Only failures of the queue
  storage itself propagate.
- One drain at a time per engine; concurrent callers wait their turn.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from ..errors import SyncError, DecodeError, ExhaustedError, TERMINAL_ERRORS
from .concurrency import UnitOfWork
from .products_service import ProductStore
from .sync_payloads import (
    EntityKind,
    DecodedOperation,
    TransactionPayload,
    VersionedPayload,
    decode_operation,
)
from .sync_queue import SyncQueue
from .transactions_service import SaleStore, PurchaseStore
from .users_service import UserStore

DEFAULT_MAX_RETRIES = 5


class OperationOutcome(str, enum.Enum):
    APPLIED = "applied"
    DEFERRED = "deferred"
    EXHAUSTED = "exhausted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class QueuedOperation:
    """Detached snapshot of a queue row; survives the commits of a drain."""
    id: str
    entity_type: str
    entity_id: str | None
    payload: str
    retry_count: int

    @classmethod
    def from_model(cls, op) -> "QueuedOperation":
        return cls(
            id=op.id,
            entity_type=op.entity_type,
            entity_id=op.entity_id,
            payload=op.payload,
            retry_count=op.retry_count or 0,
        )


@dataclass(frozen=True)
class OperationResult:
    op_id: str
    outcome: OperationOutcome
    error: str | None = None
    retry_count: int = 0
    dead_lettered: bool = False

    @property
    def ok(self) -> bool:
        return self.outcome is OperationOutcome.APPLIED


@dataclass
class BatchResult:
    applied: list[str] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)
    exhausted: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)
    dead_lettered: list[str] = field(default_factory=list)
    # Unresolved ids in the order they were attempted
    failed: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    def record(self, result: OperationResult) -> None:
        if result.ok:
            self.applied.append(result.op_id)
            return
        {
            OperationOutcome.DEFERRED: self.deferred,
            OperationOutcome.EXHAUSTED: self.exhausted,
            OperationOutcome.REJECTED: self.rejected,
        }[result.outcome].append(result.op_id)
        if result.dead_lettered:
            self.dead_lettered.append(result.op_id)
        self.failed.append(result.op_id)
        if result.error:
            self.errors[result.op_id] = result.error

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def status(self) -> str:
        return "ok" if self.ok else "partial_fail"

    @property
    def message(self) -> str | None:
        if self.ok:
            return None
        return f"failed to process operations: [{' '.join(self.failed)}]"

    def to_dict(self) -> dict:
        data = {"status": self.status}
        if not self.ok:
            data.update({
                "message": self.message,
                "failed": list(self.failed),
                "exhausted": list(self.exhausted),
                "rejected": list(self.rejected),
                "dead_lettered": list(self.dead_lettered),
            })
        data["applied"] = list(self.applied)
        return data


def _describe(exc: Exception) -> str:
    if isinstance(exc, SyncError):
        return f"{exc.kind}: {exc}"
    return f"{type(exc).__name__}: {exc}"


class ReconciliationEngine:
    """
    Replays queued device operations against the entity stores.

    All collaborators are passed in; the engine holds no global state
    besides its own drain lock.
    """

    def __init__(
        self,
        *,
        queue: SyncQueue,
        uow: UnitOfWork,
        products: ProductStore,
        users: UserStore,
        sales: SaleStore,
        purchases: PurchaseStore,
        max_retries: int = DEFAULT_MAX_RETRIES,
        dead_letter_exhausted: bool = False,
        logger: logging.Logger | None = None,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.queue = queue
        self.uow = uow
        self.products = products
        self.users = users
        self.sales = sales
        self.purchases = purchases
        self.max_retries = max_retries
        self.dead_letter_exhausted = dead_letter_exhausted
        self.log = logger or logging.getLogger(__name__)
        self._drain_lock = threading.Lock()

        self._appliers = {
            EntityKind.PRODUCT: self._apply_versioned(self.products),
            EntityKind.USER: self._apply_versioned(self.users),
            EntityKind.SALE: self._apply_transaction(self.sales),
            EntityKind.PURCHASE: self._apply_transaction(self.purchases),
        }
        missing = set(EntityKind) - set(self._appliers)
        if missing:
            raise ValueError(f"no applier for entity kinds: {sorted(k.value for k in missing)}")

    @staticmethod
    def _apply_versioned(store):
        def apply(decoded: VersionedPayload):
            return store.reconcile(decoded.fields)
        return apply

    @staticmethod
    def _apply_transaction(store):
        def apply(decoded: TransactionPayload):
            return store.create(decoded.header, decoded.items)
        return apply

    def apply(self, decoded: DecodedOperation):
        """Route a decoded operation to its store. Joins any open unit of work."""
        return self._appliers[decoded.kind](decoded)

    def process_operation(self, op) -> OperationResult:
        """
        Replay a single queued operation and update its queue entry.

        op is a SyncOperation row or a QueuedOperation snapshot. Raises only
        when the queue storage itself fails.
        """
        if not isinstance(op, QueuedOperation):
            op = QueuedOperation.from_model(op)

        try:
            decoded = decode_operation(op.entity_type, op.payload, op.entity_id)
        except TERMINAL_ERRORS as exc:
            return self._reject(op, exc)
        except Exception as exc:
            self.log.exception("Unexpected error decoding operation %s", op.id)
            return self._reject(op, DecodeError(f"payload could not be decoded: {type(exc).__name__}"))

        try:
            with self.uow.begin():
                self.apply(decoded)
                self.queue.remove(op.id, commit=False)
        except Exception as exc:
            if not isinstance(exc, (SyncError, SQLAlchemyError)):
                self.log.exception("Unexpected error applying operation %s", op.id)
            return self._defer(op, exc)

        self.log.debug("Applied %s operation %s", op.entity_type, op.id)
        return OperationResult(op_id=op.id, outcome=OperationOutcome.APPLIED, retry_count=op.retry_count)

    def _reject(self, op: QueuedOperation, exc: SyncError) -> OperationResult:
        error = _describe(exc)
        self.log.warning("Rejected operation %s (%s): %s", op.id, op.entity_type, error)
        if self.dead_letter_exhausted:
            self.queue.dead_letter(op.id, error=error)
        else:
            self.queue.note_error(op.id, error)
        return OperationResult(
            op_id=op.id,
            outcome=OperationOutcome.REJECTED,
            error=error,
            retry_count=op.retry_count,
            dead_lettered=self.dead_letter_exhausted,
        )

    def _defer(self, op: QueuedOperation, exc: Exception) -> OperationResult:
        error = _describe(exc)
        retry_count = self.queue.bump_retry(op.id, error=error)

        if retry_count < self.max_retries:
            self.log.warning(
                "Deferred operation %s (attempt %d/%d): %s",
                op.id, retry_count, self.max_retries, error,
            )
            return OperationResult(
                op_id=op.id,
                outcome=OperationOutcome.DEFERRED,
                error=error,
                retry_count=retry_count,
            )

        exhausted = ExhaustedError(op.id, retry_count, cause=error)
        self.log.warning("Exhausted operation %s: %s", op.id, exhausted)
        if self.dead_letter_exhausted:
            self.queue.dead_letter(op.id, error=_describe(exhausted))
        else:
            self.queue.note_error(op.id, _describe(exhausted))
        return OperationResult(
            op_id=op.id,
            outcome=OperationOutcome.EXHAUSTED,
            error=error,
            retry_count=retry_count,
            dead_lettered=self.dead_letter_exhausted,
        )

    def process_all(self) -> BatchResult:
        """Drain the entire queue in replay order and aggregate the outcome."""
        with self._drain_lock:
            pending = [QueuedOperation.from_model(op) for op in self.queue.list_all()]
            self.log.info("Draining %d queued operation(s)", len(pending))

            result = BatchResult()
            for op in pending:
                result.record(self.process_operation(op))

            if result.ok:
                self.log.info("Drain complete: %d applied", len(result.applied))
            else:
                self.log.warning(
                    "Drain complete: %d applied, %d unresolved (%s)",
                    len(result.applied), len(result.failed), result.message,
                )
            return result


def build_engine(
    session,
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    dead_letter_exhausted: bool = False,
    commit_attempts: int = 3,
    logger: logging.Logger | None = None,
) -> ReconciliationEngine:
    """Wire the queue, stores and unit of work around one session."""
    uow = UnitOfWork(session)
    products = ProductStore(uow)
    return ReconciliationEngine(
        queue=SyncQueue(session, commit_attempts=commit_attempts),
        uow=uow,
        products=products,
        users=UserStore(uow),
        sales=SaleStore(uow, products),
        purchases=PurchaseStore(uow, products),
        max_retries=max_retries,
        dead_letter_exhausted=dead_letter_exhausted,
        logger=logger,
    )
