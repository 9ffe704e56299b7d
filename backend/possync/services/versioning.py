# Overview: Conflict-aware upsert for last-writer-wins entities (products, users).

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import NotFoundError, VersionConflictError
from possync.time_utils import utcnow
from .concurrency import UnitOfWork, lock_for_update

"""
Versioned entity invariants (authoritative)

- version is a per-id counter starting at 1 and only ever increases.
- A write whose version is <= the stored version is a successful no-op.
  Replaying the same payload twice therefore leaves the same state.
- A newer version overwrites every mutable field (last writer wins) and
  stamps updated_at.
- The UPDATE is conditional on the version that was read. If another writer
  got there first it touches zero rows and the caller gets VersionConflictError.
- Writers for the same id are serialized by a per-id lock that lives until
  the enclosing unit of work commits or rolls back.
"""

logger = logging.getLogger(__name__)


class VersionedStore:
    """Base store for models mapped with an application-assigned version_id_col."""

    model = None
    kind: str = ""
    mutable_fields: tuple[str, ...] = ()
    insert_only_fields: tuple[str, ...] = ()

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    @property
    def session(self):
        return self.uow.session

    def lock_key(self, entity_id: str) -> tuple[str, str]:
        return (self.kind, entity_id)

    def find(self, entity_id: str, *, lock: bool = False):
        query = self.session.query(self.model).filter_by(id=entity_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def get(self, entity_id: str, *, lock: bool = False):
        entity = self.find(entity_id, lock=lock)
        if entity is None:
            raise NotFoundError(
                f"{self.kind} {entity_id} not found",
                details={"entity_type": self.kind, "entity_id": entity_id},
            )
        return entity

    def list(self) -> list:
        return self.session.query(self.model).order_by(self.model.id.asc()).all()

    def reconcile(self, incoming: dict):
        """
        Merge incoming state for one entity.

        incoming carries "id", optional "version" (default 1) and any
        mutable fields. Returns the stored entity whether or not the write
        was applied.
        """
        entity_id = incoming["id"]
        version = incoming.get("version") or 1

        with self.uow.begin():
            self.uow.hold(self.lock_key(entity_id))
            existing = self.find(entity_id, lock=True)

            if existing is None:
                return self._insert(entity_id, version, incoming)

            if version <= existing.version:
                logger.debug(
                    "Skipping stale %s %s: incoming version %s <= stored %s",
                    self.kind, entity_id, version, existing.version,
                )
                return existing

            return self._update(existing, version, incoming)

    def _insert(self, entity_id: str, version: int, incoming: dict):
        fields = self.mutable_fields + self.insert_only_fields
        values = {f: incoming[f] for f in fields if f in incoming}
        values.setdefault("updated_at", incoming.get("updated_at") or utcnow())
        entity = self.model(id=entity_id, version=version, **values)
        self.session.add(entity)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise VersionConflictError(
                f"{self.kind} {entity_id} was inserted concurrently",
                details={"entity_type": self.kind, "entity_id": entity_id},
            ) from exc
        return entity

    def _update(self, existing, version: int, incoming: dict):
        previous = existing.version
        for field in self.mutable_fields:
            if field in incoming:
                setattr(existing, field, incoming[field])
        existing.version = version
        existing.updated_at = utcnow()
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise VersionConflictError(
                f"{self.kind} {existing.id} changed while being written",
                details={
                    "entity_type": self.kind,
                    "entity_id": existing.id,
                    "expected_version": previous,
                    "incoming_version": version,
                },
            ) from exc
        return existing
