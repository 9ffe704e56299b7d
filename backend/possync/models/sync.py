from __future__ import annotations

from ..extensions import db
from possync.time_utils import to_utc_z


class SyncOperation(db.Model):
    """
    Pending device mutation awaiting replay.

    LIFECYCLE:
    - Inserted on push with retry_count=0 and a server-stamped created_at.
    - retry_count is incremented after every failed replay.
    - Deleted once replay succeeds; never touched again after that.

    Replay order is (created_at, id) ascending.
    """
    __tablename__ = "sync_operations"
    __table_args__ = (
        db.Index("ix_sync_operations_created_id", "created_at", "id"),
    )

    # Caller-assigned operation id
    id = db.Column(db.String(64), primary_key=True)

    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.String(64), nullable=True)

    # create/update: advisory only, the applier decides the effect
    operation = db.Column(db.String(16), nullable=True)

    # JSON-encoded entity payload, kept verbatim
    payload = db.Column(db.Text, nullable=False, default="{}")

    device_id = db.Column(db.String(64), nullable=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False)
    retry_count = db.Column(db.Integer, nullable=False, default=0)

    last_error = db.Column(db.Text, nullable=True)
    last_attempt_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<SyncOperation id={self.id!r} entity_type={self.entity_type!r} retry_count={self.retry_count}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "operation": self.operation,
            "payload": self.payload,
            "device_id": self.device_id,
            "created_at": to_utc_z(self.created_at),
            "retry_count": self.retry_count,
            "last_error": self.last_error,
            "last_attempt_at": to_utc_z(self.last_attempt_at),
        }


class DeadLetterOperation(db.Model):
    """
    Operations taken out of the active queue after they could not be applied.

    Only populated when SYNC_DEAD_LETTER_EXHAUSTED is enabled. Operators can
    requeue or purge entries from the CLI or API.
    """
    __tablename__ = "sync_dead_letters"

    id = db.Column(db.String(64), primary_key=True)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.String(64), nullable=True)
    operation = db.Column(db.String(16), nullable=True)
    payload = db.Column(db.Text, nullable=False, default="{}")
    device_id = db.Column(db.String(64), nullable=True)

    # When the operation first entered the queue
    created_at = db.Column(db.DateTime, nullable=False)
    retry_count = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    dead_lettered_at = db.Column(db.DateTime, nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "operation": self.operation,
            "payload": self.payload,
            "device_id": self.device_id,
            "created_at": to_utc_z(self.created_at),
            "retry_count": self.retry_count,
            "last_error": self.last_error,
            "dead_lettered_at": to_utc_z(self.dead_lettered_at),
        }
