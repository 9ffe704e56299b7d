from __future__ import annotations

from ..extensions import db
from possync.time_utils import to_utc_z, utcnow


class User(db.Model):
    """
    User accounts edited on devices and replicated here.

    password_hash is opaque: devices hash before pushing, the server only
    stores it. It is never serialized back out.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_email", "email"),
    )

    id = db.Column(db.String(64), primary_key=True)

    name = db.Column(db.String(255), nullable=False, default="")
    email = db.Column(db.String(255), nullable=False, default="")
    password_hash = db.Column(db.String(255), nullable=False, default="")

    # admin, cashier
    role = db.Column(db.String(32), nullable=False, default="cashier")
    device_id = db.Column(db.String(64), nullable=True)

    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

    def __repr__(self) -> str:
        return f"<User id={self.id!r} email={self.email!r} version={self.version}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "device_id": self.device_id,
            "version": self.version,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
