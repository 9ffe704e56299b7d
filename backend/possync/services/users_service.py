# Overview: User store; last-writer-wins replication of device-side user edits.

from __future__ import annotations

from ..models import User
from .versioning import VersionedStore


class UserStore(VersionedStore):
    """
    password_hash arrives already hashed from the device and is stored as-is;
    credential checks happen outside this service.
    """

    model = User
    kind = "user"
    mutable_fields = ("name", "email", "password_hash", "role", "device_id")
    insert_only_fields = ("created_at",)

    def find_by_email(self, email: str) -> User | None:
        return self.session.query(User).filter_by(email=email).order_by(User.id.asc()).first()
