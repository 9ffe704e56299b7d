from __future__ import annotations

from ..extensions import db
from possync.time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Product master data, replicated from point-of-sale devices.

    VERSIONING:
    - version is assigned by the writer (device or stock ledger), never by the DB.
    - SQLAlchemy issues UPDATE ... WHERE version = <version read>, so a write
      that lost a race touches zero rows and raises StaleDataError.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
    )

    # Device-assigned UUID
    id = db.Column(db.String(64), primary_key=True)

    name = db.Column(db.String(255), nullable=False, default="")
    price = db.Column(db.Float, nullable=False, default=0.0)
    stock = db.Column(db.Integer, nullable=False, default=0)

    version = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

    def __repr__(self) -> str:
        return f"<Product id={self.id!r} name={self.name!r} stock={self.stock} version={self.version}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "stock": self.stock,
            "version": self.version,
            "updated_at": to_utc_z(self.updated_at),
        }
