from __future__ import annotations

from ..extensions import db
from possync.time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    Sale header recorded on a device.

    Insert-only: a sale is never updated after it lands. total is derived
    from its items on the server and never taken from the device.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_device_created", "device_id", "created_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    user_id = db.Column(db.String(64), nullable=True, index=True)

    total = db.Column(db.Float, nullable=False, default=0.0)
    device_id = db.Column(db.String(64), nullable=True)

    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        order_by="SaleItem.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "total": self.total,
            "device_id": self.device_id,
            "version": self.version,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """Line items exclusively owned by a sale."""
    __tablename__ = "sale_items"

    id = db.Column(db.String(80), primary_key=True)
    sale_id = db.Column(db.String(64), db.ForeignKey("sales.id"), nullable=False, index=True)

    # References products without owning them
    product_id = db.Column(db.String(64), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Float, nullable=False)
    total = db.Column(db.Float, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price": self.price,
            "total": self.total,
        }
