from __future__ import annotations

from ..extensions import db
from possync.time_utils import to_utc_z, utcnow


class Purchase(db.Model):
    """
    Stock purchase from a supplier, recorded on a device.

    Insert-only, like Sale. total_amount is derived from items.
    """
    __tablename__ = "purchases"

    id = db.Column(db.String(64), primary_key=True)
    supplier = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.String(64), nullable=True, index=True)

    total_amount = db.Column(db.Float, nullable=False, default=0.0)
    device_id = db.Column(db.String(64), nullable=True)

    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    items = db.relationship(
        "PurchaseItem",
        backref="purchase",
        lazy=True,
        order_by="PurchaseItem.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "supplier": self.supplier,
            "user_id": self.user_id,
            "total_amount": self.total_amount,
            "device_id": self.device_id,
            "version": self.version,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseItem(db.Model):
    __tablename__ = "purchase_items"

    id = db.Column(db.String(80), primary_key=True)
    purchase_id = db.Column(db.String(64), db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Float, nullable=False)
    total = db.Column(db.Float, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price": self.price,
            "total": self.total,
        }
