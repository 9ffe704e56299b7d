# Overview: Sale and purchase creation; totals, stock movement and header/line inserts in one unit of work.

"""
Compound transaction invariants (authoritative)

- Header totals and line totals are computed here from quantity * price;
  values sent by devices are ignored.
- Sales decrement stock per line, purchases increment it.
- Stock adjustments, header insert and line inserts commit together or not
  at all. A sale that fails on its third line leaves the first two
  products untouched.
- Headers are insert-only and keyed by the device-assigned id. Applying an
  id that already exists is a no-op returning the stored header, so
  replaying a push never moves stock twice.
"""

from __future__ import annotations

import logging
from typing import Iterable

from ..errors import NotFoundError
from ..models import Sale, SaleItem, Purchase, PurchaseItem
from possync.time_utils import utcnow
from .concurrency import UnitOfWork
from .products_service import ProductStore
from .sync_payloads import LineItemPayload

logger = logging.getLogger(__name__)


def line_total(quantity: int, price: float) -> float:
    return round(quantity * price, 2)


class TransactionStore:
    """Shared create/get/list for insert-only documents with owned line items."""

    kind: str = ""
    header_model = None
    item_model = None
    total_field: str = "total"
    # +1 adds the line quantity to stock, -1 removes it
    stock_direction: int = 0

    def __init__(self, uow: UnitOfWork, products: ProductStore):
        self.uow = uow
        self.products = products

    @property
    def session(self):
        return self.uow.session

    def find(self, doc_id: str):
        return self.session.get(self.header_model, doc_id)

    def get(self, doc_id: str):
        doc = self.find(doc_id)
        if doc is None:
            raise NotFoundError(
                f"{self.kind} {doc_id} not found",
                details={"entity_type": self.kind, "entity_id": doc_id},
            )
        return doc

    def list(self) -> list:
        return (
            self.session.query(self.header_model)
            .order_by(self.header_model.created_at.desc(), self.header_model.id.asc())
            .all()
        )

    def create(self, header: dict, items: Iterable[LineItemPayload]):
        """
        Create a document with its lines and move stock for each line.

        header holds the validated header columns including "id". Returns the
        persisted header (with .items). Raises the first error hit; nothing is
        persisted in that case.
        """
        items = list(items)
        doc_id = header["id"]

        with self.uow.begin():
            self.uow.hold((self.kind, doc_id))
            existing = self.find(doc_id)
            if existing is not None:
                logger.info("%s %s already recorded; skipping replay", self.kind, doc_id)
                return existing

            # Lock every touched product up front in a fixed order
            for product_id in sorted({item.product_id for item in items}):
                self.uow.hold(self.products.lock_key(product_id))

            grand_total = 0.0
            totals = []
            for item in items:
                total = line_total(item.quantity, item.price)
                totals.append(total)
                grand_total += total

            for item in items:
                self.products.adjust_stock(item.product_id, self.stock_direction * item.quantity)

            doc = self.header_model(**header)
            setattr(doc, self.total_field, round(grand_total, 2))
            doc.version = 1
            doc.created_at = utcnow()
            self.session.add(doc)

            for n, (item, total) in enumerate(zip(items, totals), start=1):
                doc.items.append(self.item_model(
                    id=item.id or f"{doc_id}-{n}",
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price=item.price,
                    total=total,
                ))

            self.session.flush()
            return doc


class SaleStore(TransactionStore):
    kind = "sale"
    header_model = Sale
    item_model = SaleItem
    total_field = "total"
    stock_direction = -1


class PurchaseStore(TransactionStore):
    kind = "purchase"
    header_model = Purchase
    item_model = PurchaseItem
    total_field = "total_amount"
    stock_direction = 1
