# Overview: Product store and stock ledger; versioned upsert plus stock adjustment.

from __future__ import annotations

from ..errors import InsufficientStockError
from ..models import Product
from .versioning import VersionedStore

"""
Stock ledger invariants (authoritative)

- Stock is a mutable quantity on the product row, never negative.
- Every adjustment bumps the product version by one, so adjustments are
  ordered with device edits under last-writer-wins.
- The read-modify-write runs under the product's lock inside one unit of
  work; concurrent adjustments of the same product are serialized, not lost.
"""


class ProductStore(VersionedStore):
    model = Product
    kind = "product"
    mutable_fields = ("name", "price", "stock")

    def adjust_stock(self, product_id: str, delta: int) -> Product:
        """
        Add delta (negative to decrement) to a product's stock.

        Raises NotFoundError if the product is unknown and
        InsufficientStockError, without changing anything, if stock would
        go below zero.
        """
        with self.uow.begin():
            self.uow.hold(self.lock_key(product_id))
            product = self.get(product_id, lock=True)

            new_stock = product.stock + delta
            if new_stock < 0:
                raise InsufficientStockError(
                    f"insufficient stock for product {product_id}",
                    details={
                        "product_id": product_id,
                        "on_hand": product.stock,
                        "requested_delta": delta,
                    },
                )

            return self.reconcile({
                "id": product.id,
                "name": product.name,
                "price": product.price,
                "stock": new_stock,
                "version": product.version + 1,
            })
