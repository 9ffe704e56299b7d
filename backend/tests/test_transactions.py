# Overview: Pytest coverage for sale and purchase creation.

"""
Compound Transaction Tests

Sales and purchases write a header, its lines and stock movements in one
unit of work. These tests pin totals, stock direction, atomicity and
replay safety.
"""

import pytest

from possync.errors import InsufficientStockError, NotFoundError
from possync.models import Product, Sale, SaleItem, Purchase
from possync.services.sync_payloads import LineItemPayload
from possync.services.transactions_service import line_total


def line(product_id, quantity, price, item_id=None):
    return LineItemPayload(id=item_id, product_id=product_id, quantity=quantity, price=price)


class TestSales:

    def test_sale_computes_total_and_decrements_stock(self, db_session, engine, product_p1):
        """
        SCENARIO: sale of 3 x p1 at 2.0 against stock 10
        EXPECTED: total 6.0, stock 7
        """
        engine.sales.create({"id": "s1", "user_id": "u1", "device_id": "dev-1"}, [line("p1", 3, 2.0)])

        sale = db_session.get(Sale, "s1")
        assert sale.total == 6.0
        assert sale.version == 1
        assert len(sale.items) == 1
        assert sale.items[0].total == 6.0
        assert sale.items[0].id == "s1-1"
        assert db_session.get(Product, "p1").stock == 7

    def test_sale_keeps_device_line_ids(self, db_session, engine, product_p1):
        engine.sales.create({"id": "s1"}, [line("p1", 1, 2.0, item_id="line-a")])
        assert db_session.get(SaleItem, "line-a").sale_id == "s1"

    def test_sale_over_stock_fails_and_persists_nothing(self, db_session, engine, product_p1):
        with pytest.raises(InsufficientStockError):
            engine.sales.create({"id": "s1"}, [line("p1", 11, 2.0)])

        assert db_session.get(Sale, "s1") is None
        assert db_session.get(Product, "p1").stock == 10

    def test_failure_on_later_line_leaves_earlier_lines_untouched(self, db_session, engine, products, product_p1):
        """Line 1 succeeds, line 2 references an unknown product: everything rolls back."""
        products.reconcile({"id": "p2", "name": "Chips", "price": 1.0, "stock": 5})

        with pytest.raises(NotFoundError):
            engine.sales.create(
                {"id": "s1"},
                [line("p1", 2, 2.0), line("p2", 1, 1.0), line("ghost", 1, 1.0)],
            )

        db_session.expire_all()
        assert db_session.get(Sale, "s1") is None
        assert db_session.query(SaleItem).count() == 0
        assert db_session.get(Product, "p1").stock == 10
        assert db_session.get(Product, "p1").version == 1
        assert db_session.get(Product, "p2").stock == 5

    def test_replayed_sale_does_not_move_stock_twice(self, db_session, engine, product_p1):
        header = {"id": "s1", "user_id": "u1"}
        engine.sales.create(header, [line("p1", 3, 2.0)])
        engine.sales.create(dict(header), [line("p1", 3, 2.0)])

        assert db_session.query(Sale).count() == 1
        assert db_session.get(Product, "p1").stock == 7

    def test_sale_without_items_has_zero_total(self, db_session, engine):
        engine.sales.create({"id": "s-empty"}, [])
        sale = db_session.get(Sale, "s-empty")
        assert sale.total == 0.0
        assert sale.items == []

    def test_same_product_on_two_lines(self, db_session, engine, product_p1):
        engine.sales.create({"id": "s1"}, [line("p1", 2, 2.0), line("p1", 3, 2.0)])

        stored = db_session.get(Product, "p1")
        assert stored.stock == 5
        assert stored.version == 3

    def test_get_and_list(self, db_session, engine, product_p1):
        engine.sales.create({"id": "s1"}, [line("p1", 1, 2.0)])
        engine.sales.create({"id": "s2"}, [line("p1", 1, 2.0)])

        assert engine.sales.get("s1").id == "s1"
        listed = engine.sales.list()
        assert {s.id for s in listed} == {"s1", "s2"}
        assert listed[0].created_at >= listed[1].created_at
        with pytest.raises(NotFoundError):
            engine.sales.get("nope")


class TestPurchases:

    def test_purchase_increments_stock(self, db_session, engine, product_p1):
        engine.purchases.create(
            {"id": "po1", "supplier": "Acme Supply"},
            [line("p1", 4, 1.25), line("p1", 1, 0.5)],
        )

        purchase = db_session.get(Purchase, "po1")
        assert purchase.total_amount == 5.5
        assert purchase.supplier == "Acme Supply"
        assert db_session.get(Product, "p1").stock == 15

    def test_purchase_of_unknown_product_is_rejected(self, db_session, engine):
        with pytest.raises(NotFoundError):
            engine.purchases.create({"id": "po1"}, [line("ghost", 1, 1.0)])
        assert db_session.get(Purchase, "po1") is None


class TestLineTotal:

    @pytest.mark.parametrize("quantity,price,expected", [
        (3, 2.0, 6.0),
        (3, 0.1, 0.3),
        (1, 19.999, 20.0),
        (7, 0.0, 0.0),
        (1, 0.125, 0.12),
    ])
    def test_rounds_to_cents(self, quantity, price, expected):
        assert line_total(quantity, price) == expected
