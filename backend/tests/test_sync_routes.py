# Overview: Pytest coverage for the sync, catalog and health HTTP endpoints.

from unittest import mock

from sqlalchemy.exc import OperationalError

from conftest import push_body, sale_payload
from possync import get_engine
from possync.models import SyncOperation


PRODUCT_P1 = {"id": "p1", "name": "Cola", "price": 2.0, "stock": 10, "version": 1}


class TestPush:

    def test_push_applies_and_drains(self, client, db_session):
        response = client.post("/sync/push", json=push_body(
            ("op-1", "product", PRODUCT_P1),
            ("op-2", "sale", sale_payload("s1", ("p1", 3, 2.0))),
        ))

        assert response.status_code == 200
        assert response.get_json()["status"] == "ok"
        assert db_session.query(SyncOperation).count() == 0

        product = client.get("/api/products/p1").get_json()["product"]
        assert product["stock"] == 7

    def test_push_accepts_object_payloads(self, client, db_session):
        body = [{"id": "op-1", "entity_type": "product", "payload": PRODUCT_P1}]
        response = client.post("/sync/push", json=body)

        assert response.get_json() == {"status": "ok", "applied": ["op-1"]}

    def test_partial_fail_reports_ids(self, client, db_session):
        response = client.post("/sync/push", json=push_body(
            ("op-1", "widget", {"id": "w1"}),
            ("op-2", "product", PRODUCT_P1),
            ("op-3", "sale", sale_payload("s1", ("ghost", 1, 1.0))),
        ))

        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "partial_fail"
        assert data["message"] == "failed to process operations: [op-1 op-3]"
        assert data["failed"] == ["op-1", "op-3"]
        assert data["applied"] == ["op-2"]

    def test_push_drains_previously_queued_operations(self, client, db_session):
        client.post("/sync/push", json=push_body(("op-1", "sale", sale_payload("s1", ("p1", 1, 2.0)))))

        response = client.post("/sync/push", json=push_body(("op-2", "product", PRODUCT_P1)))
        data = response.get_json()

        # op-1 was queued first and still fails before op-2 lands
        assert data["failed"] == ["op-1"]

        response = client.post("/sync/drain")
        assert response.get_json()["status"] == "ok"

    def test_device_created_at_is_ignored(self, client, db_session):
        client.post("/sync/push", json=push_body(("op-1", "widget", {})))

        queued = client.get("/sync/queue").get_json()["items"][0]
        assert not queued["created_at"].startswith("2020-01-01")
        assert queued["retry_count"] == 0

    def test_invalid_bodies(self, client, db_session):
        for body in ({"id": "op-1"}, [{"entity_type": "product"}], ["op-1"], None):
            response = client.post("/sync/push", json=body)
            assert response.status_code == 400
            assert response.get_json()["error"] == "invalid payload"

        assert db_session.query(SyncOperation).count() == 0

    def test_invalid_item_rejects_whole_batch(self, client, db_session):
        body = push_body(("op-1", "product", PRODUCT_P1)) + [{"entity_type": "product"}]

        assert client.post("/sync/push", json=body).status_code == 400
        assert db_session.query(SyncOperation).count() == 0

    def test_enqueue_failure_returns_500(self, app, client, db_session):
        queue = get_engine(app).queue
        failure = OperationalError("INSERT", {}, Exception("database is locked"))

        with mock.patch.object(queue, "enqueue_batch", side_effect=failure):
            response = client.post("/sync/push", json=push_body(("op-1", "product", PRODUCT_P1)))

        assert response.status_code == 500
        assert response.get_json()["error"].startswith("failed to queue operation")

    def test_drain_failure_keeps_queued_operations(self, app, client, db_session):
        engine = get_engine(app)
        failure = OperationalError("SELECT", {}, Exception("disk I/O error"))

        with mock.patch.object(engine.queue, "list_all", side_effect=failure):
            response = client.post("/sync/push", json=push_body(("op-1", "product", PRODUCT_P1)))

        assert response.status_code == 500
        assert db_session.query(SyncOperation).count() == 1


class TestQueueEndpoints:

    def test_queue_listing(self, client, db_session):
        client.post("/sync/push", json=push_body(("op-b", "widget", {}), ("op-a", "widget", {})))

        data = client.get("/sync/queue").get_json()

        assert data["count"] == 2
        assert [item["id"] for item in data["items"]] == ["op-b", "op-a"]

    def test_dead_letter_requeue(self, client, db_session, app):
        queue = get_engine(app).queue
        client.post("/sync/push", json=push_body(("op-1", "widget", {})))
        queue.dead_letter("op-1", error="parked by operator")

        listed = client.get("/sync/dead-letters").get_json()
        assert [item["id"] for item in listed["items"]] == ["op-1"]

        response = client.post("/sync/dead-letters/op-1/requeue")
        assert response.status_code == 200
        assert response.get_json()["operation"]["retry_count"] == 0
        assert client.get("/sync/dead-letters").get_json()["count"] == 0

    def test_requeue_unknown(self, client, db_session):
        response = client.post("/sync/dead-letters/ghost/requeue")
        assert response.status_code == 404
        assert response.get_json()["kind"] == "not_found"


class TestCatalog:

    def _seed(self, client):
        client.post("/sync/push", json=push_body(
            ("op-1", "product", PRODUCT_P1),
            ("op-2", "user", {"id": "u1", "name": "Ann", "email": "ann@x.io", "password": "h", "version": 1}),
            ("op-3", "sale", sale_payload("s1", ("p1", 2, 2.0))),
            ("op-4", "purchase", {"purchase": {"id": "po1", "supplier": "Acme"},
                                  "items": [{"product_id": "p1", "quantity": 5, "price": 1.0}]}),
        ))

    def test_products(self, client, db_session):
        self._seed(client)

        data = client.get("/api/products").get_json()
        assert data["count"] == 1
        assert data["items"][0]["stock"] == 13

    def test_users_never_expose_password(self, client, db_session):
        self._seed(client)

        user = client.get("/api/users/u1").get_json()["user"]
        assert user["email"] == "ann@x.io"
        assert "password_hash" not in user

        by_email = client.get("/api/users?email=ann@x.io").get_json()
        assert [u["id"] for u in by_email["items"]] == ["u1"]
        assert client.get("/api/users?email=nobody@x.io").get_json()["count"] == 0

    def test_sale_and_purchase(self, client, db_session):
        self._seed(client)

        sale = client.get("/api/sales/s1").get_json()["sale"]
        assert sale["total"] == 4.0
        assert len(sale["items"]) == 1

        purchase = client.get("/api/purchases/po1").get_json()["purchase"]
        assert purchase["total_amount"] == 5.0

        assert client.get("/api/sales").get_json()["count"] == 1
        assert client.get("/api/purchases").get_json()["count"] == 1

    def test_not_found(self, client, db_session):
        for path in ("/api/products/x", "/api/users/x", "/api/sales/x", "/api/purchases/x"):
            response = client.get(path)
            assert response.status_code == 404
            assert response.get_json()["kind"] == "not_found"


class TestHealth:

    def test_healthy(self, client, db_session):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "healthy"
        assert data["checks"]["sync_queue"]["details"]["pending"] == 0

    def test_exhausted_operations_degrade_health(self, client, db_session, app):
        client.post("/sync/push", json=push_body(("op-1", "sale", sale_payload("s1", ("ghost", 1, 1.0)))))
        for _ in range(app.config["SYNC_MAX_RETRIES"] - 1):
            client.post("/sync/drain")

        data = client.get("/health").get_json()
        assert data["status"] == "degraded"
        assert data["checks"]["sync_queue"]["details"]["exhausted"] == 1
