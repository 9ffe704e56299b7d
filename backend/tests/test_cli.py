# Overview: Pytest coverage for the system and sync CLI groups.

from datetime import timedelta

from conftest import make_op, sale_payload
from possync import get_engine
from possync.models import DeadLetterOperation, Product
from possync.time_utils import utcnow


class TestSystemCommands:

    def test_init_db_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "init-db"])

        assert result.exit_code == 0
        assert "Database tables created" in result.output

    def test_reset_db_requires_confirmation(self, app, db_session, products):
        products.reconcile({"id": "p1", "name": "Cola", "price": 2.0, "stock": 10})
        runner = app.test_cli_runner()

        aborted = runner.invoke(args=["system", "reset-db"], input="n\n")
        assert aborted.exit_code != 0
        assert db_session.get(Product, "p1") is not None
        db_session.rollback()

        result = runner.invoke(args=["system", "reset-db", "--yes"])
        assert result.exit_code == 0
        db_session.expire_all()
        assert db_session.query(Product).count() == 0


class TestSyncCommands:

    def test_drain_reports_outcome(self, app, db_session, queue):
        queue.enqueue(make_op("op-1", "product", {"id": "p1", "stock": 1}))
        queue.enqueue(make_op("op-2", "widget", {}))

        result = app.test_cli_runner().invoke(args=["sync", "drain"])

        assert result.exit_code == 0
        assert "Applied: 1" in result.output
        assert "Rejected: 1" in result.output
        assert "failed to process operations: [op-2]" in result.output

    def test_drain_empty_queue(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["sync", "drain"])

        assert "PASS Queue drained." in result.output

    def test_queue_listing(self, app, db_session, queue):
        runner = app.test_cli_runner()
        assert "Queue is empty." in runner.invoke(args=["sync", "queue"]).output

        queue.enqueue(make_op("op-1", "sale", sale_payload("s1", ("ghost", 1, 1.0))))
        get_engine(app).process_all()

        output = runner.invoke(args=["sync", "queue"]).output
        assert "op-1" in output
        assert "1/5" in output

    def test_dead_letter_lifecycle(self, app, db_session, queue):
        runner = app.test_cli_runner()
        queue.enqueue(make_op("op-1", "widget", {}))
        queue.dead_letter("op-1", error="unknown_entity_type: widget")

        listed = runner.invoke(args=["sync", "dead-letters"])
        assert "op-1" in listed.output

        requeued = runner.invoke(args=["sync", "requeue", "op-1"])
        assert requeued.exit_code == 0
        assert queue.get("op-1") is not None

        missing = runner.invoke(args=["sync", "requeue", "op-1"])
        assert missing.exit_code != 0
        assert "not found" in missing.output

    def test_purge_dead_letters(self, app, db_session, queue):
        for op_id in ("old", "new"):
            queue.enqueue(make_op(op_id, "widget", {}))
            queue.dead_letter(op_id)
        db_session.get(DeadLetterOperation, "old").dead_lettered_at = utcnow() - timedelta(days=10)
        db_session.commit()

        result = app.test_cli_runner().invoke(
            args=["sync", "purge-dead-letters", "--older-than-days", "7", "--yes"],
        )

        assert result.exit_code == 0
        assert "Deleted 1 dead-lettered operation(s)." in result.output
        assert [d.id for d in queue.list_dead_letters()] == ["new"]
