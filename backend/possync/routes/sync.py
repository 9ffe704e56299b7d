# Overview: Flask API routes for device synchronization; queues pushed operations and drains the queue.

# backend/possync/routes/sync.py
"""
Sync API routes.

POST /sync/push is the single entry point for devices. Every operation in the
body is durably queued first; only then is the whole queue drained. A drain
failure never loses what was queued: the next push or drain picks it up.
"""

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from .. import get_engine
from ..errors import NotFoundError
from ..services.sync_queue import OperationEnvelope


sync_bp = Blueprint("sync", __name__, url_prefix="/sync")


def _drain_response():
    try:
        result = get_engine().process_all()
    except SQLAlchemyError:
        current_app.logger.exception("Failed to drain sync queue")
        return jsonify({"error": "failed to process queue"}), 500
    return jsonify(result.to_dict()), 200


@sync_bp.post("/push")
def push_route():
    """
    Queue a batch of device operations and replay the queue.

    Body: JSON array of {id, entity_type, entity_id, operation, payload,
    device_id, created_at, retry_count}. created_at and retry_count are
    ignored; the server stamps its own.

    Returns {"status": "ok"} or {"status": "partial_fail", "message": ..., "failed": [...]}.
    """
    incoming = request.get_json(silent=True)
    if not isinstance(incoming, list):
        return jsonify({"error": "invalid payload"}), 400

    try:
        envelopes = [OperationEnvelope.from_dict(item) for item in incoming]
    except ValueError as e:
        return jsonify({"error": "invalid payload", "details": str(e)}), 400

    try:
        get_engine().queue.enqueue_batch(envelopes)
    except SQLAlchemyError as e:
        current_app.logger.exception("Failed to queue sync operations")
        return jsonify({"error": f"failed to queue operation: {e.__class__.__name__}"}), 500

    return _drain_response()


@sync_bp.post("/drain")
def drain_route():
    """Replay the queue without submitting anything."""
    return _drain_response()


@sync_bp.get("/queue")
def list_queue_route():
    """Pending operations in replay order."""
    ops = get_engine().queue.list_all()
    return jsonify({"items": [op.to_dict() for op in ops], "count": len(ops)}), 200


@sync_bp.get("/dead-letters")
def list_dead_letters_route():
    parked = get_engine().queue.list_dead_letters()
    return jsonify({"items": [op.to_dict() for op in parked], "count": len(parked)}), 200


@sync_bp.post("/dead-letters/<op_id>/requeue")
def requeue_dead_letter_route(op_id: str):
    """Move a dead-lettered operation back into the queue with a fresh retry budget."""
    try:
        op = get_engine().queue.requeue_dead_letter(op_id)
    except NotFoundError as e:
        return jsonify(e.to_dict()), 404
    return jsonify({"operation": op.to_dict()}), 200
