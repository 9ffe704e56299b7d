# backend/possync/routes/system.py
"""
System health endpoint.

Reports database connectivity and the state of the sync queue, so operators
can spot operations stuck at their retry limit.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Product, User, SyncOperation, DeadLetterOperation
from possync.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        user_count = db.session.query(User).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "users": user_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_sync_queue_health() -> dict:
    """
    Queue depth plus operations that reached the retry limit.

    Exhausted operations leave the service operational but need attention,
    so they report "degraded".
    """
    start_time = time.time()
    max_retries = current_app.config["SYNC_MAX_RETRIES"]
    try:
        pending = db.session.query(SyncOperation).count()
        exhausted = db.session.query(SyncOperation).filter(
            SyncOperation.retry_count >= max_retries
        ).count()
        dead_letters = db.session.query(DeadLetterOperation).count()

        elapsed_ms = (time.time() - start_time) * 1000
        details = {
            "pending": pending,
            "exhausted": exhausted,
            "dead_letters": dead_letters,
            "max_retries": max_retries,
        }

        if exhausted or dead_letters:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": "Operations need operator attention",
                "details": details,
            }

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Sync queue health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Sync queue error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: database or queue unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    queue_health = check_sync_queue_health()

    all_checks = [database_health, queue_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "sync_queue": queue_health,
        }
    }

    return response, http_status
