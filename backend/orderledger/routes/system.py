# backend/orderledger/routes/system.py
"""
System health endpoint.

Reports database connectivity plus a couple of cheap counts that are useful
when debugging a deployment.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..models import Order, StockMovement
from ..services.lock_service import list_permanently_locked
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """Check database connectivity and basic queries."""
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        order_count = db.session.query(Order).count()
        movement_count = db.session.query(StockMovement).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "orders": order_count,
                "stock_movements": movement_count,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_lock_window_health() -> dict:
    """Orders past their unlock window; informational only."""
    try:
        expired = len(list_permanently_locked())
        return {"status": "healthy", "details": {"permanently_locked_orders": expired}}
    except Exception:
        current_app.logger.exception("Lock window check failed")
        return {"status": "unhealthy", "error": "Lock window check error"}


@system_bp.get("/health")
def health():
    """
    Health check.

    Returns:
    - 200: all checks healthy
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    lock_health = (
        check_lock_window_health()
        if database_health["status"] == "healthy"
        else {"status": "unhealthy", "error": "Skipped (database unavailable)"}
    )

    all_checks = [database_health, lock_health]
    unhealthy = any(check["status"] == "unhealthy" for check in all_checks)

    response = {
        "status": "unhealthy" if unhealthy else "healthy",
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "lock_window": lock_health,
        },
    }
    return response, 503 if unhealthy else 200
