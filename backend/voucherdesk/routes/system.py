# backend/voucherdesk/routes/system.py
"""
System health endpoint.

Reports database reachability and a few table counts for deployment
debugging. 503 when the database cannot be queried.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import DiscountVoucher, InventoryItem, ReturnRecord, TransactionVoucher, User
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "users": db.session.query(User).count(),
            "inventory_items": db.session.query(InventoryItem).count(),
            "discount_vouchers": db.session.query(DiscountVoucher).count(),
            "transaction_vouchers": db.session.query(TransactionVoucher).count(),
            "returns": db.session.query(ReturnRecord).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"

    return {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": utcnow().isoformat() + "Z",
        "sequence_backend": current_app.config.get("SEQUENCE_BACKEND", "database"),
        "checks": {"database": database_health},
    }, 200 if healthy else 503
