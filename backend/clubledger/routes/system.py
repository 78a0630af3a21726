# backend/clubledger/routes/system.py
"""Health endpoint: store connectivity and stock ledger consistency."""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from ..services import stock_service
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        return {"status": "healthy", "latency_ms": round((time.time() - start_time) * 1000, 2)}
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


def check_stock_ledger_health() -> dict:
    try:
        mismatches = stock_service.verify_stock_ledger()
    except Exception:
        current_app.logger.exception("Stock ledger check failed")
        return {"status": "unhealthy", "error": "Stock ledger check failed"}
    if mismatches:
        return {"status": "degraded", "mismatches": mismatches}
    return {"status": "healthy"}


@system_bp.get("/health")
def health():
    checks = {
        "database": check_database_health(),
        "stock_ledger": check_stock_ledger_health(),
    }
    healthy = all(check["status"] == "healthy" for check in checks.values())
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": checks,
    }
    return jsonify(body), 200 if healthy else 503
