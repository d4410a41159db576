# Overview: Flask API routes for health checks; returns JSON responses.

"""
System health endpoint.

Checks database connectivity and whether stock_levels still agree with
the purchase and sale records.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product, StockLevel, User
from ..services import stock_service
from stockroom.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "users": db.session.query(User).count(),
            "products": db.session.query(Product).count(),
            "stocked_products": db.session.query(StockLevel).count(),
        }
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": details,
        }
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


def check_ledger_health() -> dict:
    """
    Degraded (not unhealthy) when reconciliation finds violations: the
    service still answers, but stock figures need attention.
    """
    start_time = time.time()
    try:
        report = stock_service.reconcile_stock_levels()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Ledger health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Ledger error",
        }

    elapsed_ms = round((time.time() - start_time) * 1000, 2)
    if not report["ok"]:
        return {
            "status": "degraded",
            "latency_ms": elapsed_ms,
            "warning": f"{len(report['violations'])} stock invariant violation(s)",
        }
    return {
        "status": "healthy",
        "latency_ms": elapsed_ms,
        "details": {"products_checked": report["checked"]},
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "ledger": check_ledger_health(),
    }
    statuses = [c["status"] for c in checks.values()]

    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }, http_status
