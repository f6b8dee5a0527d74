# backend/farmpro/routes/system.py
"""
System health endpoint.

Reports database reachability, session-table health and ledger consistency
for load balancers and deployment checks.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Farm, InventoryItem, InventoryTransaction, SessionToken, User
from farmpro.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        farm_count = db.session.query(Farm).count()
        user_count = db.session.query(User).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"farms": farm_count, "users": user_count},
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_session_service_health() -> dict:
    start_time = time.time()
    try:
        now = utcnow()
        active_sessions = db.session.query(SessionToken).filter(
            SessionToken.is_revoked.is_(False),
            SessionToken.expires_at >= now,
        ).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"active_sessions": active_sessions},
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Session service health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Session service error",
        }


def check_ledger_health() -> dict:
    """
    Compare every item's balance with the new_balance of its latest
    transaction. A mismatch means a balance was written outside the ledger;
    it is reported, not treated as an outage.
    """
    start_time = time.time()
    try:
        latest = (
            db.session.query(
                InventoryTransaction.item_id.label("item_id"),
                func.max(InventoryTransaction.id).label("last_id"),
            )
            .group_by(InventoryTransaction.item_id)
            .subquery()
        )
        unbalanced = (
            db.session.query(InventoryItem.id)
            .join(latest, latest.c.item_id == InventoryItem.id)
            .join(InventoryTransaction, InventoryTransaction.id == latest.c.last_id)
            .filter(InventoryTransaction.new_balance != InventoryItem.quantity)
            .count()
        )
        critical = db.session.query(InventoryItem).filter(
            InventoryItem.minimum_level.isnot(None),
            InventoryItem.quantity <= InventoryItem.minimum_level,
        ).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"unbalanced_items": unbalanced, "critical_items": critical},
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Ledger health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Ledger check error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: all checks healthy
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "session_service": check_session_service_health(),
        "ledger": check_ledger_health(),
    }
    unhealthy = any(check["status"] == "unhealthy" for check in checks.values())

    response = {
        "status": "unhealthy" if unhealthy else "healthy",
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }
    return response, 503 if unhealthy else 200
