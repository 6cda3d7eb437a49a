# backend/repairdesk/routes/system.py
"""
System health endpoint.

Checks the database and the storage root; used by load balancers and for
deployment debugging.
"""

import time
from pathlib import Path

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Tenant, User
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        tenant_count = db.session.query(Tenant).count()
        user_count = db.session.query(User).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"tenants": tenant_count, "users": user_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_storage_health() -> dict:
    root = Path(current_app.config["STORAGE_ROOT"])
    if not root.is_absolute():
        root = Path(current_app.instance_path) / root
    if root.exists() and not root.is_dir():
        return {"status": "unhealthy", "error": "Storage root is not a directory"}
    # A missing root is created on first upload
    return {"status": "healthy" if root.exists() else "degraded", "details": {"exists": root.exists()}}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable or storage root unusable
    """
    start_time = time.time()
    checks = {
        "database": check_database_health(),
        "storage": check_storage_health(),
    }
    statuses = {c["status"] for c in checks.values()}
    if "unhealthy" in statuses:
        overall, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall, http_status = "degraded", 200
    else:
        overall, http_status = "healthy", 200

    return {
        "status": overall,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }, http_status
