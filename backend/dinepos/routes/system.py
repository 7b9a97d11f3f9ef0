# backend/dinepos/routes/system.py
"""
System health endpoint and uploaded image serving.
"""

import time
from flask import Blueprint, current_app, send_from_directory
from ..extensions import db
from ..models import Restaurant, AdminUser, RestaurantSession
from ..services import image_store
from dinepos.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Check database connectivity with a few cheap counts."""
    start_time = time.time()
    try:
        restaurant_count = db.session.query(Restaurant).count()
        admin_count = db.session.query(AdminUser).count()
        live_sessions = db.session.query(RestaurantSession).filter(
            RestaurantSession.expires_at >= utcnow()
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "restaurants": restaurant_count,
                "admins": admin_count,
                "live_sessions": live_sessions,
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


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unhealthy
    """
    database_health = check_database_health()
    http_status = 200 if database_health["status"] == "healthy" else 503

    return {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database_health},
    }, http_status


@system_bp.get("/uploads/<path:filename>")
def uploaded_image(filename: str):
    return send_from_directory(image_store.upload_dir(), filename)
