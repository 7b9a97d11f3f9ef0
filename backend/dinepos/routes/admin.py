# Overview: Flask API routes for platform admins; parses input and returns JSON responses.

# backend/dinepos/routes/admin.py
"""
Admin panel routes.

SECURITY: Every route except /login needs an admin or superadmin bearer
credential. Creating, editing and deleting admins is superadmin only; the
service layer enforces the same rule so no path around it exists.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import admin_service, session_service
from ..services.admin_service import PermissionDeniedError
from ..services.tenant_service import TenantAccessError
from ..services.identity_service import ADMIN_IMPERSONATION_COOKIE
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_admin_auth, require_superadmin
from .pos import set_pos_cookies


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.post("/login")
def login_route():
    try:
        data = request.get_json(silent=True) or {}
        result = session_service.login_admin(data.get("email"), data.get("password"))
        return jsonify({
            "admin": result.admin.to_dict(),
            "credential": result.credential,
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 401
    except Exception:
        current_app.logger.exception("Failed to sign in admin")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/logout")
@require_admin_auth
def logout_route():
    """Revokes every credential issued to this admin."""
    session_service.logout_admin(g.auth_context.principal_id)
    response = jsonify({"message": "Logged out successfully"})
    response.delete_cookie(ADMIN_IMPERSONATION_COOKIE, path="/")
    return response, 200


# =============================================================================
# ADMIN MANAGEMENT
# =============================================================================

@admin_bp.get("/admins")
@require_admin_auth
def list_admins_route():
    admins = admin_service.list_admins()
    return jsonify({"admins": [a.to_dict() for a in admins], "count": len(admins)}), 200


@admin_bp.get("/admins/<int:admin_id>")
@require_admin_auth
def get_admin_route(admin_id: int):
    try:
        admin = admin_service.get_admin(admin_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"admin": admin.to_dict()}), 200


@admin_bp.post("/admins")
@require_superadmin
def create_admin_route():
    """
    Create an admin.

    Request body: {"name", "email", "password", "role": "admin"|"superadmin"}
    """
    try:
        data = request.get_json(silent=True) or {}
        admin = admin_service.create_admin(g.auth_context, data)
        return jsonify({"admin": admin.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to create admin")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.patch("/admins/<int:admin_id>")
@require_superadmin
def update_admin_route(admin_id: int):
    try:
        data = request.get_json(silent=True) or {}
        admin = admin_service.update_admin(g.auth_context, admin_id, data)
        return jsonify({"admin": admin.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to update admin")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.delete("/admins/<int:admin_id>")
@require_superadmin
def delete_admin_route(admin_id: int):
    try:
        admin_service.delete_admin(g.auth_context, admin_id)
        return jsonify({"message": "Admin deleted"}), 200

    except ConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to delete admin")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# OWN PROFILE
# =============================================================================

@admin_bp.get("/profile")
@require_admin_auth
def get_profile_route():
    try:
        admin = admin_service.get_admin(g.auth_context.principal_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"admin": admin.to_dict()}), 200


@admin_bp.patch("/profile")
@require_admin_auth
def update_profile_route():
    try:
        data = request.get_json(silent=True) or {}
        admin = admin_service.update_own_profile(g.auth_context, data)
        return jsonify({"admin": admin.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to update admin profile")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# IMPERSONATION
# =============================================================================

@admin_bp.post("/impersonate")
@require_admin_auth
def impersonate_route():
    """
    Act as a restaurant.

    Request body: {"restaurant_id": int}

    Sets the POS cookie pair for the impersonation session plus the
    admin's target-restaurant cookie, and returns an impersonation
    credential.
    """
    data = request.get_json(silent=True) or {}
    restaurant_id = data.get("restaurant_id")
    if isinstance(restaurant_id, bool) or not isinstance(restaurant_id, int):
        return jsonify({"error": "Invalid restaurant ID"}), 400

    try:
        result = session_service.impersonate(g.auth_context, restaurant_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to start impersonation")
        return jsonify({"error": "Internal server error"}), 500

    response = jsonify({
        "restaurant_id": result.principal_id,
        "token": result.token,
        "credential": result.credential,
        "expires_at": result.expires_at.isoformat() + "Z",
    })
    max_age = int(session_service.IMPERSONATION_TTL.total_seconds())
    set_pos_cookies(response, result.token, result.principal_id, max_age)
    response.set_cookie(
        ADMIN_IMPERSONATION_COOKIE,
        str(result.principal_id),
        max_age=max_age,
        httponly=True,
        samesite="Lax",
        secure=not current_app.debug and not current_app.testing,
        path="/",
    )
    return response, 200
