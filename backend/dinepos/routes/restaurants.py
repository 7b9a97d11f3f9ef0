# Overview: Flask API routes for restaurant (tenant) management; parses input and returns JSON responses.

"""
Restaurant directory routes for admins and superadmins.

Also hosts /api/update-user, the admin tool for changing the email or
password of any account the caller is allowed to manage.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import tenant_service, session_service, admin_service
from ..services.admin_service import PermissionDeniedError
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_admin_auth


restaurants_bp = Blueprint("restaurants", __name__, url_prefix="/api/restaurants")
users_bp = Blueprint("users", __name__, url_prefix="/api")


@restaurants_bp.post("/create")
@require_admin_auth
def create_restaurant_route():
    """
    Provision a restaurant.

    Request body:
    {
        "name", "owner_name", "email", "password",
        "activation_date", "expiry_date",     # ISO-8601
        "address", "phone_number",            # optional
        "activation_token", "is_active"       # optional
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        restaurant = tenant_service.create_restaurant(data)
        return jsonify({"restaurant": restaurant.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except Exception:
        current_app.logger.exception("Failed to create restaurant")
        return jsonify({"error": "Internal server error"}), 500


@restaurants_bp.get("/get")
@require_admin_auth
def list_restaurants_route():
    active_only = request.args.get("active_only", "").lower() in ("1", "true", "yes")
    restaurants = tenant_service.list_restaurants(active_only=active_only)
    return jsonify({
        "restaurants": [r.to_dict() for r in restaurants],
        "count": len(restaurants),
    }), 200


@restaurants_bp.get("/get/<int:restaurant_id>")
@require_admin_auth
def get_restaurant_route(restaurant_id: int):
    try:
        restaurant = tenant_service.get_restaurant(restaurant_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    session = session_service.get_session(restaurant_id)
    return jsonify({
        "restaurant": restaurant.to_dict(),
        "session": session.to_dict() if session else None,
    }), 200


@restaurants_bp.patch("/update/<int:restaurant_id>")
@require_admin_auth
def update_restaurant_route(restaurant_id: int):
    try:
        data = request.get_json(silent=True) or {}
        restaurant = tenant_service.update_restaurant(restaurant_id, data)
        return jsonify({"restaurant": restaurant.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update restaurant")
        return jsonify({"error": "Internal server error"}), 500


@restaurants_bp.delete("/delete/<int:restaurant_id>")
@require_admin_auth
def delete_restaurant_route(restaurant_id: int):
    try:
        tenant_service.delete_restaurant(restaurant_id)
        return jsonify({"message": "Restaurant deleted"}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete restaurant")
        return jsonify({"error": "Internal server error"}), 500


@restaurants_bp.post("/logout-by-id/<int:restaurant_id>")
@require_admin_auth
def force_logout_route(restaurant_id: int):
    try:
        had_session = session_service.force_logout(restaurant_id)
        return jsonify({
            "success": True,
            "message": "Session terminated" if had_session else "No active session",
        }), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to terminate restaurant session")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("/update-user")
@require_admin_auth
def update_user_route():
    """
    Request body: {"uid": int, "email"?: str, "password"?: str}

    The caller's role comes from its credential, never from the body.
    """
    data = request.get_json(silent=True) or {}
    uid = data.get("uid")
    if isinstance(uid, bool) or not isinstance(uid, int):
        return jsonify({"error": "Missing required fields"}), 400

    try:
        kind = admin_service.update_user(
            g.auth_context, uid, email=data.get("email"), password=data.get("password")
        )
        return jsonify({"message": "User updated successfully", "kind": kind}), 200

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500
