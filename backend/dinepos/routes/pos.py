# Overview: Flask API routes for restaurant sign-in, session and profile; parses input and returns JSON responses.

"""
POS session routes.

Login sets the POS cookie pair (pos_session_token, pos_restaurant_id) and
returns a pos bearer credential. Either is enough to call POS routes.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import session_service, tenant_service
from ..services.identity_service import (
    POS_SESSION_COOKIE,
    POS_RESTAURANT_COOKIE,
    ADMIN_IMPERSONATION_COOKIE,
)
from ..services.tenant_service import TenantAccessError
from ..validation import ValidationError, NotFoundError
from ..decorators import require_pos_auth


pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")
restaurant_id_bp = Blueprint("restaurant_id", __name__, url_prefix="/api")


def set_pos_cookies(response, token: str, restaurant_id: int, max_age: int) -> None:
    options = {
        "max_age": max_age,
        "httponly": True,
        "samesite": "Lax",
        "secure": not current_app.debug and not current_app.testing,
        "path": "/",
    }
    response.set_cookie(POS_SESSION_COOKIE, token, **options)
    response.set_cookie(POS_RESTAURANT_COOKIE, str(restaurant_id), **options)


def clear_pos_cookies(response) -> None:
    for name in (POS_SESSION_COOKIE, POS_RESTAURANT_COOKIE, ADMIN_IMPERSONATION_COOKIE):
        response.delete_cookie(name, path="/")


@pos_bp.post("/login")
def login_route():
    """
    Restaurant sign-in.

    Rejected when the restaurant is deactivated or outside its activation
    window; the message says which.
    """
    try:
        data = request.get_json(silent=True) or {}
        result = session_service.login_restaurant(data.get("email"), data.get("password"))

        response = jsonify({
            "restaurant": result.restaurant.to_dict(include_token=False),
            "restaurant_id": result.principal_id,
            "token": result.token,
            "credential": result.credential,
            "expires_at": result.expires_at.isoformat() + "Z",
        })
        set_pos_cookies(
            response, result.token, result.principal_id,
            int(session_service.SESSION_TTL.total_seconds()),
        )
        return response, 200

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 401
    except Exception:
        current_app.logger.exception("Failed to sign in restaurant")
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.post("/logout")
def logout_route():
    """End the POS session named by the cookie (or body "token") and clear cookies."""
    data = request.get_json(silent=True) or {}
    token = request.cookies.get(POS_SESSION_COOKIE) or data.get("token")

    try:
        session_service.logout_restaurant(token)
    except TenantAccessError as e:
        response = jsonify({"error": str(e), "redirect": "/pos/login"})
        clear_pos_cookies(response)
        return response, 401
    except Exception:
        current_app.logger.exception("Failed to sign out restaurant")
        return jsonify({"error": "Internal server error"}), 500

    response = jsonify({"message": "Logged out successfully"})
    clear_pos_cookies(response)
    return response, 200


@pos_bp.get("/me")
@require_pos_auth
def me_route():
    ctx = g.auth_context
    try:
        restaurant = tenant_service.get_restaurant(g.tenant_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({
        "auth": ctx.to_dict(),
        "restaurant": restaurant.to_dict(include_token=False),
        "is_impersonation": ctx.principal_kind == "impersonated-tenant" or ctx.is_admin,
    }), 200


@pos_bp.get("/profile")
@require_pos_auth
def get_profile_route():
    try:
        restaurant = tenant_service.get_restaurant(g.tenant_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"restaurant": restaurant.to_dict(include_token=False)}), 200


@pos_bp.patch("/profile")
@require_pos_auth
def update_profile_route():
    """Name and contact fields only (name, owner_name, address, phone_number)."""
    try:
        data = request.get_json(silent=True) or {}
        restaurant = tenant_service.update_profile(g.tenant_id, data)
        return jsonify({"restaurant": restaurant.to_dict(include_token=False)}), 200

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update restaurant profile")
        return jsonify({"error": "Internal server error"}), 500


@restaurant_id_bp.get("/get-restaurant-id")
@require_pos_auth
def get_restaurant_id_route():
    """The restaurant the caller is acting as, as resolved from its credentials."""
    return jsonify({"restaurant_id": g.tenant_id}), 200
