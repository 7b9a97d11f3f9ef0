# Overview: Flask API routes for stock availability; parses input and returns JSON responses.

"""
Inventory routes.

Availability comes from the restaurant's InventoryManager and is advisory:
the sale screen uses it to gate the cart, /reserve decrements declared
stock after checking the same view.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services.inventory_manager import get_inventory_registry, InsufficientStockError
from ..validation import ValidationError, NotFoundError
from ..decorators import require_pos_auth


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/pos/inventory")


@inventory_bp.get("")
@require_pos_auth
def list_stock_route():
    """
    Query params (optional, check a single item):
    - product_id, variant_id, quantity
    """
    manager = get_inventory_registry().get(g.tenant_id)

    product_id = request.args.get("product_id", type=int)
    if product_id is not None:
        variant_id = request.args.get("variant_id", type=int)
        quantity = request.args.get("quantity", default=1, type=int)
        entry = manager.get_stock(product_id, variant_id)
        return jsonify({
            "product_id": product_id,
            "variant_id": variant_id,
            "quantity": quantity,
            "available": manager.is_available(product_id, variant_id, quantity),
            "stock": entry.to_dict() if entry else None,
        }), 200

    stock = manager.all_stock()
    return jsonify({
        "stock": {key: entry.to_dict() for key, entry in stock.items()},
        "count": len(stock),
    }), 200


@inventory_bp.put("/products/<int:product_id>")
@require_pos_auth
def set_product_quantity_route(product_id: int):
    """Request body: {"quantity": int >= 0}"""
    data = request.get_json(silent=True) or {}
    try:
        entry = get_inventory_registry().get(g.tenant_id).set_product_quantity(
            product_id, data.get("quantity")
        )
        return jsonify({"stock": entry.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to set product quantity")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.put("/variants/<int:variant_id>")
@require_pos_auth
def set_variant_stock_route(variant_id: int):
    """Request body: {"stock": int >= 0}"""
    data = request.get_json(silent=True) or {}
    try:
        entry = get_inventory_registry().get(g.tenant_id).set_variant_stock(
            variant_id, data.get("stock")
        )
        return jsonify({"stock": entry.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to set variant stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/reserve")
@require_pos_auth
def reserve_route():
    """
    Request body: {"items": [{"product_id", "variant_id"?, "quantity"}]}

    409 with the failing items when any is unavailable; nothing is written.
    """
    data = request.get_json(silent=True) or {}
    try:
        get_inventory_registry().get(g.tenant_id).reserve_for_order(data.get("items"))
        return jsonify({"reserved": True}), 200
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except InsufficientStockError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except Exception:
        current_app.logger.exception("Failed to reserve stock")
        return jsonify({"error": "Internal server error"}), 500
