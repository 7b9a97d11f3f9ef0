# Overview: Flask API routes for orders and sales reports; parses input and returns JSON responses.

"""Order routes with tenant scoping from g.tenant_id."""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import order_service, reporting_service
from ..services.order_service import OrderTransitionError
from ..services.inventory_manager import get_inventory_registry, InsufficientStockError
from ..validation import ValidationError, NotFoundError
from ..decorators import require_pos_auth


orders_bp = Blueprint("orders", __name__, url_prefix="/api/pos")


@orders_bp.get("/orders")
@require_pos_auth
def list_orders_route():
    """
    Query params: status, payment_method, search (order id or item name),
    date (YYYY-MM-DD), limit
    """
    try:
        orders = order_service.list_orders(
            g.tenant_id,
            status=request.args.get("status"),
            payment_method=request.args.get("payment_method"),
            search=request.args.get("search"),
            date=request.args.get("date"),
            limit=request.args.get("limit", type=int),
        )
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders)}), 200


@orders_bp.post("/orders")
@require_pos_auth
def place_order_route():
    """
    Place an order.

    Request body:
    {
        "items": [{"product_id", "variant_id"?, "name", "unit_price_cents", "quantity", "image_url"?}],
        "payment_method": "cash" | "card" | "wallet",
        "customer": {"name", "phone"},     # required when require_customer is true
        "require_customer": bool,          # the POS new-order form sets this
        "status": "completed" | "pending", # default completed
        "reserve_stock": bool              # decrement declared stock first
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        req = order_service.validate_order_request(
            data.get("items"),
            data.get("payment_method"),
            data.get("customer"),
            require_customer=bool(data.get("require_customer")),
            status=data.get("status") or "completed",
        )
        # Stock is only touched once the whole request has passed validation
        if data.get("reserve_stock"):
            get_inventory_registry().get(g.tenant_id).reserve_for_order(req.items)

        order = order_service.place_order(
            g.tenant_id,
            req.items,
            req.payment_method,
            {"name": req.customer_name, "phone": req.customer_phone},
            require_customer=bool(data.get("require_customer")),
            status=req.status,
        )
        return jsonify({"order": order.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except InsufficientStockError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except Exception:
        current_app.logger.exception("Failed to place order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/orders/<int:order_id>")
@require_pos_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(g.tenant_id, order_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.post("/orders/<int:order_id>/status")
@require_pos_auth
def transition_status_route(order_id: int):
    """Request body: {"status": "completed" | "cancelled" | "refunded"}"""
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.transition_status(g.tenant_id, order_id, data.get("status"))
        return jsonify({"order": order.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except OrderTransitionError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except Exception:
        current_app.logger.exception("Failed to change order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/reports/sales")
@require_pos_auth
def sales_report_route():
    """Query params: start, end (ISO-8601; both optional)"""
    try:
        report = reporting_service.sales_summary(
            g.tenant_id,
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify(report), 200
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to build sales report")
        return jsonify({"error": "Internal server error"}), 500
