# Overview: Service-layer operations for orders; placement, totals and status lifecycle.

"""
Order Lifecycle

WHY: An order is written once, with its line items and server-computed
totals, and afterwards only its status moves. Stock is never adjusted
here: inventory follows the order stream (see inventory_manager), so
cancelling or refunding frees stock without a compensating write.

Amounts are integer cents:
    subtotal = sum(unit_price_cents * quantity)
    tax      = subtotal * TAX_RATE_BPS / 10000, rounded half-up to the cent
    total    = subtotal + tax

STATUS LIFECYCLE:
    pending -> completed | cancelled
    completed -> refunded
    cancelled, refunded: terminal
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import or_, cast, String

from ..extensions import db
from ..models import Order, OrderItem
from ..validation import (
    ValidationError,
    NotFoundError,
    MAX_PRICE_CENTS,
    validate_phone,
)
from .order_events import get_order_feed
from dinepos.time_utils import utcnow, parse_iso_datetime

logger = logging.getLogger(__name__)

DEFAULT_TAX_RATE_BPS = 1000

ALLOWED_TRANSITIONS = {
    "pending": {"completed", "cancelled"},
    "completed": {"refunded"},
    "cancelled": set(),
    "refunded": set(),
}

# Statuses an order may be created with
INITIAL_STATUSES = ("pending", "completed")


class OrderTransitionError(Exception):
    """409: the requested status change is not allowed from the current status."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass(frozen=True)
class Totals:
    subtotal_cents: int
    tax_cents: int
    total_cents: int


def _tax_rate_bps() -> int:
    try:
        return int(current_app.config.get("TAX_RATE_BPS", DEFAULT_TAX_RATE_BPS))
    except RuntimeError:
        return DEFAULT_TAX_RATE_BPS


def compute_tax_cents(subtotal_cents: int, rate_bps: int | None = None) -> int:
    if rate_bps is None:
        rate_bps = _tax_rate_bps()
    tax = Decimal(subtotal_cents) * Decimal(rate_bps) / Decimal(10000)
    return int(tax.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_totals(items: list[dict], rate_bps: int | None = None) -> Totals:
    subtotal = sum(item["unit_price_cents"] * item["quantity"] for item in items)
    tax = compute_tax_cents(subtotal, rate_bps)
    return Totals(subtotal_cents=subtotal, tax_cents=tax, total_cents=subtotal + tax)


def _positive_int(value, field: str, *, minimum: int) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return value


def normalize_items(items) -> list[dict]:
    """Validate incoming line items before anything is written."""
    if not isinstance(items, list) or not items:
        raise ValidationError("Order must contain at least one item")

    cleaned = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")

        name = str(raw.get("name") or "").strip()
        if not name:
            raise ValidationError(f"items[{index}].name is required")
        if raw.get("product_id") in (None, ""):
            raise ValidationError(f"items[{index}].product_id is required")

        unit_price = _positive_int(raw.get("unit_price_cents"), f"items[{index}].unit_price_cents", minimum=0)
        if unit_price > MAX_PRICE_CENTS:
            raise ValidationError(f"items[{index}].unit_price_cents is too large")

        variant_id = raw.get("variant_id")
        cleaned.append({
            "product_id": _positive_int(raw.get("product_id"), f"items[{index}].product_id", minimum=1),
            "variant_id": (
                _positive_int(variant_id, f"items[{index}].variant_id", minimum=1)
                if variant_id not in (None, "")
                else None
            ),
            "name": name,
            "unit_price_cents": unit_price,
            "quantity": _positive_int(raw.get("quantity"), f"items[{index}].quantity", minimum=1),
            "image_url": raw.get("image_url") or None,
        })
    return cleaned


def _dispatch_changes() -> None:
    feed = get_order_feed()
    if feed is not None:
        feed.dispatch_pending()


@dataclass(frozen=True)
class OrderRequest:
    """A fully validated order, ready to reserve stock for and write."""
    items: list
    payment_method: str
    status: str
    customer_name: str | None
    customer_phone: str | None


def validate_order_request(
    items,
    payment_method: str,
    customer: dict | None = None,
    *,
    require_customer: bool = False,
    status: str = "completed",
) -> OrderRequest:
    """
    Run every placement check without touching the database.

    Callers that decrement stock before writing the order call this first,
    so a rejected request leaves stock untouched.
    """
    cleaned = normalize_items(items)

    if payment_method not in Order.PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of: {', '.join(Order.PAYMENT_METHODS)}"
        )
    if status not in INITIAL_STATUSES:
        raise ValidationError("status must be 'pending' or 'completed'")

    if customer is None:
        customer = {}
    if not isinstance(customer, dict):
        raise ValidationError("customer must be an object")
    customer_name = str(customer.get("name") or "").strip() or None
    customer_phone = str(customer.get("phone") or "").strip() or None
    if require_customer:
        if not customer_name:
            raise ValidationError("Customer name is required")
        customer_phone = validate_phone(customer_phone)
    elif customer_phone:
        customer_phone = validate_phone(customer_phone)

    return OrderRequest(cleaned, payment_method, status, customer_name, customer_phone)


def place_order(
    restaurant_id: int,
    items,
    payment_method: str,
    customer: dict | None = None,
    *,
    require_customer: bool = False,
    status: str = "completed",
) -> Order:
    """
    Write an order with its items and server-computed totals.

    require_customer is the POS "new order" form path: name must be
    non-empty and the phone a 10-digit number. Stock is not reserved here.
    """
    req = validate_order_request(
        items, payment_method, customer,
        require_customer=require_customer, status=status,
    )

    totals = compute_totals(req.items)
    now = utcnow()

    order = Order(
        restaurant_id=restaurant_id,
        subtotal_cents=totals.subtotal_cents,
        tax_cents=totals.tax_cents,
        total_cents=totals.total_cents,
        payment_method=req.payment_method,
        status=req.status,
        customer_name=req.customer_name,
        customer_phone=req.customer_phone,
        created_at=now,
        status_changed_at=now,
    )
    for position, item in enumerate(req.items):
        order.items.append(OrderItem(position=position, **item))

    db.session.add(order)
    db.session.commit()
    _dispatch_changes()

    logger.info(
        "Order %s placed for restaurant %s (%s cents, %s)",
        order.id, restaurant_id, order.total_cents, order.status,
    )
    return order


def get_order(restaurant_id: int, order_id: int) -> Order:
    order = db.session.query(Order).filter_by(id=order_id, restaurant_id=restaurant_id).first()
    if not order:
        raise NotFoundError("Order not found")
    return order


def transition_status(restaurant_id: int, order_id: int, target: str) -> Order:
    """Move an order along its lifecycle; only status fields are written."""
    if target not in Order.STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(Order.STATUSES)}")

    order = get_order(restaurant_id, order_id)
    current = order.status
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise OrderTransitionError(
            f"Cannot change order from {current} to {target}",
            details={"from": current, "to": target},
        )

    order.status = target
    order.status_changed_at = utcnow()
    db.session.commit()
    _dispatch_changes()

    logger.info("Order %s for restaurant %s: %s -> %s", order.id, restaurant_id, current, target)
    return order


def list_orders(
    restaurant_id: int,
    *,
    status: str | None = None,
    payment_method: str | None = None,
    search: str | None = None,
    date: str | None = None,
    limit: int | None = None,
) -> list[Order]:
    """
    Order history, newest first.

    search matches the order id or any item name; date (YYYY-MM-DD) limits
    the list to that UTC day.
    """
    query = db.session.query(Order).filter(Order.restaurant_id == restaurant_id)

    if status:
        if status not in Order.STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(Order.STATUSES)}")
        query = query.filter(Order.status == status)

    if payment_method:
        if payment_method not in Order.PAYMENT_METHODS:
            raise ValidationError(
                f"payment_method must be one of: {', '.join(Order.PAYMENT_METHODS)}"
            )
        query = query.filter(Order.payment_method == payment_method)

    if date:
        try:
            day = parse_iso_datetime(date)
        except ValueError:
            raise ValidationError("date must be YYYY-MM-DD")
        if day is not None:
            start = day.replace(hour=0, minute=0, second=0, microsecond=0)
            query = query.filter(Order.created_at >= start, Order.created_at < start + timedelta(days=1))

    if search:
        term = f"%{search.strip().lower()}%"
        item_match = db.session.query(OrderItem.order_id).filter(
            db.func.lower(OrderItem.name).like(term)
        )
        query = query.filter(or_(cast(Order.id, String).like(term), Order.id.in_(item_match)))

    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()
