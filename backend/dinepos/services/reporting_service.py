# Overview: Sales summary for a restaurant over a date range; pure read.

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from ..extensions import db
from ..models import Order
from ..validation import ValidationError
from dinepos.time_utils import parse_iso_datetime, to_utc_z

TOP_ITEMS_LIMIT = 5


class ReportError(ValidationError):
    """Raised when report parameters are invalid."""


def _parse_range(start, end) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = start if isinstance(start, datetime) else parse_iso_datetime(start)
        end_dt = end if isinstance(end, datetime) else parse_iso_datetime(end)
    except ValueError:
        raise ReportError("start and end must be ISO-8601 dates")
    if start_dt and end_dt and end_dt < start_dt:
        raise ReportError("end must be on or after start")
    return start_dt, end_dt


def sales_summary(restaurant_id: int, start=None, end=None) -> dict:
    """
    Fold completed orders in [start, end] into totals, average order value,
    the top items by quantity (with revenue) and payment-method counts.
    """
    start_dt, end_dt = _parse_range(start, end)

    query = db.session.query(Order).filter(
        Order.restaurant_id == restaurant_id,
        Order.status == "completed",
    )
    if start_dt:
        query = query.filter(Order.created_at >= start_dt)
    if end_dt:
        query = query.filter(Order.created_at <= end_dt)
    orders = query.order_by(Order.created_at.desc()).all()

    total_sales = sum(order.total_cents for order in orders)
    order_count = len(orders)
    average = 0
    if order_count:
        average = int(
            (Decimal(total_sales) / Decimal(order_count)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        )

    payments = {method: 0 for method in Order.PAYMENT_METHODS}
    items: "OrderedDict[str, dict]" = OrderedDict()
    for order in orders:
        payments[order.payment_method] = payments.get(order.payment_method, 0) + 1
        for line in order.items:
            entry = items.setdefault(line.name, {"name": line.name, "quantity": 0, "revenue_cents": 0})
            entry["quantity"] += line.quantity
            entry["revenue_cents"] += line.line_total_cents

    # Stable sort keeps first-seen order among equal quantities
    top_items = sorted(items.values(), key=lambda e: e["quantity"], reverse=True)[:TOP_ITEMS_LIMIT]

    return {
        "restaurant_id": restaurant_id,
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "total_sales_cents": total_sales,
        "order_count": order_count,
        "average_order_value_cents": average,
        "top_items": top_items,
        "payment_methods": payments,
    }
