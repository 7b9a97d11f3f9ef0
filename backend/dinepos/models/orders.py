from __future__ import annotations

from ..extensions import db
from dinepos.time_utils import to_utc_z


class Order(db.Model):
    """
    A sale, created in one write together with all its line items.

    Amounts are integer cents: subtotal = sum(unit_price * quantity),
    tax = 10% of subtotal rounded half-up to the cent, total = subtotal + tax.

    Status lifecycle:
        pending -> completed | cancelled
        completed -> refunded
    cancelled and refunded are terminal. Orders are never deleted; they are
    the history that reports and stock demand are derived from.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_restaurant_status_created", "restaurant_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    STATUSES = ("pending", "completed", "cancelled", "refunded")
    PAYMENT_METHODS = ("cash", "card", "wallet")

    id = db.Column(db.Integer, primary_key=True)
    # No FK: order history outlives a deleted restaurant
    restaurant_id = db.Column(db.Integer, nullable=False, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="completed", index=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    status_changed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    items = db.relationship(
        "OrderItem",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
        back_populates="order",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status} restaurant_id={self.restaurant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "items": [item.to_dict() for item in self.items],
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "created_at": to_utc_z(self.created_at),
            "status_changed_at": to_utc_z(self.status_changed_at),
        }


class OrderItem(db.Model):
    """Line item; a snapshot of name and price at sale time."""
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    variant_id = db.Column(db.Integer, nullable=True)
    name = db.Column(db.String(255), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    image_url = db.Column(db.String(500), nullable=True)

    order = db.relationship("Order", back_populates="items")

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "name": self.name,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
            "image_url": self.image_url,
        }
