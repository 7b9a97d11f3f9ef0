# Overview: Per-restaurant stock availability, derived from declared stock and the live order set.

"""
Inventory Manager

WHY: Availability is never stored. Each entry keeps the declared stock
(Product.quantity or Variant.stock) and the quantity demanded by live
orders, and available = max(0, total - ordered) is recomputed whenever the
restaurant's orders change. Cancelling or refunding an order frees its
stock on the next recompute without any compensating write, whatever path
changed the order.

Cache keys are "<product_id>-main" for products stocked directly and
"<product_id>-<variant_id>" for variants.

Availability is advisory. reserve_for_order() checks the cached view and
then issues unconditional atomic decrements, one per item; two checkouts
that both pass the check can both succeed and oversell.

USAGE:
    manager = get_inventory_registry().get(restaurant_id)
    if manager.is_available(product_id, variant_id, quantity=2):
        ...
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, asdict
from typing import Callable, Iterable

from flask import current_app

from ..extensions import db
from ..models import Product, Variant, Order, OrderItem
from ..validation import NotFoundError, ValidationError, validate_stock_value
from .order_events import get_order_feed

logger = logging.getLogger(__name__)

EXTENSION_KEY = "dinepos.inventory"

# Orders in these states hold stock
DEMAND_STATUSES = ("pending", "completed")


class InsufficientStockError(Exception):
    """409: at least one requested item is not available in the cached view."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass
class StockEntry:
    product_id: int
    variant_id: int | None
    name: str
    total_stock: int
    ordered_quantity: int = 0
    available_stock: int = 0

    def refresh(self) -> None:
        self.available_stock = max(0, self.total_stock - self.ordered_quantity)

    def to_dict(self) -> dict:
        return asdict(self)


def stock_key(product_id, variant_id=None) -> str:
    return f"{product_id}-{variant_id if variant_id else 'main'}"


def _item_value(item, field: str, default=None):
    if isinstance(item, dict):
        return item.get(field, default)
    return getattr(item, field, default)


class InventoryManager:
    """Stock view for one restaurant. Construct, initialize(), close() when done."""

    def __init__(self, restaurant_id: int):
        self.restaurant_id = restaurant_id
        self._lock = threading.RLock()
        self._stock: dict[str, StockEntry] = {}
        self._listeners: list[Callable[[], None]] = []
        self._subscription = None
        self.initialized = False

    def __repr__(self) -> str:
        return f"<InventoryManager restaurant_id={self.restaurant_id} entries={len(self._stock)}>"

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load_declared_stock(self) -> dict[str, StockEntry]:
        entries: dict[str, StockEntry] = {}
        products = db.session.query(Product).filter_by(restaurant_id=self.restaurant_id).all()
        names = {}
        for product in products:
            names[product.id] = product.name
            if product.quantity is not None:
                entries[stock_key(product.id)] = StockEntry(
                    product_id=product.id,
                    variant_id=None,
                    name=product.name,
                    total_stock=product.quantity,
                )

        variants = db.session.query(Variant).filter_by(restaurant_id=self.restaurant_id).all()
        for variant in variants:
            entries[stock_key(variant.product_id, variant.id)] = StockEntry(
                product_id=variant.product_id,
                variant_id=variant.id,
                name=f"{names.get(variant.product_id, '')} - {variant.name}",
                total_stock=variant.stock or 0,
            )
        return entries

    def initialize(self) -> "InventoryManager":
        """
        Load declared stock, recompute demand and subscribe to order changes.

        A failed subscription is logged and leaves the cache without live
        updates; it does not raise.
        """
        with self._lock:
            self._stock = self._load_declared_stock()
            self.recompute(notify=False)

            if self._subscription is None:
                try:
                    feed = get_order_feed()
                    if feed is None:
                        raise RuntimeError("order change feed is not configured")
                    self._subscription = feed.subscribe(self.restaurant_id, self._on_order_change)
                except Exception:
                    logger.exception(
                        "Inventory subscription failed for restaurant %s; stock view may go stale",
                        self.restaurant_id,
                    )
            self.initialized = True

        self._notify()
        return self

    def reload(self) -> None:
        """Re-read declared stock after catalog edits (products or variants changed)."""
        with self._lock:
            self._stock = self._load_declared_stock()
            self.recompute(notify=False)
        self._notify()

    def _on_order_change(self, change) -> None:
        self.recompute()

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def recompute(self, notify: bool = True) -> None:
        """
        Rebuild ordered quantities from pending and completed orders.

        Idempotent: with no intervening writes two calls give the same view.
        """
        rows = (
            db.session.query(OrderItem.product_id, OrderItem.variant_id, OrderItem.quantity)
            .join(Order, Order.id == OrderItem.order_id)
            .filter(
                Order.restaurant_id == self.restaurant_id,
                Order.status.in_(DEMAND_STATUSES),
            )
            .all()
        )

        with self._lock:
            for entry in self._stock.values():
                entry.ordered_quantity = 0

            for product_id, variant_id, quantity in rows:
                main = self._stock.get(stock_key(product_id))
                if main is not None:
                    main.ordered_quantity += quantity
                if variant_id:
                    variant_entry = self._stock.get(stock_key(product_id, variant_id))
                    if variant_entry is not None:
                        variant_entry.ordered_quantity += quantity

            for entry in self._stock.values():
                entry.refresh()

        if notify:
            self._notify()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_stock(self, product_id, variant_id=None) -> StockEntry | None:
        with self._lock:
            return self._stock.get(stock_key(product_id, variant_id))

    def all_stock(self) -> dict[str, StockEntry]:
        with self._lock:
            return dict(self._stock)

    def is_available(self, product_id, variant_id=None, quantity: int = 1) -> bool:
        # Unknown items are never available
        entry = self.get_stock(product_id, variant_id)
        return entry is not None and entry.available_stock >= quantity

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def reserve_for_order(self, items: Iterable) -> None:
        """
        Check every item against the cached view, then decrement persisted
        stock once per item.

        Raises InsufficientStockError (no writes) when any item fails the
        check. Decrements are unconditional and independent per item.
        """
        items = list(items or [])
        if not items:
            raise ValidationError("Order must contain at least one item")

        unavailable = []
        for item in items:
            product_id = _item_value(item, "product_id")
            variant_id = _item_value(item, "variant_id")
            quantity = _item_value(item, "quantity", 1)
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
                raise ValidationError("quantity must be a positive integer")
            if not self.is_available(product_id, variant_id, quantity):
                entry = self.get_stock(product_id, variant_id)
                unavailable.append({
                    "product_id": product_id,
                    "variant_id": variant_id,
                    "requested": quantity,
                    "available": entry.available_stock if entry else 0,
                })

        if unavailable:
            raise InsufficientStockError("Insufficient stock", details={"items": unavailable})

        for item in items:
            product_id = _item_value(item, "product_id")
            variant_id = _item_value(item, "variant_id")
            quantity = _item_value(item, "quantity", 1)
            if variant_id:
                db.session.query(Variant).filter(
                    Variant.id == variant_id,
                    Variant.restaurant_id == self.restaurant_id,
                ).update({Variant.stock: Variant.stock - quantity}, synchronize_session=False)
            else:
                db.session.query(Product).filter(
                    Product.id == product_id,
                    Product.restaurant_id == self.restaurant_id,
                ).update({Product.quantity: Product.quantity - quantity}, synchronize_session=False)
            db.session.commit()

    def set_product_quantity(self, product_id: int, value) -> StockEntry:
        value = validate_stock_value(value, "quantity")
        product = db.session.query(Product).filter_by(
            id=product_id, restaurant_id=self.restaurant_id
        ).first()
        if not product:
            raise NotFoundError("Product not found")

        product.quantity = value
        db.session.commit()

        with self._lock:
            entry = self._stock.get(stock_key(product_id))
            if entry is None:
                # First declared stock for this product: demand must be counted once
                self._stock[stock_key(product_id)] = StockEntry(
                    product_id=product.id, variant_id=None, name=product.name, total_stock=value
                )
                self.recompute(notify=False)
                entry = self._stock[stock_key(product_id)]
            else:
                entry.total_stock = value
                entry.refresh()
        self._notify()
        return entry

    def set_variant_stock(self, variant_id: int, value) -> StockEntry:
        value = validate_stock_value(value, "stock")
        variant = db.session.query(Variant).filter_by(
            id=variant_id, restaurant_id=self.restaurant_id
        ).first()
        if not variant:
            raise NotFoundError("Variant not found")

        variant.stock = value
        db.session.commit()

        key = stock_key(variant.product_id, variant.id)
        with self._lock:
            entry = self._stock.get(key)
            if entry is None:
                self._stock[key] = StockEntry(
                    product_id=variant.product_id,
                    variant_id=variant.id,
                    name=f"{variant.product.name} - {variant.name}",
                    total_stock=value,
                )
                self.recompute(notify=False)
                entry = self._stock[key]
            else:
                entry.total_stock = value
                entry.refresh()
        self._notify()
        return entry

    # ------------------------------------------------------------------
    # Listeners and teardown
    # ------------------------------------------------------------------

    def add_listener(self, listener: Callable[[], None]) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[], None]) -> None:
        with self._lock:
            self._listeners = [l for l in self._listeners if l is not listener]

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("Inventory listener failed for restaurant %s", self.restaurant_id)

    def close(self) -> None:
        """Unsubscribe from order changes and drop listeners. Safe to call twice."""
        with self._lock:
            if self._subscription is not None:
                self._subscription.close()
                self._subscription = None
            self._listeners = []
            self.initialized = False


class InventoryRegistry:
    """One InventoryManager per restaurant, created on first use."""

    def __init__(self):
        self._lock = threading.Lock()
        self._managers: dict[int, InventoryManager] = {}

    def init_app(self, app) -> None:
        app.extensions[EXTENSION_KEY] = self

    def get(self, restaurant_id: int) -> InventoryManager:
        with self._lock:
            manager = self._managers.get(restaurant_id)
            if manager is None:
                manager = InventoryManager(restaurant_id)
                self._managers[restaurant_id] = manager
        if not manager.initialized:
            manager.initialize()
        return manager

    def peek(self, restaurant_id: int) -> InventoryManager | None:
        with self._lock:
            return self._managers.get(restaurant_id)

    def reload(self, restaurant_id: int) -> None:
        """Refresh declared stock if a manager is live; no-op otherwise."""
        manager = self.peek(restaurant_id)
        if manager is not None and manager.initialized:
            manager.reload()

    def dispose(self, restaurant_id: int) -> None:
        with self._lock:
            manager = self._managers.pop(restaurant_id, None)
        if manager is not None:
            manager.close()

    def dispose_all(self) -> None:
        with self._lock:
            managers = list(self._managers.values())
            self._managers.clear()
        for manager in managers:
            manager.close()


def get_inventory_registry() -> InventoryRegistry:
    return current_app.extensions[EXTENSION_KEY]
